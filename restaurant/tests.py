from io import StringIO

from django.core.cache import cache
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from booking.models import Booking, RestaurantAvailability
from booking.services.schedule import WEEKDAYS, ScheduleService
from restaurant.models import Restaurant, Table
from restaurant.onboarding import default_availability, slot_range
from users.models import CustomUser


class OnboardingTest(TestCase):
    """Default availability offered to new restaurants"""

    fixtures = ['restaurant.json', 'tables.json']

    def setUp(self):
        cache.clear()

    def test_slot_range_is_inclusive(self):
        self.assertEqual(slot_range('11:00', '12:00'), ['11:00', '11:30', '12:00'])

    def test_default_availability_shape(self):
        data = default_availability()

        self.assertEqual(set(data['schedule']), set(WEEKDAYS))
        monday = data['schedule']['Monday']
        self.assertEqual(len(monday['slots']), 18)
        self.assertEqual(monday['slots'][0], '11:00')
        self.assertEqual(monday['slots'][7], '14:30')
        self.assertEqual(monday['slots'][8], '17:00')
        self.assertEqual(monday['slots'][-1], '21:30')
        self.assertEqual(monday['capacity_per_slot'], 4)
        self.assertEqual(data['advance_booking_days'], 30)
        self.assertEqual(data['table_turning_time'], 60)

    def test_init_availability_command(self):
        out = StringIO()

        call_command('init_availability', '1', stdout=out)

        self.assertIn('7 open days', out.getvalue())
        config = ScheduleService.get_config(1)
        self.assertEqual(config.management_mode, 'guest-count')
        self.assertEqual(len(config.schedule), 7)

    def test_command_refuses_to_overwrite(self):
        call_command('init_availability', '1', stdout=StringIO())

        with self.assertRaises(CommandError):
            call_command('init_availability', '1', stdout=StringIO())

        call_command('init_availability', '1', '--force', stdout=StringIO())
        self.assertEqual(RestaurantAvailability.objects.filter(restaurant_id=1).count(), 1)

    def test_command_unknown_restaurant(self):
        with self.assertRaises(CommandError):
            call_command('init_availability', '999', stdout=StringIO())


class RestaurantAPITest(APITestCase):
    fixtures = ['users.json', 'restaurant.json', 'tables.json']

    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.manager = CustomUser.objects.get(username='maria')
        self.admin = CustomUser.objects.get(username='root')
        self.staff = CustomUser.objects.get(username='sam')

    def test_manager_sees_own_restaurant(self):
        self.client.force_authenticate(user=self.manager)

        response = self.client.get(reverse('restaurant-list'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([item['name'] for item in response.data], ['Trattoria Roma'])
        self.assertEqual(len(response.data[0]['tables']), 3)
        self.assertFalse(response.data[0]['has_availability'])

    def test_admin_sees_every_restaurant(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get(reverse('restaurant-list'))
        self.assertEqual(len(response.data), 2)

    def test_staff_forbidden(self):
        self.client.force_authenticate(user=self.staff)

        response = self.client.get(reverse('restaurant-list'))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_init_availability_action(self):
        self.client.force_authenticate(user=self.manager)

        response = self.client.post(reverse('restaurant-init-availability', kwargs={'pk': 1}))

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(len(response.data['schedule']), 7)

    def test_restaurant_with_bookings_cannot_be_deleted(self):
        restaurant = Restaurant.objects.get(pk=1)
        Booking.objects.create(
            restaurant=restaurant,
            user_ref='walk_in',
            user_name='Jane',
            date='2030-01-01',
            time='18:00',
            party_size=2,
        )
        self.client.force_authenticate(user=self.admin)

        response = self.client.delete(reverse('restaurant-detail', kwargs={'pk': 1}))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_manager_adds_table(self):
        self.client.force_authenticate(user=self.manager)

        response = self.client.post(reverse('table-list'), {
            'restaurant': 1,
            'name': 'Patio',
            'capacity': 8,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(Table.objects.filter(restaurant_id=1, name='Patio', is_active=True).exists())

    def test_manager_cannot_add_table_elsewhere(self):
        self.client.force_authenticate(user=self.manager)

        response = self.client.post(reverse('table-list'), {
            'restaurant': 2,
            'name': 'Patio',
            'capacity': 8,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_table_list_scoped_to_restaurant(self):
        self.client.force_authenticate(user=self.manager)

        response = self.client.get(reverse('table-list'))
        self.assertEqual({item['name'] for item in response.data}, {'T1', 'T2', 'T3'})
