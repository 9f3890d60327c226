from datetime import timedelta
from unittest import mock

from django.core.cache import cache
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from booking.models import Booking, BookingEvent
from booking.tests import configure, make_booking, next_weekday
from restaurant.models import Restaurant
from users.models import CustomUser


class BookingAPITestCase(APITestCase):
    fixtures = ['users.json', 'restaurant.json', 'tables.json']

    def setUp(self):
        cache.clear()
        patcher = mock.patch('booking.tasks.record_booking_event.delay')
        patcher.start()
        self.addCleanup(patcher.stop)

        self.client = APIClient()
        self.restaurant = Restaurant.objects.get(pk=1)
        self.guest = CustomUser.objects.get(username='alice')
        self.other_guest = CustomUser.objects.get(username='bob')
        self.staff = CustomUser.objects.get(username='sam')
        self.manager = CustomUser.objects.get(username='maria')
        self.admin = CustomUser.objects.get(username='root')
        self.foreign_staff = CustomUser.objects.get(username='otto')
        self.monday = next_weekday(0)


class SlotAvailabilityAPITest(BookingAPITestCase):
    """API tests for the slot availability endpoint"""

    def setUp(self):
        super().setUp()
        self.url = reverse('slot-availability')

    def test_get_availability_success(self):
        configure(self.restaurant.pk, capacity=1)
        make_booking(self.restaurant, self.guest, date=self.monday, time='18:00')

        response = self.client.get(self.url, {
            'restaurant': self.restaurant.id,
            'date': self.monday.isoformat(),
            'party_size': 2,
        })

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('query', response.data)
        self.assertEqual(response.data['slots'], ['18:30'])
        self.assertEqual(response.data['results'][0]['booked'], 1)
        self.assertEqual(response.data['results'][0]['available'], 0)

    def test_unconfigured_restaurant_has_no_slots(self):
        response = self.client.get(self.url, {'restaurant': self.restaurant.id, 'date': self.monday.isoformat()})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['slots'], [])

    def test_get_availability_invalid_date(self):
        response = self.client.get(self.url, {'restaurant': self.restaurant.id, 'date': 'invalid-date'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_get_availability_requires_restaurant(self):
        response = self.client.get(self.url, {'date': self.monday.isoformat()})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class RestaurantAvailabilityAPITest(BookingAPITestCase):
    def setUp(self):
        super().setUp()
        self.url = reverse('restaurant-availability', kwargs={'restaurant_id': self.restaurant.pk})
        self.payload = {
            'management_mode': 'guest-count',
            'schedule': {
                'Monday': {'is_open': True, 'slots': ['18:00', '6:30 PM'], 'capacity_per_slot': 2},
                'Tuesday': {'is_open': False, 'slots': [], 'capacity_per_slot': 0},
            },
            'special_dates': {},
            'advance_booking_days': 14,
        }

    def test_unconfigured_restaurant_is_404(self):
        response = self.client.get(self.url)

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['code'], 'not_found')

    def test_manager_replaces_configuration(self):
        self.client.force_authenticate(user=self.manager)

        response = self.client.put(self.url, self.payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['schedule']['Monday']['slots'], ['18:00', '18:30'])
        self.assertEqual(response.data['advance_booking_days'], 14)

        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['schedule']['Tuesday']['is_open'])

    def test_invalid_slot_rejected(self):
        self.client.force_authenticate(user=self.manager)
        self.payload['schedule']['Monday']['slots'] = ['18:00', 'late']

        response = self.client.put(self.url, self.payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unknown_weekday_rejected(self):
        self.client.force_authenticate(user=self.manager)
        self.payload['schedule']['Someday'] = {'is_open': True, 'slots': [], 'capacity_per_slot': 1}

        response = self.client.put(self.url, self.payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_staff_cannot_change_configuration(self):
        self.client.force_authenticate(user=self.staff)

        response = self.client.put(self.url, self.payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_manager_of_other_restaurant_forbidden(self):
        self.client.force_authenticate(user=self.manager)
        url = reverse('restaurant-availability', kwargs={'restaurant_id': 2})

        response = self.client.put(url, self.payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_admin_can_configure_any_restaurant(self):
        self.client.force_authenticate(user=self.admin)
        url = reverse('restaurant-availability', kwargs={'restaurant_id': 2})

        response = self.client.put(url, self.payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)


class CreateBookingAPITest(BookingAPITestCase):
    """API tests for booking creation"""

    def setUp(self):
        super().setUp()
        configure(self.restaurant.pk, capacity=1)
        self.url = reverse('booking-list-create')
        self.client.force_authenticate(user=self.guest)

    def test_create_booking_success(self):
        data = {
            'restaurant': self.restaurant.id,
            'date': self.monday.isoformat(),
            'time': '18:00',
            'party_size': 2,
            'special_requests': 'Birthday',
        }

        response = self.client.post(self.url, data, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('detail', response.data)
        self.assertEqual(response.data['booking']['status'], 'pending')
        self.assertEqual(response.data['booking']['user_ref'], str(self.guest.pk))
        self.assertEqual(len(response.data['booking']['confirmation_code']), 6)

    def test_create_booking_unauthenticated(self):
        self.client.force_authenticate(user=None)

        response = self.client.post(self.url, {
            'restaurant': self.restaurant.id,
            'date': self.monday.isoformat(),
            'time': '18:00',
            'party_size': 2,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_create_booking_conflict(self):
        make_booking(self.restaurant, self.other_guest, date=self.monday, time='18:00')

        response = self.client.post(self.url, {
            'restaurant': self.restaurant.id,
            'date': self.monday.isoformat(),
            'time': '18:00',
            'party_size': 2,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'slot_unavailable')
        self.assertEqual(
            response.data['detail'], 'This time is no longer available, please pick another.'
        )

    def test_create_booking_beyond_window(self):
        response = self.client.post(self.url, {
            'restaurant': self.restaurant.id,
            'date': (timezone.localdate() + timedelta(days=90)).isoformat(),
            'time': '18:00',
            'party_size': 2,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid')

    def test_create_booking_invalid_party_size(self):
        response = self.client.post(self.url, {
            'restaurant': self.restaurant.id,
            'date': self.monday.isoformat(),
            'time': '18:00',
            'party_size': 0,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class BookingListAPITest(BookingAPITestCase):
    def setUp(self):
        super().setUp()
        self.url = reverse('booking-list-create')
        self.mine = make_booking(self.restaurant, self.guest, status=Booking.Status.PENDING)
        self.theirs = make_booking(self.restaurant, self.other_guest, status=Booking.Status.CONFIRMED)
        self.elsewhere = make_booking(Restaurant.objects.get(pk=2), self.guest, status=Booking.Status.PENDING)

    def test_guest_sees_only_own_bookings(self):
        self.client.force_authenticate(user=self.guest)

        response = self.client.get(self.url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual({item['id'] for item in response.data}, {self.mine.pk, self.elsewhere.pk})

    def test_staff_sees_restaurant_bookings(self):
        self.client.force_authenticate(user=self.staff)

        response = self.client.get(self.url)

        self.assertEqual({item['id'] for item in response.data}, {self.mine.pk, self.theirs.pk})

    def test_filter_by_multiple_statuses(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get(self.url, {'status': ['confirmed', 'seated']})

        self.assertEqual([item['id'] for item in response.data], [self.theirs.pk])

    def test_filter_by_user_reference(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get(self.url, {'user': str(self.guest.pk), 'restaurant': 1})

        self.assertEqual([item['id'] for item in response.data], [self.mine.pk])

    def test_detail_owner_or_staff(self):
        url = reverse('booking-detail', kwargs={'pk': self.theirs.pk})

        self.client.force_authenticate(user=self.guest)
        self.assertEqual(self.client.get(url).status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=self.staff)
        self.assertEqual(self.client.get(url).status_code, status.HTTP_200_OK)


class CancelBookingAPITest(BookingAPITestCase):
    """API tests for booking cancellation"""

    def setUp(self):
        super().setUp()
        self.booking = make_booking(self.restaurant, self.guest, status=Booking.Status.CONFIRMED)
        self.url = reverse('cancel-booking', kwargs={'pk': self.booking.pk})
        self.client.force_authenticate(user=self.guest)

    def test_cancel_booking_success(self):
        response = self.client.post(self.url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['booking']['status'], 'cancelled')

        # Cancelling again succeeds
        response = self.client.post(self.url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_cancel_booking_unauthenticated(self):
        self.client.force_authenticate(user=None)

        response = self.client.post(self.url)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_cancel_other_guests_booking(self):
        self.client.force_authenticate(user=self.other_guest)

        response = self.client.post(self.url)

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CONFIRMED)

    def test_cancel_completed_booking(self):
        self.booking.status = Booking.Status.COMPLETED
        self.booking.save()

        response = self.client.post(self.url)

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'invalid_transition')


class StaffConsoleAPITest(BookingAPITestCase):
    """Status changes, walk-ins and table assignment from the staff console"""

    def setUp(self):
        super().setUp()
        self.client.force_authenticate(user=self.staff)
        self.booking = make_booking(self.restaurant, self.guest, date=self.monday, status=Booking.Status.CONFIRMED)

    def test_seat_guest(self):
        url = reverse('booking-status', kwargs={'pk': self.booking.pk})

        response = self.client.post(url, {'status': 'seated'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'seated')

        response = self.client.post(url, {'status': 'pending'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'invalid_transition')

    def test_guest_cannot_change_status(self):
        self.client.force_authenticate(user=self.guest)
        url = reverse('booking-status', kwargs={'pk': self.booking.pk})

        response = self.client.post(url, {'status': 'seated'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_other_restaurant_staff_gets_404(self):
        self.client.force_authenticate(user=self.foreign_staff)
        url = reverse('booking-status', kwargs={'pk': self.booking.pk})

        response = self.client.post(url, {'status': 'seated'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_walk_in(self):
        configure(self.restaurant.pk, capacity=4)

        response = self.client.post(reverse('walk-in-create'), {
            'restaurant': self.restaurant.pk,
            'user_name': 'Jane',
            'party_size': 4,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'confirmed')
        self.assertTrue(response.data['is_walk_in'])
        self.assertEqual(response.data['user_ref'], 'walk_in')

    def test_walk_in_at_other_restaurant(self):
        configure(2, capacity=4)

        response = self.client.post(reverse('walk-in-create'), {
            'restaurant': 2,
            'user_name': 'Jane',
            'party_size': 2,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_assign_table(self):
        configure(self.restaurant.pk, management_mode='table-based')
        url = reverse('assign-table', kwargs={'pk': self.booking.pk})

        response = self.client.post(url, {'table': 2}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['table'], 2)
        self.assertEqual(response.data['table_number'], 'T2')

        other = make_booking(self.restaurant, self.other_guest, date=self.monday, status=Booking.Status.CONFIRMED)
        response = self.client.post(
            reverse('assign-table', kwargs={'pk': other.pk}), {'table': 2}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'table_unavailable')

    def test_assign_table_in_guest_count_mode(self):
        configure(self.restaurant.pk)
        url = reverse('assign-table', kwargs={'pk': self.booking.pk})

        response = self.client.post(url, {'table': 1}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid')

    def test_suggested_tables(self):
        configure(self.restaurant.pk, management_mode='table-based')
        self.booking.party_size = 5
        self.booking.save()

        response = self.client.get(reverse('suggested-tables', kwargs={'pk': self.booking.pk}))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([table['name'] for table in response.data], ['T3', 'T2', 'T1'])

    def test_timeslots_and_capacity(self):
        configure(self.restaurant.pk, capacity=4)
        make_booking(self.restaurant, self.other_guest, date=self.monday, time='18:30', party_size=4)
        url = reverse('restaurant-timeslots', kwargs={'restaurant_id': self.restaurant.pk})

        response = self.client.get(url, {'date': self.monday.isoformat()})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([group['time'] for group in response.data['groups']], ['18:00', '18:30'])
        self.assertEqual(response.data['capacity']['total_guests'], 6)
        self.assertEqual(response.data['capacity']['max_capacity'], 8)

    def test_stats(self):
        self.booking.status = Booking.Status.SEATED
        self.booking.save()
        self.booking.status = Booking.Status.COMPLETED
        self.booking.save()

        response = self.client.get(reverse('restaurant-booking-stats', kwargs={'restaurant_id': self.restaurant.pk}))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['completed_count'], 1)
        self.assertEqual(response.data['average_party_size'], 2.0)

    def test_stats_of_other_restaurant_forbidden(self):
        response = self.client.get(reverse('restaurant-booking-stats', kwargs={'restaurant_id': 2}))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class GuestProfileAPITest(BookingAPITestCase):
    def test_upcoming_and_history(self):
        today = timezone.localdate()
        upcoming = make_booking(self.restaurant, self.guest, date=today + timedelta(days=1))
        past = make_booking(
            self.restaurant, self.guest, date=today - timedelta(days=5), status=Booking.Status.COMPLETED
        )
        make_booking(self.restaurant, self.other_guest, date=today + timedelta(days=1))
        self.client.force_authenticate(user=self.guest)

        response = self.client.get(reverse('my-upcoming-bookings'))
        self.assertEqual([item['id'] for item in response.data], [upcoming.pk])

        response = self.client.get(reverse('my-booking-history'))
        self.assertEqual([item['id'] for item in response.data], [past.pk])


class BookingEventAPITest(BookingAPITestCase):
    def setUp(self):
        super().setUp()
        booking = make_booking(self.restaurant, self.guest)
        self.events = [
            BookingEvent.objects.create(
                restaurant=self.restaurant,
                booking=booking,
                user_ref=booking.user_ref,
                event_type=BookingEvent.EventType.CREATED,
                title='New Booking',
                body=f'{booking.user_name} - 2 guests at 18:00',
            )
            for _ in range(3)
        ]
        self.client.force_authenticate(user=self.staff)

    def test_event_feed(self):
        url = reverse('restaurant-events', kwargs={'restaurant_id': self.restaurant.pk})

        response = self.client.get(url, {'read': 'false'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 3)

    def test_mark_one_read(self):
        url = reverse('booking-event-read', kwargs={'pk': self.events[0].pk})

        response = self.client.post(url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['read'])

    def test_mark_all_read(self):
        url = reverse('restaurant-events-read-all', kwargs={'restaurant_id': self.restaurant.pk})

        response = self.client.post(url)

        self.assertEqual(response.data['updated'], 3)
        self.assertFalse(BookingEvent.objects.filter(read=False).exists())

    def test_feed_of_other_restaurant_forbidden(self):
        self.client.force_authenticate(user=self.foreign_staff)
        url = reverse('restaurant-events', kwargs={'restaurant_id': self.restaurant.pk})

        self.assertEqual(self.client.get(url).status_code, status.HTTP_403_FORBIDDEN)
