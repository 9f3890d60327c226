import threading
from datetime import date, timedelta
from unittest import mock

from django.core.cache import cache
from django.db import OperationalError, connection
from django.test import TestCase, TransactionTestCase, override_settings
from django.utils import timezone

from booking.exceptions import (
    InvalidTransition,
    NotFound,
    ServiceUnavailable,
    SlotUnavailable,
    TableUnavailable,
    ValidationError,
)
from booking.models import Booking, BookingEvent, DaySchedule
from booking.services.availability import SlotAvailabilityService
from booking.services.directory import ReservationDirectory
from booking.services.lifecycle import BookingService, can_transition
from booking.services import schedule
from booking.services.schedule import WEEKDAYS, ScheduleService, weekday_name
from booking.tasks import record_booking_event
from booking.timeslots import InvalidSlot, normalize_slot
from restaurant.models import Restaurant, Table
from users.models import CustomUser


def next_weekday(weekday, start=None):
    """Next date strictly after `start` (default today) falling on `weekday` (0 = Monday)."""
    start = start or timezone.localdate()
    days_ahead = (weekday - start.weekday()) % 7 or 7
    return start + timedelta(days=days_ahead)


def configure(restaurant_id, slots=("18:00", "18:30"), capacity=1, days=None, **extra):
    shape = {"is_open": True, "slots": list(slots), "capacity_per_slot": capacity}
    data = {
        "management_mode": "guest-count",
        "schedule": {day: dict(shape) for day in (days or WEEKDAYS)},
        "special_dates": {},
    }
    data.update(extra)
    return ScheduleService.set_availability(restaurant_id, data)


def make_booking(restaurant, user=None, **fields):
    defaults = {
        "restaurant": restaurant,
        "user": user,
        "user_ref": str(user.pk) if user else "walk_in",
        "user_name": user.display_name if user else "Guest",
        "date": timezone.localdate() + timedelta(days=1),
        "time": "18:00",
        "party_size": 2,
        "status": Booking.Status.CONFIRMED,
    }
    defaults.update(fields)
    return Booking.objects.create(**defaults)


class BookingTestCase(TestCase):
    fixtures = ['users.json', 'restaurant.json', 'tables.json']

    def setUp(self):
        cache.clear()
        patcher = mock.patch('booking.tasks.record_booking_event.delay')
        self.mock_delay = patcher.start()
        self.addCleanup(patcher.stop)

        self.restaurant = Restaurant.objects.get(pk=1)
        self.guest = CustomUser.objects.get(username='alice')
        self.other_guest = CustomUser.objects.get(username='bob')
        self.staff = CustomUser.objects.get(username='sam')
        self.foreign_staff = CustomUser.objects.get(username='otto')


class TimeSlotTest(TestCase):
    def test_normalize_pads_hour(self):
        self.assertEqual(normalize_slot('9:00'), '09:00')
        self.assertEqual(normalize_slot('21:30'), '21:30')

    def test_normalize_twelve_hour_form(self):
        self.assertEqual(normalize_slot('9:30 PM'), '21:30')
        self.assertEqual(normalize_slot('12:00 AM'), '00:00')
        self.assertEqual(normalize_slot('12:15 pm'), '12:15')

    def test_normalize_rejects_garbage(self):
        for value in ('25:00', '9', '18:60', 'noon', None):
            with self.assertRaises(InvalidSlot):
                normalize_slot(value)


class ScheduleServiceTest(BookingTestCase):
    """Configuration storage and day resolution"""

    def test_unconfigured_restaurant_is_closed(self):
        shape = ScheduleService.resolve_day_schedule(self.restaurant.pk, next_weekday(0))

        self.assertFalse(shape.is_open)
        self.assertEqual(shape.slots, ())
        self.assertEqual(shape.capacity_per_slot, 0)

    def test_unknown_restaurant_is_closed(self):
        shape = ScheduleService.resolve_day_schedule(9999, next_weekday(0))
        self.assertFalse(shape.is_open)

    def test_missing_weekday_is_closed(self):
        configure(self.restaurant.pk, days=['Monday'])

        self.assertTrue(ScheduleService.resolve_day_schedule(self.restaurant.pk, next_weekday(0)).is_open)
        self.assertFalse(ScheduleService.resolve_day_schedule(self.restaurant.pk, next_weekday(1)).is_open)

    def test_special_date_overrides_weekday(self):
        monday = next_weekday(0)
        configure(
            self.restaurant.pk,
            special_dates={monday.isoformat(): {"is_open": False, "slots": [], "capacity_per_slot": 0}},
        )

        self.assertFalse(ScheduleService.resolve_day_schedule(self.restaurant.pk, monday).is_open)
        self.assertTrue(
            ScheduleService.resolve_day_schedule(self.restaurant.pk, monday + timedelta(days=7)).is_open
        )

    def test_slots_are_normalized_and_sorted(self):
        configure(self.restaurant.pk, slots=['19:00', '9:30 AM', '18:00'])

        shape = ScheduleService.resolve_day_schedule(self.restaurant.pk, next_weekday(2))
        self.assertEqual(shape.slots, ('09:30', '18:00', '19:00'))

    def test_duplicate_slots_rejected(self):
        with self.assertRaises(ValidationError):
            configure(self.restaurant.pk, slots=['18:00', '6:00 PM'])

    def test_unknown_weekday_rejected(self):
        with self.assertRaises(ValidationError):
            ScheduleService.set_availability(
                self.restaurant.pk,
                {"schedule": {"Funday": {"is_open": True, "slots": [], "capacity_per_slot": 1}}},
            )

    def test_set_availability_unknown_restaurant(self):
        with self.assertRaises(NotFound):
            configure(9999)

    def test_set_availability_replaces_previous_rows(self):
        configure(self.restaurant.pk)
        configure(self.restaurant.pk, days=['Friday'])

        self.assertEqual(
            list(DaySchedule.objects.filter(availability__restaurant=self.restaurant).values_list('weekday', flat=True)),
            ['Friday'],
        )

    def test_config_is_cached_and_invalidated_by_model_save(self):
        configure(self.restaurant.pk, capacity=1)
        monday = next_weekday(0)
        self.assertEqual(ScheduleService.resolve_day_schedule(self.restaurant.pk, monday).capacity_per_slot, 1)
        self.assertIsNotNone(cache.get(ScheduleService.cache_key(self.restaurant.pk)))

        row = DaySchedule.objects.get(availability__restaurant=self.restaurant, weekday='Monday')
        row.capacity_per_slot = 3
        row.save()

        self.assertIsNone(cache.get(ScheduleService.cache_key(self.restaurant.pk)))
        self.assertEqual(ScheduleService.resolve_day_schedule(self.restaurant.pk, monday).capacity_per_slot, 3)

    def test_table_change_invalidates_cache(self):
        configure(self.restaurant.pk, management_mode='table-based')
        ScheduleService.get_config(self.restaurant.pk)

        Table.objects.filter(pk=1).first().delete()

        config = ScheduleService.get_config(self.restaurant.pk)
        self.assertNotIn(1, [table.id for table in config.tables])

    def test_sync_tables_deactivates_unlisted(self):
        configure(
            self.restaurant.pk,
            management_mode='table-based',
            tables=[{"name": "T1", "capacity": 2}, {"name": "Bar", "capacity": 3}],
        )

        self.assertFalse(Table.objects.get(restaurant=self.restaurant, name='T3').is_active)
        self.assertTrue(Table.objects.get(restaurant=self.restaurant, name='Bar').is_active)
        self.assertEqual(Table.objects.get(restaurant=self.restaurant, name='Bar').position, 1)

    def test_sync_tables_rejects_duplicate_names(self):
        with self.assertRaises(ValidationError):
            configure(
                self.restaurant.pk,
                tables=[{"name": "T1", "capacity": 2}, {"name": "T1", "capacity": 4}],
            )

    def test_weekday_name(self):
        self.assertEqual(weekday_name(date(2024, 1, 1)), 'Monday')
        self.assertEqual(weekday_name(date(2024, 1, 7)), 'Sunday')


class SlotAvailabilityServiceTest(BookingTestCase):
    """Slot evaluation against the schedule and current bookings"""

    def test_no_configuration_means_no_slots(self):
        self.assertEqual(SlotAvailabilityService.get_available_slots(self.restaurant.pk, next_weekday(0)), [])

    def test_full_slot_is_dropped(self):
        configure(self.restaurant.pk, capacity=1)
        monday = next_weekday(0)
        make_booking(self.restaurant, self.guest, date=monday, time='18:00')

        self.assertEqual(
            SlotAvailabilityService.get_available_slots(self.restaurant.pk, monday),
            ['18:30'],
        )

    def test_cancelled_bookings_free_the_slot(self):
        configure(self.restaurant.pk, capacity=1)
        monday = next_weekday(0)
        make_booking(self.restaurant, self.guest, date=monday, status=Booking.Status.CANCELLED)
        make_booking(self.restaurant, self.guest, date=monday, time='18:30', status=Booking.Status.NO_SHOW)

        self.assertEqual(
            SlotAvailabilityService.get_available_slots(self.restaurant.pk, monday),
            ['18:00', '18:30'],
        )

    def test_party_size_does_not_change_guest_count_slots(self):
        configure(self.restaurant.pk, capacity=1)
        monday = next_weekday(0)

        self.assertEqual(
            SlotAvailabilityService.get_available_slots(self.restaurant.pk, monday, party_size=12),
            ['18:00', '18:30'],
        )

    def test_invalid_party_size(self):
        configure(self.restaurant.pk)
        with self.assertRaises(ValidationError):
            SlotAvailabilityService.get_available_slots(self.restaurant.pk, next_weekday(0), party_size=0)

    def test_past_and_far_future_dates_have_no_slots(self):
        configure(self.restaurant.pk, advance_booking_days=7)
        today = timezone.localdate()

        self.assertEqual(
            SlotAvailabilityService.get_available_slots(self.restaurant.pk, today - timedelta(days=1)), []
        )
        self.assertEqual(
            SlotAvailabilityService.get_available_slots(self.restaurant.pk, today + timedelta(days=8)), []
        )
        self.assertNotEqual(
            SlotAvailabilityService.get_available_slots(self.restaurant.pk, today + timedelta(days=7)), []
        )

    def test_started_slots_dropped_today(self):
        configure(self.restaurant.pk)
        now = timezone.localtime().replace(hour=18, minute=10, second=0, microsecond=0)

        self.assertEqual(
            SlotAvailabilityService.get_available_slots(self.restaurant.pk, now.date(), now=now),
            ['18:30'],
        )

    def test_slot_starting_now_is_dropped(self):
        configure(self.restaurant.pk)
        now = timezone.localtime().replace(hour=18, minute=30, second=0, microsecond=0)

        self.assertEqual(SlotAvailabilityService.get_available_slots(self.restaurant.pk, now.date(), now=now), [])

    def test_slot_capacities_report_load(self):
        configure(self.restaurant.pk, capacity=3)
        monday = next_weekday(0)
        make_booking(self.restaurant, self.guest, date=monday, time='18:00')

        capacities = SlotAvailabilityService.get_slot_capacities(self.restaurant.pk, monday)

        self.assertEqual(capacities[0], {"time": "18:00", "capacity": 3, "booked": 1, "available": 2})
        self.assertEqual(capacities[1]["available"], 3)

    def test_table_based_capacity_is_active_table_count(self):
        configure(
            self.restaurant.pk,
            management_mode='table-based',
            tables=[
                {"name": "T1", "capacity": 2, "is_active": True},
                {"name": "T2", "capacity": 6, "is_active": False},
            ],
        )
        monday = next_weekday(0)
        make_booking(self.restaurant, self.guest, date=monday, time='18:00')

        self.assertEqual(SlotAvailabilityService.get_available_slots(self.restaurant.pk, monday), ['18:30'])

    def test_only_active_tables_are_assignable(self):
        configure(
            self.restaurant.pk,
            management_mode='table-based',
            tables=[
                {"name": "T1", "capacity": 2, "is_active": True},
                {"name": "T2", "capacity": 6, "is_active": False},
            ],
        )

        tables = SlotAvailabilityService.get_assignable_tables(self.restaurant.pk, next_weekday(0), '18:00')
        self.assertEqual([table.name for table in tables], ['T1'])

    def test_suggest_tables_orders_by_fit(self):
        configure(self.restaurant.pk, management_mode='table-based')

        tables = SlotAvailabilityService.suggest_tables(self.restaurant.pk, next_weekday(0), '18:00', 3)
        self.assertEqual([table.name for table in tables], ['T2', 'T3', 'T1'])

    def test_capacity_overview_sums_party_sizes(self):
        configure(self.restaurant.pk, capacity=4)
        monday = next_weekday(0)
        make_booking(self.restaurant, self.guest, date=monday, party_size=2)
        make_booking(self.restaurant, self.guest, date=monday, time='18:30', party_size=4)
        make_booking(self.restaurant, self.guest, date=monday, party_size=6, status=Booking.Status.CANCELLED)

        overview = SlotAvailabilityService.capacity_overview(self.restaurant.pk, monday)

        self.assertEqual(overview["total_guests"], 6)
        self.assertEqual(overview["max_capacity"], 8)
        self.assertEqual(overview["percentage"], 75.0)

    def test_capacity_overview_table_based_uses_seats(self):
        configure(self.restaurant.pk, management_mode='table-based')

        overview = SlotAvailabilityService.capacity_overview(self.restaurant.pk, next_weekday(0))
        self.assertEqual(overview["max_capacity"], 12)

    def test_capacity_overview_fallback(self):
        overview = SlotAvailabilityService.capacity_overview(self.restaurant.pk, next_weekday(0))

        self.assertEqual(overview["max_capacity"], 100)
        self.assertEqual(overview["percentage"], 0.0)


class CreateBookingTest(BookingTestCase):
    """Guest booking creation"""

    def setUp(self):
        super().setUp()
        configure(self.restaurant.pk, capacity=1)
        self.monday = next_weekday(0)

    def test_monday_slot_fills_up(self):
        booking_a = BookingService.create_booking(self.restaurant.pk, self.guest, self.monday, '18:00', 2)
        self.assertEqual(booking_a.status, Booking.Status.PENDING)

        with self.assertRaises(SlotUnavailable):
            BookingService.create_booking(self.restaurant.pk, self.other_guest, self.monday, '18:00', 2)

        booking_c = BookingService.create_booking(self.restaurant.pk, self.other_guest, self.monday, '18:30', 2)
        self.assertEqual(booking_c.status, Booking.Status.PENDING)

    def test_booking_copies_guest_and_restaurant(self):
        booking = BookingService.create_booking(
            self.restaurant.pk, self.guest, self.monday, '6:00 PM', 3, special_requests='Window seat'
        )

        self.assertEqual(booking.time, '18:00')
        self.assertEqual(booking.restaurant_name, 'Trattoria Roma')
        self.assertEqual(booking.user_ref, str(self.guest.pk))
        self.assertEqual(booking.user_name, 'Alice Guest')
        self.assertEqual(booking.user_email, 'alice@example.com')
        self.assertEqual(booking.user_phone, '555-0101')
        self.assertEqual(len(booking.confirmation_code), 6)
        self.assertTrue(booking.confirmation_code.isalnum())
        self.assertFalse(booking.is_walk_in)

    def test_unknown_slot_rejected(self):
        with self.assertRaises(SlotUnavailable):
            BookingService.create_booking(self.restaurant.pk, self.guest, self.monday, '19:00', 2)

    def test_malformed_time_rejected(self):
        with self.assertRaises(ValidationError):
            BookingService.create_booking(self.restaurant.pk, self.guest, self.monday, 'dinner', 2)

    def test_invalid_party_size_rejected(self):
        with self.assertRaises(ValidationError):
            BookingService.create_booking(self.restaurant.pk, self.guest, self.monday, '18:00', 0)

    def test_past_date_rejected(self):
        with self.assertRaises(SlotUnavailable):
            BookingService.create_booking(
                self.restaurant.pk, self.guest, timezone.localdate() - timedelta(days=1), '18:00', 2
            )

    def test_date_beyond_window_rejected(self):
        far = timezone.localdate() + timedelta(days=60)
        with self.assertRaises(ValidationError):
            BookingService.create_booking(self.restaurant.pk, self.guest, far, '18:00', 2)

    def test_closed_day_rejected(self):
        configure(
            self.restaurant.pk,
            capacity=1,
            special_dates={self.monday.isoformat(): {"is_open": False, "slots": [], "capacity_per_slot": 0}},
        )
        with self.assertRaises(SlotUnavailable):
            BookingService.create_booking(self.restaurant.pk, self.guest, self.monday, '18:00', 2)

    def test_unknown_restaurant(self):
        with self.assertRaises(NotFound):
            BookingService.create_booking(9999, self.guest, self.monday, '18:00', 2)

    def test_creation_emits_event_after_commit(self):
        with self.captureOnCommitCallbacks(execute=True):
            booking = BookingService.create_booking(self.restaurant.pk, self.guest, self.monday, '18:00', 2)

        self.mock_delay.assert_called_once()
        kwargs = self.mock_delay.call_args.kwargs
        self.assertEqual(kwargs["event_type"], BookingEvent.EventType.CREATED)
        self.assertEqual(kwargs["booking_id"], booking.pk)
        self.assertEqual(kwargs["restaurant_id"], self.restaurant.pk)

    def test_rejected_booking_emits_nothing(self):
        BookingService.create_booking(self.restaurant.pk, self.guest, self.monday, '18:00', 2)
        self.mock_delay.reset_mock()

        with self.captureOnCommitCallbacks(execute=True):
            with self.assertRaises(SlotUnavailable):
                BookingService.create_booking(self.restaurant.pk, self.other_guest, self.monday, '18:00', 2)

        self.mock_delay.assert_not_called()

    @override_settings(BOOKING_RETRY_BACKOFF=0)
    def test_transient_failure_is_retried_once(self):
        with mock.patch(
            'booking.services.lifecycle.lock_slot',
            side_effect=[OperationalError('database is locked'), None],
        ) as mock_lock:
            booking = BookingService.create_booking(self.restaurant.pk, self.guest, self.monday, '18:00', 2)

        self.assertEqual(mock_lock.call_count, 2)
        self.assertEqual(booking.status, Booking.Status.PENDING)

    @override_settings(BOOKING_RETRY_BACKOFF=0)
    def test_persistent_failure_is_service_unavailable(self):
        with mock.patch(
            'booking.services.lifecycle.lock_slot',
            side_effect=OperationalError('database is locked'),
        ) as mock_lock:
            with self.assertRaises(ServiceUnavailable):
                BookingService.create_booking(self.restaurant.pk, self.guest, self.monday, '18:00', 2)

        self.assertEqual(mock_lock.call_count, 2)
        self.assertFalse(Booking.objects.exists())


class WalkInTest(BookingTestCase):
    def setUp(self):
        super().setUp()
        self.now = timezone.localtime().replace(second=0, microsecond=0)

    def test_walk_in_is_confirmed_immediately(self):
        configure(self.restaurant.pk, capacity=4)

        booking = BookingService.create_walk_in(self.restaurant.pk, 'Jane', 4, now=self.now)

        self.assertEqual(booking.status, Booking.Status.CONFIRMED)
        self.assertTrue(booking.is_walk_in)
        self.assertEqual(booking.date, self.now.date())
        self.assertEqual(booking.time, self.now.strftime('%H:%M'))
        self.assertEqual(booking.user_ref, 'walk_in')
        self.assertEqual(booking.user_email, 'walkin@restaurant.com')
        self.assertIsNone(booking.user)

    def test_walk_in_respects_capacity_at_that_minute(self):
        configure(self.restaurant.pk, capacity=1)
        BookingService.create_walk_in(self.restaurant.pk, 'Jane', 2, now=self.now)

        with self.assertRaises(SlotUnavailable):
            BookingService.create_walk_in(self.restaurant.pk, 'John', 2, now=self.now)

        later = BookingService.create_walk_in(self.restaurant.pk, 'John', 2, now=self.now + timedelta(minutes=1))
        self.assertEqual(later.status, Booking.Status.CONFIRMED)

    def test_walk_in_on_closed_day(self):
        configure(
            self.restaurant.pk,
            capacity=4,
            special_dates={self.now.date().isoformat(): {"is_open": False, "slots": [], "capacity_per_slot": 0}},
        )
        with self.assertRaises(SlotUnavailable):
            BookingService.create_walk_in(self.restaurant.pk, 'Jane', 2, now=self.now)

    def test_walk_in_without_configuration(self):
        with self.assertRaises(SlotUnavailable):
            BookingService.create_walk_in(self.restaurant.pk, 'Jane', 2, now=self.now)

    def test_walk_in_requires_name(self):
        configure(self.restaurant.pk, capacity=4)
        with self.assertRaises(ValidationError):
            BookingService.create_walk_in(self.restaurant.pk, '  ', 2, now=self.now)

    def test_walk_in_emits_event(self):
        configure(self.restaurant.pk, capacity=4)
        with self.captureOnCommitCallbacks(execute=True):
            BookingService.create_walk_in(self.restaurant.pk, 'Jane', 2, now=self.now)

        self.assertEqual(self.mock_delay.call_args.kwargs["event_type"], BookingEvent.EventType.WALK_IN)


class StatusTransitionTest(BookingTestCase):
    """State machine over booking statuses"""

    def test_transition_table(self):
        self.assertTrue(can_transition('pending', 'confirmed'))
        self.assertTrue(can_transition('confirmed', 'no-show'))
        self.assertTrue(can_transition('seated', 'completed'))
        self.assertFalse(can_transition('pending', 'seated'))
        self.assertFalse(can_transition('seated', 'cancelled'))

    def test_seated_cannot_go_back_to_pending(self):
        booking = make_booking(self.restaurant, self.guest, status=Booking.Status.CONFIRMED)

        booking = BookingService.update_status(booking.pk, Booking.Status.SEATED)
        self.assertEqual(booking.status, Booking.Status.SEATED)

        with self.assertRaises(InvalidTransition):
            BookingService.update_status(booking.pk, Booking.Status.PENDING)

        booking.refresh_from_db()
        self.assertEqual(booking.status, Booking.Status.SEATED)

    def test_terminal_statuses_never_change(self):
        for terminal in (Booking.Status.COMPLETED, Booking.Status.NO_SHOW, Booking.Status.CANCELLED):
            booking = make_booking(self.restaurant, self.guest, status=terminal)
            for target in (Booking.Status.PENDING, Booking.Status.CONFIRMED, Booking.Status.SEATED):
                with self.assertRaises(InvalidTransition):
                    BookingService.update_status(booking.pk, target)
            booking.refresh_from_db()
            self.assertEqual(booking.status, terminal)

    def test_unknown_status(self):
        booking = make_booking(self.restaurant, self.guest)
        with self.assertRaises(ValidationError):
            BookingService.update_status(booking.pk, 'eaten')

    def test_unknown_booking(self):
        with self.assertRaises(NotFound):
            BookingService.update_status(424242, Booking.Status.CONFIRMED)

    def test_status_change_emits_event(self):
        booking = make_booking(self.restaurant, self.guest, status=Booking.Status.PENDING)

        with self.captureOnCommitCallbacks(execute=True):
            BookingService.update_status(booking.pk, Booking.Status.CONFIRMED)

        kwargs = self.mock_delay.call_args.kwargs
        self.assertEqual(kwargs["event_type"], BookingEvent.EventType.UPDATED)
        self.assertEqual(kwargs["title"], 'Booking confirmed')


class CancelBookingTest(BookingTestCase):
    def test_cancel_is_idempotent(self):
        booking = make_booking(self.restaurant, self.guest, status=Booking.Status.PENDING)

        first = BookingService.cancel_booking(booking.pk, by_user=self.guest)
        updated_at = first.updated_at
        second = BookingService.cancel_booking(booking.pk, by_user=self.guest)

        self.assertEqual(second.status, Booking.Status.CANCELLED)
        self.assertEqual(second.updated_at, updated_at)

    def test_second_cancel_emits_nothing(self):
        booking = make_booking(self.restaurant, self.guest, status=Booking.Status.PENDING)
        BookingService.cancel_booking(booking.pk)
        self.mock_delay.reset_mock()

        with self.captureOnCommitCallbacks(execute=True):
            BookingService.cancel_booking(booking.pk)

        self.mock_delay.assert_not_called()

    def test_completed_booking_cannot_be_cancelled(self):
        booking = make_booking(self.restaurant, self.guest, status=Booking.Status.COMPLETED)
        with self.assertRaises(InvalidTransition):
            BookingService.cancel_booking(booking.pk)

    def test_other_guest_cannot_cancel(self):
        booking = make_booking(self.restaurant, self.guest)
        with self.assertRaises(NotFound):
            BookingService.cancel_booking(booking.pk, by_user=self.other_guest)

    def test_restaurant_staff_can_cancel(self):
        booking = make_booking(self.restaurant, self.guest)

        with self.assertRaises(NotFound):
            BookingService.cancel_booking(booking.pk, by_user=self.foreign_staff)

        booking = BookingService.cancel_booking(booking.pk, by_user=self.staff)
        self.assertEqual(booking.status, Booking.Status.CANCELLED)

    def test_cancel_frees_the_slot(self):
        configure(self.restaurant.pk, capacity=1)
        monday = next_weekday(0)
        booking = BookingService.create_booking(self.restaurant.pk, self.guest, monday, '18:00', 2)

        BookingService.cancel_booking(booking.pk, by_user=self.guest)

        self.assertIn('18:00', SlotAvailabilityService.get_available_slots(self.restaurant.pk, monday))


class AssignTableTest(BookingTestCase):
    def setUp(self):
        super().setUp()
        self.monday = next_weekday(0)

    def test_inactive_table_unavailable(self):
        configure(
            self.restaurant.pk,
            management_mode='table-based',
            tables=[
                {"name": "T1", "capacity": 2, "is_active": True},
                {"name": "T2", "capacity": 6, "is_active": False},
            ],
        )
        booking = BookingService.create_booking(self.restaurant.pk, self.guest, self.monday, '18:00', 2)
        t1 = Table.objects.get(restaurant=self.restaurant, name='T1')
        t2 = Table.objects.get(restaurant=self.restaurant, name='T2')

        with self.assertRaises(TableUnavailable) as ctx:
            BookingService.assign_table(booking.pk, t2.pk)
        self.assertIn('T2', str(ctx.exception.detail))

        booking = BookingService.assign_table(booking.pk, t1.pk)
        self.assertEqual(booking.table, t1)
        self.assertEqual(booking.table_number, 'T1')

    def test_table_not_assigned_twice_at_same_slot(self):
        configure(self.restaurant.pk, management_mode='table-based')
        first = make_booking(self.restaurant, self.guest, date=self.monday, time='18:00')
        second = make_booking(self.restaurant, self.other_guest, date=self.monday, time='18:00')
        later = make_booking(self.restaurant, self.other_guest, date=self.monday, time='18:30')

        BookingService.assign_table(first.pk, 1)

        with self.assertRaises(TableUnavailable):
            BookingService.assign_table(second.pk, 1)

        # Same table at another time is fine
        BookingService.assign_table(later.pk, 1)
        # Re-assigning the table a booking already holds is fine too
        BookingService.assign_table(first.pk, 1)

    def test_table_freed_by_cancellation(self):
        configure(self.restaurant.pk, management_mode='table-based')
        first = make_booking(self.restaurant, self.guest, date=self.monday)
        second = make_booking(self.restaurant, self.other_guest, date=self.monday)
        BookingService.assign_table(first.pk, 1)

        BookingService.cancel_booking(first.pk)

        self.assertEqual(BookingService.assign_table(second.pk, 1).table_id, 1)

    def test_guest_count_mode_rejects_assignment(self):
        configure(self.restaurant.pk)
        booking = make_booking(self.restaurant, self.guest, date=self.monday)

        with self.assertRaises(ValidationError):
            BookingService.assign_table(booking.pk, 1)

    def test_terminal_booking_rejects_assignment(self):
        configure(self.restaurant.pk, management_mode='table-based')
        booking = make_booking(self.restaurant, self.guest, date=self.monday, status=Booking.Status.COMPLETED)

        with self.assertRaises(InvalidTransition):
            BookingService.assign_table(booking.pk, 1)

    def test_table_of_other_restaurant(self):
        configure(self.restaurant.pk, management_mode='table-based')
        booking = make_booking(self.restaurant, self.guest, date=self.monday)

        with self.assertRaises(NotFound):
            BookingService.assign_table(booking.pk, 4)


class ReservationDirectoryTest(BookingTestCase):
    """Read-side projections"""

    def test_average_party_size_counts_completed_only(self):
        make_booking(self.restaurant, self.guest, party_size=2, status=Booking.Status.COMPLETED)
        make_booking(self.restaurant, self.guest, party_size=4, status=Booking.Status.COMPLETED)
        make_booking(self.restaurant, self.guest, party_size=10, status=Booking.Status.CANCELLED)
        make_booking(self.restaurant, self.guest, party_size=8, status=Booking.Status.NO_SHOW)
        make_booking(self.restaurant, self.guest, party_size=6, status=Booking.Status.CONFIRMED)

        stats = ReservationDirectory.stats(self.restaurant.pk)

        self.assertEqual(stats["average_party_size"], 3.0)
        self.assertEqual(stats["total_count"], 5)
        self.assertEqual(stats["completed_count"], 2)
        self.assertEqual(stats["cancelled_count"], 1)
        self.assertEqual(stats["no_show_rate"], 20.0)
        self.assertEqual(stats["upcoming_count"], 1)

    def test_stats_of_empty_restaurant(self):
        stats = ReservationDirectory.stats(self.restaurant.pk)

        self.assertEqual(stats["total_count"], 0)
        self.assertEqual(stats["average_party_size"], 0.0)
        self.assertEqual(stats["no_show_rate"], 0.0)

    def test_group_by_time_slot(self):
        day = next_weekday(0)
        make_booking(self.restaurant, self.guest, date=day, time='19:00', party_size=2)
        make_booking(self.restaurant, self.guest, date=day, time='18:00', party_size=3)
        make_booking(self.restaurant, self.other_guest, date=day, time='18:00', party_size=4)
        make_booking(self.restaurant, self.other_guest, date=day, time='20:00', status=Booking.Status.CANCELLED)

        groups = ReservationDirectory.group_by_time_slot(self.restaurant.pk, day)

        self.assertEqual([group["time"] for group in groups], ['18:00', '19:00'])
        self.assertEqual(groups[0]["total_guests"], 7)
        self.assertEqual(len(groups[0]["bookings"]), 2)

    def test_list_bookings_filters(self):
        day = next_weekday(0)
        mine = make_booking(self.restaurant, self.guest, date=day, status=Booking.Status.PENDING)
        make_booking(self.restaurant, self.other_guest, date=day, status=Booking.Status.CONFIRMED)
        walk_in = make_booking(self.restaurant, None, date=day, status=Booking.Status.SEATED)

        self.assertEqual(list(ReservationDirectory.list_bookings(user_id=self.guest.pk)), [mine])
        self.assertEqual(list(ReservationDirectory.list_bookings(user_id='walk_in')), [walk_in])
        self.assertEqual(
            ReservationDirectory.list_bookings(
                restaurant_id=self.restaurant.pk, status_in=['pending', 'seated']
            ).count(),
            2,
        )
        self.assertEqual(ReservationDirectory.list_bookings(restaurant_id=2).count(), 0)

    def test_list_bookings_newest_first(self):
        first = make_booking(self.restaurant, self.guest)
        second = make_booking(self.restaurant, self.guest)

        self.assertEqual(list(ReservationDirectory.list_bookings(restaurant_id=self.restaurant.pk)), [second, first])

    def test_upcoming_and_history(self):
        today = timezone.localdate()
        upcoming = make_booking(self.restaurant, self.guest, date=today + timedelta(days=2))
        make_booking(self.restaurant, self.guest, date=today + timedelta(days=3), status=Booking.Status.CANCELLED)
        past = make_booking(self.restaurant, self.guest, date=today - timedelta(days=3), status=Booking.Status.COMPLETED)

        self.assertEqual(list(ReservationDirectory.upcoming_for_user(self.guest)), [upcoming])
        self.assertEqual(list(ReservationDirectory.history_for_user(self.guest)), [past])


class RecordBookingEventTaskTest(BookingTestCase):
    def test_task_stores_event(self):
        booking = make_booking(self.restaurant, self.guest)

        result = record_booking_event(
            restaurant_id=self.restaurant.pk,
            booking_id=booking.pk,
            user_ref=booking.user_ref,
            event_type=BookingEvent.EventType.CREATED,
            title='New Booking',
            body='Alice Guest - 2 guests at 18:00',
            data={"time": "18:00"},
        )

        event = BookingEvent.objects.get(pk=result["event_id"])
        self.assertEqual(result["status"], 'recorded')
        self.assertEqual(event.booking, booking)
        self.assertFalse(event.read)

        event.mark_read()
        event.refresh_from_db()
        self.assertTrue(event.read)


class ConcurrentBookingTest(TransactionTestCase):
    """Parallel requests for the last seat must not overbook"""

    fixtures = ['users.json', 'restaurant.json', 'tables.json']

    def setUp(self):
        cache.clear()
        patcher = mock.patch('booking.tasks.record_booking_event.delay')
        patcher.start()
        self.addCleanup(patcher.stop)

        self.restaurant = Restaurant.objects.get(pk=1)
        configure(self.restaurant.pk, capacity=1)
        self.monday = next_weekday(0)

    def test_no_overbooking_under_concurrency(self):
        guests = list(CustomUser.objects.filter(role=CustomUser.Role.CUSTOMER)) * 4
        outcomes = []
        barrier = threading.Barrier(len(guests))

        def attempt(guest):
            try:
                barrier.wait()
                BookingService.create_booking(self.restaurant.pk, guest, self.monday, '18:00', 2)
                outcomes.append('ok')
            except SlotUnavailable:
                outcomes.append('full')
            finally:
                connection.close()

        threads = [threading.Thread(target=attempt, args=(guest,)) for guest in guests]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(outcomes.count('ok'), 1)
        self.assertEqual(outcomes.count('full'), len(guests) - 1)
        self.assertEqual(
            Booking.objects.filter(restaurant=self.restaurant, date=self.monday, time='18:00').count(),
            1,
        )

    def test_table_assigned_once_under_concurrency(self):
        configure(self.restaurant.pk, management_mode='table-based')
        bookings = [
            make_booking(self.restaurant, user, date=self.monday, time='18:00')
            for user in CustomUser.objects.filter(role=CustomUser.Role.CUSTOMER)
        ]
        outcomes = []
        barrier = threading.Barrier(len(bookings))

        def attempt(booking):
            try:
                barrier.wait()
                BookingService.assign_table(booking.pk, 1)
                outcomes.append('ok')
            except TableUnavailable:
                outcomes.append('taken')
            finally:
                connection.close()

        threads = [threading.Thread(target=attempt, args=(booking,)) for booking in bookings]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(sorted(outcomes), ['ok', 'taken'])
        self.assertEqual(
            Booking.objects.filter(
                restaurant=self.restaurant, date=self.monday, time='18:00', table_id=1
            ).count(),
            1,
        )


class AvailabilityCacheCommitTest(TransactionTestCase):
    """A reader inside the write window must not leave stale config cached"""

    fixtures = ['users.json', 'restaurant.json', 'tables.json']

    def setUp(self):
        cache.clear()
        self.monday = next_weekday(0)
        configure(1, slots=['18:00'], days=['Monday'])
        ScheduleService.get_config(1)

    def test_reader_during_write_does_not_keep_stale_config(self):
        seen = []

        def read_config():
            try:
                seen.append(ScheduleService.get_config(1).resolve(self.monday).slots)
            finally:
                connection.close()

        def read_before_commit(*args, **kwargs):
            if not seen:
                reader = threading.Thread(target=read_config)
                reader.start()
                reader.join()

        with mock.patch.object(schedule.logger, 'info', side_effect=read_before_commit):
            configure(1, slots=['20:00'], days=['Monday'])

        self.assertEqual(tuple(seen[0]), ('18:00',))
        self.assertEqual(tuple(ScheduleService.get_config(1).resolve(self.monday).slots), ('20:00',))
