import booking.models
import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("restaurant", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="RestaurantAvailability",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "management_mode",
                    models.CharField(
                        choices=[("guest-count", "Guest count"), ("table-based", "Table based")],
                        default="guest-count",
                        max_length=15,
                    ),
                ),
                ("default_capacity_per_slot", models.PositiveIntegerField(default=4)),
                ("advance_booking_days", models.PositiveIntegerField(default=30)),
                ("table_turning_time", models.PositiveIntegerField(default=60)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "restaurant",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="availability",
                        to="restaurant.restaurant",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "restaurant availabilities",
            },
        ),
        migrations.CreateModel(
            name="DaySchedule",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("is_open", models.BooleanField(default=True)),
                ("slots", models.JSONField(blank=True, default=list)),
                ("capacity_per_slot", models.PositiveIntegerField(default=0)),
                (
                    "weekday",
                    models.CharField(
                        choices=[
                            ("Monday", "Monday"),
                            ("Tuesday", "Tuesday"),
                            ("Wednesday", "Wednesday"),
                            ("Thursday", "Thursday"),
                            ("Friday", "Friday"),
                            ("Saturday", "Saturday"),
                            ("Sunday", "Sunday"),
                        ],
                        max_length=10,
                    ),
                ),
                (
                    "availability",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="schedule",
                        to="booking.restaurantavailability",
                    ),
                ),
            ],
            options={
                "unique_together": {("availability", "weekday")},
            },
        ),
        migrations.CreateModel(
            name="SpecialDate",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("is_open", models.BooleanField(default=True)),
                ("slots", models.JSONField(blank=True, default=list)),
                ("capacity_per_slot", models.PositiveIntegerField(default=0)),
                ("date", models.DateField()),
                (
                    "availability",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="special_dates",
                        to="booking.restaurantavailability",
                    ),
                ),
            ],
            options={
                "ordering": ["date"],
                "unique_together": {("availability", "date")},
            },
        ),
        migrations.CreateModel(
            name="Booking",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("restaurant_name", models.CharField(max_length=100)),
                ("user_ref", models.CharField(db_index=True, max_length=50)),
                ("user_name", models.CharField(max_length=150)),
                ("user_email", models.CharField(blank=True, max_length=254)),
                ("user_phone", models.CharField(blank=True, max_length=20)),
                ("date", models.DateField()),
                ("time", models.CharField(help_text="Slot time, HH:MM", max_length=5)),
                (
                    "party_size",
                    models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)]),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("confirmed", "Confirmed"),
                            ("seated", "Seated"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                            ("no-show", "No-show"),
                        ],
                        default="pending",
                        max_length=15,
                    ),
                ),
                (
                    "confirmation_code",
                    models.CharField(
                        default=booking.models.generate_confirmation_code, editable=False, max_length=6
                    ),
                ),
                ("table_number", models.CharField(blank=True, max_length=50)),
                ("special_requests", models.TextField(blank=True)),
                ("is_walk_in", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "restaurant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to="restaurant.restaurant",
                    ),
                ),
                (
                    "table",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="bookings",
                        to="restaurant.table",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="bookings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["restaurant", "date", "time", "status"], name="booking_slot_status_idx"),
                    models.Index(fields=["user_ref", "date"], name="booking_user_date_idx"),
                    models.Index(fields=["restaurant", "status"], name="booking_rest_status_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="SlotLock",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("date", models.DateField()),
                ("time", models.CharField(max_length=5)),
                (
                    "restaurant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="+",
                        to="restaurant.restaurant",
                    ),
                ),
            ],
            options={
                "unique_together": {("restaurant", "date", "time")},
            },
        ),
        migrations.CreateModel(
            name="BookingEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("user_ref", models.CharField(blank=True, max_length=50)),
                (
                    "event_type",
                    models.CharField(
                        choices=[
                            ("booking_created", "Booking created"),
                            ("walk_in", "Walk-in"),
                            ("booking_updated", "Booking updated"),
                            ("booking_cancelled", "Booking cancelled"),
                        ],
                        max_length=20,
                    ),
                ),
                ("title", models.CharField(max_length=100)),
                ("body", models.CharField(blank=True, max_length=255)),
                ("data", models.JSONField(blank=True, default=dict)),
                ("read", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "booking",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="events",
                        to="booking.booking",
                    ),
                ),
                (
                    "restaurant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="booking_events",
                        to="restaurant.restaurant",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["restaurant", "read"], name="booking_event_unread_idx"),
                ],
            },
        ),
    ]
