from django.core.management.base import BaseCommand, CommandError

from booking.exceptions import BookingError
from booking.models import RestaurantAvailability
from restaurant.onboarding import init_availability


class Command(BaseCommand):
    help = "Give a restaurant the default lunch and dinner availability."

    def add_arguments(self, parser):
        parser.add_argument("restaurant_id", type=int)
        parser.add_argument(
            "--force",
            action="store_true",
            help="Replace an existing configuration.",
        )

    def handle(self, *args, **options):
        restaurant_id = options["restaurant_id"]

        exists = RestaurantAvailability.objects.filter(restaurant_id=restaurant_id).exists()
        if exists and not options["force"]:
            raise CommandError(
                f"Restaurant {restaurant_id} already has availability; use --force to replace it."
            )

        try:
            config = init_availability(restaurant_id)
        except BookingError as exc:
            raise CommandError(str(exc.detail))

        open_days = sum(1 for shape in config.schedule.values() if shape.is_open)
        self.stdout.write(
            self.style.SUCCESS(
                f"Availability set for restaurant {restaurant_id}: {open_days} open days."
            )
        )
