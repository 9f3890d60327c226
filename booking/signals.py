# booking/signals.py

from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from booking.models import DaySchedule, RestaurantAvailability, SpecialDate
from booking.services.schedule import ScheduleService
from restaurant.models import Table


@receiver([post_save, post_delete], sender=RestaurantAvailability)
def invalidate_on_availability_change(sender, instance, **kwargs):
    ScheduleService.invalidate(instance.restaurant_id)


@receiver([post_save, post_delete], sender=DaySchedule)
@receiver([post_save, post_delete], sender=SpecialDate)
def invalidate_on_schedule_change(sender, instance, **kwargs):
    restaurant_id = (
        RestaurantAvailability.objects.filter(pk=instance.availability_id)
        .values_list("restaurant_id", flat=True)
        .first()
    )
    if restaurant_id is not None:
        ScheduleService.invalidate(restaurant_id)


@receiver([post_save, post_delete], sender=Table)
def invalidate_on_table_change(sender, instance, **kwargs):
    ScheduleService.invalidate(instance.restaurant_id)
