# config/celery.py

from celery import Celery
import os

# Set the default Django settings module
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('booking_engine')

# Load CELERY_* settings from Django settings
app.config_from_object('django.conf:settings', namespace='CELERY')

# Picks up booking.tasks (staff event recording)
app.autodiscover_tasks()
