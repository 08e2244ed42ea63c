"""
Celery configuration for the Freight TMS project.
"""
import os
from celery import Celery

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.production')

app = Celery('freight_tms')

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
app.config_from_object('django.conf:settings', namespace='CELERY')

# Load task modules from all registered Django apps.
app.autodiscover_tasks()

# Celery beat schedule for periodic tasks
app.conf.beat_schedule = {
    'mark-overdue-invoices': {
        'task': 'apps.billing.tasks.mark_overdue_invoices',
        'schedule': 3600.0,  # Run hourly
    },
    'check-expiring-documents': {
        'task': 'apps.fleet.tasks.check_expiring_documents',
        'schedule': 86400.0,  # Run daily
    },
    'purge-notifications': {
        'task': 'apps.notifications.tasks.purge_notifications',
        'schedule': 86400.0,  # Run daily
    },
}

app.conf.timezone = 'UTC'
