"""
Celery tasks for notification delivery and housekeeping.
"""
import logging

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

from .services import NotificationService

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3)
def send_email_task(self, subject, message, recipient_list):
    """
    Deliver an email through the configured backend, retrying with
    exponential backoff.
    """
    try:
        sent = send_mail(subject, message, settings.DEFAULT_FROM_EMAIL, recipient_list)
        logger.info(f"Sent email '{subject}' to {len(recipient_list)} recipients")
        return sent
    except Exception as e:
        logger.error(f"Error sending email '{subject}': {str(e)}")

        if self.request.retries < self.max_retries:
            countdown = 2 ** self.request.retries
            raise self.retry(countdown=countdown, exc=e)

        return 0


@shared_task
def purge_notifications():
    """
    Delete expired notifications and read ones past the retention window.
    """
    expired = NotificationService.purge_expired()
    old_read = NotificationService.purge_read_older_than(settings.TMS['NOTIFICATION_RETENTION_DAYS'])

    logger.info(f"Purged {expired} expired and {old_read} old read notifications")
    return {'expired': expired, 'old_read': old_read}
