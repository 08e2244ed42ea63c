"""
Notification fan-out. Every public entry point is best-effort: a failure
is logged and never propagates into the business operation that
triggered it.
"""
import functools
import logging
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.core.models import INTERNAL_USER, SHIPPER_USER, DRIVER
from .models import Notification

logger = logging.getLogger(__name__)


def best_effort(notify):
    """
    Log and swallow any failure of a notification helper, recipient
    lookups included.
    """
    @functools.wraps(notify)
    def wrapper(*args, **kwargs):
        try:
            with transaction.atomic():
                return notify(*args, **kwargs)
        except Exception as e:
            logger.error(f"Notification {notify.__name__} failed: {str(e)}")
            return None
    return wrapper


class NotificationService:
    """
    Creates notifications for one or many recipients.
    """

    @staticmethod
    def _build(recipient_id, recipient_type, type, title, message, related_entity_type='',
               related_entity_id='', action_url='', priority='NORMAL', metadata=None,
               expires_at=None, dedupe_key=''):
        return Notification(
            recipient_id=recipient_id,
            recipient_type=recipient_type,
            type=type,
            title=title,
            message=message,
            related_entity_type=related_entity_type,
            related_entity_id=str(related_entity_id or ''),
            action_url=action_url,
            priority=priority,
            metadata=metadata or {},
            expires_at=expires_at,
            dedupe_key=dedupe_key,
        )

    @classmethod
    def create(cls, recipient_id, recipient_type, **payload):
        """
        Create one notification. Returns the saved row, or None when the
        event was already delivered to this recipient or the write failed.
        """
        try:
            notification = cls._build(recipient_id, recipient_type, **payload)
            with transaction.atomic():
                Notification.objects.bulk_create([notification], ignore_conflicts=True)
                inserted = Notification.objects.filter(pk=notification.pk).exists()
            if not inserted:
                logger.debug(f"Skipped duplicate {notification.type} notification for {recipient_type}:{recipient_id}")
                return None
            return notification
        except Exception as e:
            logger.error(f"Failed to create notification for {recipient_type}:{recipient_id}: {str(e)}")
            return None

    @classmethod
    def create_bulk(cls, recipients, **payload):
        """
        Create the same notification for every ``(recipient_id, recipient_type)``
        pair. Duplicates of an already delivered event are skipped.
        """
        recipients = list(recipients)
        if not recipients:
            return 0

        notifications = [
            cls._build(recipient_id, recipient_type, **payload)
            for recipient_id, recipient_type in recipients
        ]
        try:
            with transaction.atomic():
                Notification.objects.bulk_create(notifications, ignore_conflicts=True)
            logger.info(f"Queued {len(notifications)} {payload.get('type')} notifications")
            return len(notifications)
        except Exception as e:
            logger.error(f"Failed to create bulk {payload.get('type')} notifications: {str(e)}")
            return 0

    # Recipient resolution

    @staticmethod
    def internal_recipients(*roles):
        from apps.accounts.models import InternalUser

        users = InternalUser.objects.filter(is_active=True, role__in=roles)
        return [(user_id, INTERNAL_USER) for user_id in users.values_list('id', flat=True)]

    @staticmethod
    def shipper_recipients(shipper_client_id):
        from apps.accounts.models import ShipperUser

        users = ShipperUser.objects.filter(is_active=True, shipper_client_id=shipper_client_id)
        return [(user_id, SHIPPER_USER) for user_id in users.values_list('id', flat=True)]

    # Lifecycle events

    @classmethod
    @best_effort
    def notify_load_assigned(cls, assignment):
        load = assignment.load
        return cls.create(
            assignment.driver_id, DRIVER,
            type='LOAD_ASSIGNED',
            title='New Load Assignment',
            message=f"You have been assigned load {load.load_number} from {load.origin} to {load.destination}",
            related_entity_type='LOAD_ASSIGNMENT',
            related_entity_id=assignment.pk,
            action_url=f"/driver/assignments/{assignment.pk}",
            priority='HIGH',
            metadata={'load_id': str(load.pk), 'load_number': load.load_number},
        )

    @classmethod
    @best_effort
    def notify_load_accepted(cls, assignment):
        load = assignment.load
        return cls.create_bulk(
            cls.internal_recipients('DISPATCHER', 'ADMIN'),
            type='LOAD_ACCEPTED',
            title='Load Accepted',
            message=f"{assignment.driver.full_name} accepted load {load.load_number}",
            related_entity_type='LOAD_ASSIGNMENT',
            related_entity_id=assignment.pk,
            action_url=f"/loads/{load.pk}",
            metadata={'load_id': str(load.pk), 'driver_id': str(assignment.driver_id)},
        )

    @classmethod
    @best_effort
    def notify_assignment_rejected(cls, assignment):
        load = assignment.load
        return cls.create_bulk(
            cls.internal_recipients('DISPATCHER', 'ADMIN'),
            type='LOAD_STATUS_CHANGED',
            title='Assignment Rejected',
            message=f"{assignment.driver.full_name} rejected load {load.load_number}: {assignment.rejection_reason}",
            related_entity_type='LOAD_ASSIGNMENT',
            related_entity_id=assignment.pk,
            action_url=f"/loads/{load.pk}",
            priority='HIGH',
        )

    @classmethod
    @best_effort
    def notify_pod_submitted(cls, pod):
        load = pod.load
        return cls.create_bulk(
            cls.internal_recipients('DISPATCHER', 'ADMIN'),
            type='POD_SUBMITTED',
            title='Proof of Delivery Submitted',
            message=f"POD submitted for load {load.load_number} by {pod.driver.full_name}",
            related_entity_type='POD',
            related_entity_id=pod.pk,
            action_url=f"/pod/{pod.pk}",
            metadata={'load_id': str(load.pk)},
        )

    @classmethod
    @best_effort
    def notify_pod_verified(cls, pod):
        load = pod.load
        outcome = 'approved' if pod.is_approved else 'rejected'
        recipients = cls.shipper_recipients(load.shipper_client_id) + [(pod.driver_id, DRIVER)]
        return cls.create_bulk(
            recipients,
            type='POD_VERIFIED',
            title=f"Proof of Delivery {outcome.title()}",
            message=f"POD for load {load.load_number} was {outcome}",
            related_entity_type='POD',
            related_entity_id=pod.pk,
            action_url=f"/loads/{load.pk}",
            priority='NORMAL' if pod.is_approved else 'HIGH',
        )

    @classmethod
    @best_effort
    def notify_document_reviewed(cls, document, approved):
        outcome = 'approved' if approved else 'rejected'
        return cls.create(
            document.uploaded_by_id, document.uploaded_by_type,
            type='DOCUMENT_REVIEWED',
            title=f"Document {outcome.title()}",
            message=f"{document.get_document_type_display()} for load {document.load.load_number} was {outcome}",
            related_entity_type='LOAD_DOCUMENT',
            related_entity_id=document.pk,
            dedupe_key=f"{outcome}-{document.approvals.count()}",
        )

    @classmethod
    @best_effort
    def notify_invoice_issued(cls, invoice):
        return cls.create_bulk(
            cls.shipper_recipients(invoice.shipper_client_id),
            type='INVOICE_ISSUED',
            title='New Invoice',
            message=f"Invoice {invoice.invoice_number} for ${invoice.total} is due {invoice.due_date:%Y-%m-%d}",
            related_entity_type='INVOICE',
            related_entity_id=invoice.pk,
            action_url=f"/invoices/{invoice.pk}",
            metadata={'total': str(invoice.total)},
        )

    @classmethod
    @best_effort
    def notify_invoice_overdue(cls, invoice):
        recipients = cls.shipper_recipients(invoice.shipper_client_id) + cls.internal_recipients('ACCOUNTANT')
        return cls.create_bulk(
            recipients,
            type='INVOICE_OVERDUE',
            title='Invoice Overdue',
            message=f"Invoice {invoice.invoice_number} for ${invoice.total} was due {invoice.due_date:%Y-%m-%d}",
            related_entity_type='INVOICE',
            related_entity_id=invoice.pk,
            action_url=f"/invoices/{invoice.pk}",
            priority='HIGH',
        )

    @classmethod
    @best_effort
    def notify_settlement(cls, settlement, event):
        titles = {
            'SETTLEMENT_READY': ('Settlement Ready', f"Settlement {settlement.settlement_number} for ${settlement.net_amount} is ready for review"),
            'SETTLEMENT_APPROVED': ('Settlement Approved', f"Settlement {settlement.settlement_number} has been approved"),
            'SETTLEMENT_PAID': ('Settlement Paid', f"Settlement {settlement.settlement_number} for ${settlement.net_amount} has been paid"),
        }
        title, message = titles[event]
        return cls.create(
            settlement.driver_id, DRIVER,
            type=event,
            title=title,
            message=message,
            related_entity_type='SETTLEMENT',
            related_entity_id=settlement.pk,
            action_url=f"/settlements/{settlement.pk}",
        )

    @classmethod
    @best_effort
    def notify_settlement_disputed(cls, settlement):
        return cls.create_bulk(
            cls.internal_recipients('ACCOUNTANT', 'ADMIN'),
            type='SETTLEMENT_DISPUTED',
            title='Settlement Disputed',
            message=f"{settlement.driver.full_name} disputed settlement {settlement.settlement_number}",
            related_entity_type='SETTLEMENT',
            related_entity_id=settlement.pk,
            action_url=f"/settlements/{settlement.pk}",
            priority='HIGH',
            metadata={'reason': settlement.dispute_reason},
        )

    @classmethod
    @best_effort
    def notify_expiring(cls, recipients, subject, expires_on, entity_type, entity_id):
        days_left = (expires_on - timezone.now().date()).days
        return cls.create_bulk(
            recipients,
            type='DOCUMENT_EXPIRING',
            title=f"{subject} expiring",
            message=f"{subject} expires on {expires_on:%Y-%m-%d} ({days_left} days)",
            related_entity_type=entity_type,
            related_entity_id=entity_id,
            priority='URGENT' if days_left <= 7 else 'HIGH',
            dedupe_key=f"{subject}-{expires_on:%Y-%m-%d}",
            expires_at=timezone.now() + timedelta(days=settings.TMS['EXPIRY_WARNING_DAYS']),
        )

    # Maintenance

    @staticmethod
    def purge_expired(now=None):
        now = now or timezone.now()
        deleted, _ = Notification.objects.filter(expires_at__lte=now).delete()
        return deleted

    @staticmethod
    def purge_read_older_than(days):
        cutoff = timezone.now() - timedelta(days=days)
        deleted, _ = Notification.objects.filter(is_read=True, created_at__lt=cutoff).delete()
        return deleted

    @staticmethod
    def mark_all_read(recipient_id, recipient_type):
        now = timezone.now()
        return Notification.objects.for_recipient(recipient_id, recipient_type).unread().update(
            is_read=True, read_at=now, updated_at=now
        )
