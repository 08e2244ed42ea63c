"""
Periodic billing jobs.
"""
from celery import shared_task

from .services import InvoiceService
import logging

logger = logging.getLogger(__name__)


@shared_task
def mark_overdue_invoices():
    """
    Move sent invoices past their due date to OVERDUE and notify.
    """
    changed = InvoiceService.mark_overdue()
    logger.info(f"Marked {len(changed)} invoices overdue")
    return {'overdue': [invoice.invoice_number for invoice in changed]}
