"""
Shared model infrastructure: the abstract base model, principal type constants
and the per-year sequence counters behind human-readable document numbers.
"""
import uuid

from django.db import models, transaction
from django.utils import timezone


INTERNAL_USER = 'INTERNAL_USER'
SHIPPER_USER = 'SHIPPER_USER'
DRIVER = 'DRIVER'

PRINCIPAL_TYPE_CHOICES = [
    (INTERNAL_USER, 'Internal User'),
    (SHIPPER_USER, 'Shipper User'),
    (DRIVER, 'Driver'),
]


class BaseModel(models.Model):
    """
    Abstract base model that provides common fields for all models.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class NumberSequence(BaseModel):
    """
    Single-row counter per (prefix, year). The row is locked while it is
    incremented so concurrent creators never observe the same value.
    """
    prefix = models.CharField(max_length=16)
    year = models.PositiveIntegerField()
    last_value = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = 'core_number_sequence'
        ordering = ['prefix', 'year']
        constraints = [
            models.UniqueConstraint(fields=['prefix', 'year'], name='uniq_number_sequence_prefix_year'),
        ]

    def __str__(self):
        return f"{self.prefix}-{self.year} ({self.last_value})"

    @classmethod
    @transaction.atomic
    def next_value(cls, prefix, year=None):
        year = year or timezone.now().year
        sequence, _ = cls.objects.select_for_update().get_or_create(prefix=prefix, year=year)
        sequence.last_value = models.F('last_value') + 1
        sequence.save(update_fields=['last_value', 'updated_at'])
        sequence.refresh_from_db(fields=['last_value'])
        return year, sequence.last_value


def next_document_number(prefix, year=None):
    """
    Return the next number for a prefix, e.g. ``LOAD-2026-0001``.

    Must be called inside the transaction that inserts the numbered row so a
    rollback releases nothing but a gap.
    """
    year, value = NumberSequence.next_value(prefix, year=year)
    return f"{prefix}-{year}-{value:04d}"
