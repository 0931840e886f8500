# reservations/models.py
import logging
from decimal import Decimal

from django.db import models
from django.db.models import Q
from django.utils import timezone

# SHARED IMPORTS
from shared.constants import ReservationStatus

logger = logging.getLogger(__name__)

NON_TERMINAL = ~Q(status__in=ReservationStatus.TERMINAL)


class Reservation(models.Model):
    """
    Temporary hold on a class seat pending fee payment.

    At most one non-terminal reservation may exist per (student, class, phase);
    a whole-class reservation (phase_number NULL) and phase-specific ones
    block each other, which the service layer checks before insert. Rows are
    never deleted: cancellation and expiry are statuses.
    """
    student = models.ForeignKey('students.Student', on_delete=models.CASCADE, related_name='reservations')
    academic_class = models.ForeignKey('core.Class', on_delete=models.CASCADE, related_name='reservations')
    branch = models.ForeignKey('core.Branch', on_delete=models.CASCADE, related_name='reservations')
    phase_number = models.PositiveIntegerField(null=True, blank=True)
    package = models.ForeignKey(
        'core.Package',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='reservations'
    )
    reservation_fee = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    status = models.CharField(max_length=20, choices=ReservationStatus.CHOICES, default=ReservationStatus.RESERVED)
    due_date = models.DateField()

    # Reservation-fee invoice, then the invoice produced by the upgrade
    invoice = models.ForeignKey(
        'billing.Invoice',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='fee_reservations'
    )
    enrollment_invoice = models.ForeignKey(
        'billing.Invoice',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='upgraded_reservations'
    )
    installment_profile = models.ForeignKey(
        'billing.InstallmentProfile',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='reservations'
    )
    notes = models.TextField(blank=True, default='')

    # Audit fields
    reserved_by = models.CharField(max_length=255, blank=True, default='')
    upgraded_by = models.CharField(max_length=255, blank=True, default='')
    reserved_at = models.DateTimeField(default=timezone.now)
    reservation_fee_paid_at = models.DateTimeField(null=True, blank=True)
    upgraded_at = models.DateTimeField(null=True, blank=True)
    expired_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'reservations_reservation'
        ordering = ['-reserved_at']
        indexes = [
            models.Index(fields=['status', 'due_date']),
            models.Index(fields=['academic_class', 'status']),
            models.Index(fields=['student', 'status']),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['student', 'academic_class', 'phase_number'],
                condition=NON_TERMINAL & Q(phase_number__isnull=False),
                name='uniq_open_reservation_per_phase',
            ),
            models.UniqueConstraint(
                fields=['student', 'academic_class'],
                condition=NON_TERMINAL & Q(phase_number__isnull=True),
                name='uniq_open_reservation_whole_class',
            ),
        ]

    def __str__(self):
        phase = f" phase {self.phase_number}" if self.phase_number else ""
        return f"Reservation {self.pk}: {self.student} -> {self.academic_class.name}{phase} ({self.status})"

    @property
    def is_terminal(self) -> bool:
        return self.status in ReservationStatus.TERMINAL

    @property
    def fee_amount(self) -> Decimal:
        return self.reservation_fee or Decimal('0.00')
