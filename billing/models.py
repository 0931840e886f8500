# billing/models.py
import logging
import re
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

# SHARED IMPORTS
from shared.constants import InstallmentStatus, InvoiceStatus, PaymentMethods, PaymentStatus
from shared.utils.money import ZERO, to_money

logger = logging.getLogger(__name__)

REMARKS_PATTERN = re.compile(r'CLASS_ID:(?P<class_id>\d+)(?:;PHASE_START:(?P<phase_start>\d+);PHASE_END:(?P<phase_end>\d+))?')


class Invoice(models.Model):
    """
    Billable document. Stored `status` only moves through explicit events;
    `computed_status` is the read-time view that reports overdue invoices as Unpaid.
    """
    description = models.CharField(max_length=255)
    branch = models.ForeignKey('core.Branch', on_delete=models.CASCADE, related_name='invoices')
    student = models.ForeignKey(
        'students.Student',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='invoices'
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO, validators=[MinValueValidator(0)])
    status = models.CharField(max_length=20, choices=InvoiceStatus.CHOICES, default=InvoiceStatus.PENDING)
    issue_date = models.DateField(default=timezone.localdate)
    due_date = models.DateField(null=True, blank=True)
    late_penalty_applied_for_due_date = models.DateField(null=True, blank=True)

    installment_profile = models.ForeignKey(
        'billing.InstallmentProfile',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='invoices'
    )
    package = models.ForeignKey(
        'core.Package',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='invoices'
    )
    promo = models.ForeignKey(
        'promos.Promo',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='invoices'
    )
    remarks = models.TextField(blank=True, default='')

    # Audit fields
    created_by = models.CharField(max_length=255, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'billing_invoice'
        indexes = [
            models.Index(fields=['branch', 'status']),
            models.Index(fields=['student', 'status']),
            models.Index(fields=['due_date', 'status']),
            models.Index(fields=['installment_profile', 'status']),
        ]
        verbose_name = 'Invoice'
        verbose_name_plural = 'Invoices'
        ordering = ['-created_at']

    def __str__(self):
        student_name = self.student.full_name if self.student else "No Student"
        return f"Invoice {self.pk} - {student_name} - {self.amount:,.2f}"

    @property
    def computed_status(self):
        from .services import derive_invoice_status
        return derive_invoice_status(self.status, self.due_date)

    @property
    def amount_paid(self) -> Decimal:
        total = self.payments.filter(status=PaymentStatus.COMPLETED).aggregate(total=models.Sum('amount'))['total']
        return to_money(total)

    @property
    def balance(self) -> Decimal:
        return to_money(self.amount) - self.amount_paid


class InvoiceItem(models.Model):
    """Line item; discounts are stored on zero-amount lines."""
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='items')
    description = models.CharField(max_length=255)
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    tax_percentage = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    penalty_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)

    class Meta:
        db_table = 'billing_invoiceitem'
        verbose_name = 'Invoice Item'
        verbose_name_plural = 'Invoice Items'
        ordering = ['pk']
        indexes = [
            models.Index(fields=['invoice']),
        ]

    def __str__(self):
        return f"{self.description} - {self.line_total:,.2f}"

    @property
    def line_total(self) -> Decimal:
        """(amount - discount + penalty) taxed by tax_percentage on that net base."""
        net = to_money(self.amount) - to_money(self.discount_amount) + to_money(self.penalty_amount)
        if self.tax_percentage:
            net = net * (Decimal('1') + Decimal(str(self.tax_percentage)) / Decimal('100'))
        return to_money(net)


class InvoiceEnrollmentLink(models.Model):
    """Which class and phase range an invoice authorizes enrollment for."""
    invoice = models.OneToOneField(Invoice, on_delete=models.CASCADE, related_name='enrollment_link')
    academic_class = models.ForeignKey('core.Class', on_delete=models.CASCADE, related_name='invoice_links')
    phase_start = models.PositiveIntegerField(null=True, blank=True)
    phase_end = models.PositiveIntegerField(null=True, blank=True)

    class Meta:
        db_table = 'billing_invoice_enrollment_link'

    def __str__(self):
        return self.to_remarks()

    def to_remarks(self) -> str:
        return format_enrollment_remarks(self.academic_class_id, self.phase_start, self.phase_end)

    @property
    def phase_numbers(self):
        if self.phase_start is None:
            return []
        end = self.phase_end if self.phase_end is not None else self.phase_start
        return list(range(self.phase_start, end + 1))


def format_enrollment_remarks(class_id, phase_start=None, phase_end=None) -> str:
    """`CLASS_ID:<id>[;PHASE_START:<n>;PHASE_END:<m>]`"""
    remarks = f"CLASS_ID:{class_id}"
    if phase_start is not None:
        end = phase_end if phase_end is not None else phase_start
        remarks += f";PHASE_START:{phase_start};PHASE_END:{end}"
    return remarks


def parse_enrollment_remarks(remarks):
    """Read legacy remarks back into {class_id, phase_start, phase_end}, or None."""
    match = REMARKS_PATTERN.search(remarks or '')
    if not match:
        return None
    phase_start = match.group('phase_start')
    phase_end = match.group('phase_end')
    return {
        'class_id': int(match.group('class_id')),
        'phase_start': int(phase_start) if phase_start else None,
        'phase_end': int(phase_end) if phase_end else None,
    }


class Payment(models.Model):
    """Recorded payment event; only Completed payments count toward a balance."""
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='payments')
    student = models.ForeignKey(
        'students.Student',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='payments'
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])
    status = models.CharField(max_length=20, choices=PaymentStatus.CHOICES, default=PaymentStatus.PENDING)
    payment_method = models.CharField(max_length=20, choices=PaymentMethods.CHOICES, default=PaymentMethods.CASH)
    reference_number = models.CharField(max_length=100, blank=True, default='', db_index=True)
    issue_date = models.DateField(default=timezone.localdate)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'billing_payment'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['invoice', 'status']),
        ]

    def __str__(self):
        return f"Payment {self.pk} - {self.amount:,.2f} ({self.status})"


class InstallmentProfile(models.Model):
    """
    Recurring billing plan for a student on an installment package.
    Generation is gated by paid phases, never by generated_count alone.
    """
    student = models.ForeignKey('students.Student', on_delete=models.CASCADE, related_name='installment_profiles')
    branch = models.ForeignKey('core.Branch', on_delete=models.CASCADE, related_name='installment_profiles')
    package = models.ForeignKey(
        'core.Package',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='installment_profiles'
    )
    academic_class = models.ForeignKey(
        'core.Class',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='installment_profiles'
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])
    frequency_months = models.PositiveIntegerField(default=1)
    description = models.CharField(max_length=255, blank=True, default='')
    day_of_month = models.PositiveIntegerField(null=True, blank=True)
    is_active = models.BooleanField(default=True)

    total_phases = models.PositiveIntegerField(null=True, blank=True)
    generated_count = models.PositiveIntegerField(default=0)

    downpayment_invoice = models.ForeignKey(
        Invoice,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='downpayment_for'
    )
    downpayment_paid = models.BooleanField(default=False)

    bill_invoice_due_date = models.DateField(null=True, blank=True)
    next_invoice_due_date = models.DateField(null=True, blank=True)
    first_billing_month = models.DateField(null=True, blank=True)
    first_generation_date = models.DateField(null=True, blank=True)

    created_by = models.CharField(max_length=255, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'billing_installment_profile'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['student', 'is_active']),
            models.Index(fields=['is_active', 'downpayment_paid']),
        ]

    def __str__(self):
        return f"Installment profile {self.pk} - {self.student} ({self.generated_count}/{self.total_phases or '-'})"

    @property
    def paid_phases(self) -> int:
        """Paid invoices under this profile, excluding the down payment."""
        invoices = self.invoices.filter(status=InvoiceStatus.PAID)
        if self.downpayment_invoice_id:
            invoices = invoices.exclude(pk=self.downpayment_invoice_id)
        return invoices.count()


class InstallmentInvoice(models.Model):
    """Scheduled occurrence of a profile's billing cycle."""
    profile = models.ForeignKey(InstallmentProfile, on_delete=models.CASCADE, related_name='occurrences')
    scheduled_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=InstallmentStatus.CHOICES, default=InstallmentStatus.PENDING)
    student_name = models.CharField(max_length=255, blank=True, default='')
    total_amount_including_tax = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    total_amount_excluding_tax = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    next_generation_date = models.DateField(null=True, blank=True)
    next_invoice_month = models.DateField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'billing_installment_invoice'
        ordering = ['next_generation_date', 'pk']
        indexes = [
            models.Index(fields=['status', 'next_generation_date']),
        ]

    def __str__(self):
        return f"Occurrence {self.pk} of profile {self.profile_id} ({self.status})"
