# billing/services.py
"""
Invoice assembly, totals and payment ledger.

Assembly runs inside the caller's transaction (the reservation upgrade);
every helper here writes through the ORM so a raise anywhere rolls back
the invoice, its items and its enrollment link together.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Sequence

from django.db import transaction
from django.db.models import Sum

# SHARED IMPORTS
from shared.constants import EnrollmentType, InvoiceStatus, PaymentMethods, PaymentStatus
from shared.utils.dates import today as local_today
from shared.utils.money import ZERO, to_money

from core.exceptions import NotFoundError, ValidationError

# LOCAL MODELS ONLY
from .models import Invoice, InvoiceEnrollmentLink, InvoiceItem, Payment, format_enrollment_remarks

logger = logging.getLogger(__name__)


# ============ STATUS DERIVATION ============

def derive_invoice_status(status: str, due_date, today=None) -> str:
    """
    Read-time status: an invoice past its due date that is not Paid or
    Cancelled is reported as Unpaid. Never persisted.
    """
    today = today or local_today()
    if due_date and due_date < today and status not in InvoiceStatus.SETTLED:
        return InvoiceStatus.UNPAID
    return status


# ============ LINE ITEMS & TOTALS ============

@dataclass
class LineSpec:
    description: str
    amount: Decimal = ZERO
    discount_amount: Decimal = ZERO
    penalty_amount: Decimal = ZERO
    tax_percentage: Optional[Decimal] = None

    @property
    def line_total(self) -> Decimal:
        net = to_money(self.amount) - to_money(self.discount_amount) + to_money(self.penalty_amount)
        if self.tax_percentage:
            net = net * (Decimal('1') + Decimal(str(self.tax_percentage)) / Decimal('100'))
        return to_money(net)


@dataclass
class InvoiceTotals:
    subtotal: Decimal
    discount: Decimal
    penalty: Decimal
    tax: Decimal
    total: Decimal

    @classmethod
    def from_items(cls, items: Iterable[Any]) -> 'InvoiceTotals':
        """Works for InvoiceItem rows and LineSpec alike."""
        subtotal = discount = penalty = tax = total = ZERO
        for item in items:
            amount = to_money(item.amount)
            item_discount = to_money(item.discount_amount)
            item_penalty = to_money(item.penalty_amount)
            line_total = item.line_total
            subtotal += amount
            discount += item_discount
            penalty += item_penalty
            tax += line_total - (amount - item_discount + item_penalty)
            total += line_total
        return cls(subtotal=subtotal, discount=discount, penalty=penalty, tax=to_money(tax), total=total)

    def as_dict(self):
        return {
            'subtotal': str(self.subtotal),
            'discount': str(self.discount),
            'penalty': str(self.penalty),
            'tax': str(self.tax),
            'total': str(self.total),
        }


# ============ INVOICE ASSEMBLER ============

@dataclass
class InvoiceAssemblyRequest:
    student: Any
    academic_class: Any
    branch: Any
    enrollment_type: str
    package: Any = None
    per_phase_amount: Optional[Decimal] = None
    pricing_lists: Sequence[Any] = field(default_factory=list)
    charged_merchandise: Sequence[Any] = field(default_factory=list)
    promo_evaluation: Any = None
    reservation_fee_paid: Decimal = ZERO
    due_date: Any = None
    phase_start: Optional[int] = None
    phase_end: Optional[int] = None
    created_by: str = ''
    issue_date: Any = None


class InvoiceAssembler:
    """Builds an invoice header, its line items and its enrollment link."""

    @staticmethod
    def build_lines(request: InvoiceAssemblyRequest) -> List[LineSpec]:
        """
        Order: base, pricing lists, charged merchandise, free promo
        merchandise, promo discount, reservation-fee credit. The credit is
        capped so the running total never drops below zero.
        """
        lines: List[LineSpec] = []
        is_per_phase = request.enrollment_type == EnrollmentType.PER_PHASE

        if is_per_phase and request.per_phase_amount is not None:
            lines.append(LineSpec("Per-Phase Enrollment Amount", to_money(request.per_phase_amount)))
        elif request.package is not None:
            lines.append(LineSpec(f"Package: {request.package.name}", to_money(request.package.price)))

        if is_per_phase:
            for pricing in request.pricing_lists:
                label = f" ({pricing.level_tag})" if pricing.level_tag else ""
                lines.append(LineSpec(f"Pricing: {pricing.name}{label}", to_money(pricing.price)))

            for merchandise in request.charged_merchandise:
                size = f" ({merchandise.size})" if merchandise.size else ""
                lines.append(LineSpec(f"Merchandise: {merchandise.name}{size}", to_money(merchandise.price)))

        evaluation = request.promo_evaluation
        if evaluation is not None and evaluation.applied:
            promo_name = evaluation.promo.name
            for merchandise, quantity in evaluation.free_merchandise:
                for _ in range(quantity):
                    lines.append(LineSpec(f"Free: {merchandise.name} (Promo: {promo_name})", ZERO))
            if evaluation.discount > ZERO:
                lines.append(LineSpec(
                    f"Promo Discount ({promo_name}): {evaluation.label}",
                    ZERO,
                    discount_amount=to_money(evaluation.discount),
                ))

        fee_paid = to_money(request.reservation_fee_paid)
        if fee_paid > ZERO:
            running_total = sum((line.line_total for line in lines), ZERO)
            credit = min(fee_paid, max(running_total, ZERO))
            if credit > ZERO:
                lines.append(LineSpec("Discount: Reservation Fee Paid", ZERO, discount_amount=credit))
            if credit < fee_paid:
                logger.warning(
                    f"Reservation fee credit capped at {credit} (paid {fee_paid}) "
                    f"for student {request.student.pk}"
                )

        return lines

    @staticmethod
    def describe(request: InvoiceAssemblyRequest) -> str:
        program_name = request.academic_class.program.name or 'Enrollment'
        if request.enrollment_type == EnrollmentType.PER_PHASE:
            return f"Per-Phase - {program_name}"
        if request.package is not None:
            return request.package.name
        return f"Enrollment - {program_name}"

    @staticmethod
    def assemble(request: InvoiceAssemblyRequest) -> Invoice:
        """Write the invoice, its items and its enrollment link; returns the invoice."""
        if request.enrollment_type not in dict(EnrollmentType.CHOICES):
            raise ValidationError(f"Unknown enrollment type: {request.enrollment_type}")

        lines = InvoiceAssembler.build_lines(request)
        totals = InvoiceTotals.from_items(lines)
        if totals.total < ZERO:
            raise ValidationError("Invoice total cannot be negative", details={'total': str(totals.total)})

        evaluation = request.promo_evaluation
        promo = evaluation.promo if evaluation is not None and evaluation.applied else None

        with transaction.atomic():
            invoice = Invoice.objects.create(
                description=InvoiceAssembler.describe(request),
                branch=request.branch,
                student=request.student,
                amount=totals.total,
                status=InvoiceStatus.PENDING,
                issue_date=request.issue_date or local_today(),
                due_date=request.due_date,
                package=request.package,
                promo=promo,
                remarks=format_enrollment_remarks(
                    request.academic_class.pk, request.phase_start, request.phase_end
                ),
                created_by=request.created_by or '',
            )
            InvoiceItem.objects.bulk_create([
                InvoiceItem(
                    invoice=invoice,
                    description=line.description,
                    amount=line.amount,
                    discount_amount=line.discount_amount,
                    penalty_amount=line.penalty_amount,
                    tax_percentage=line.tax_percentage,
                )
                for line in lines
            ])
            InvoiceEnrollmentLink.objects.create(
                invoice=invoice,
                academic_class=request.academic_class,
                phase_start=request.phase_start,
                phase_end=request.phase_end,
            )

        logger.info(
            f"Invoice {invoice.pk} assembled for student {request.student.pk}: "
            f"{len(lines)} lines, total {totals.total}"
        )
        return invoice


# ============ PAYMENT LEDGER ============

class PaymentLedger:
    """Amount paid, balance and stored-status refresh after payment events."""

    @staticmethod
    def amount_paid(invoice) -> Decimal:
        total = Payment.objects.filter(
            invoice=invoice,
            status=PaymentStatus.COMPLETED,
        ).aggregate(total=Sum('amount'))['total']
        return to_money(total)

    @staticmethod
    def balance(invoice) -> Decimal:
        return to_money(invoice.amount) - PaymentLedger.amount_paid(invoice)

    @staticmethod
    def refresh_invoice_status(invoice) -> str:
        """Move the stored status to Paid/Partially Paid from completed payments."""
        if invoice.status == InvoiceStatus.CANCELLED:
            return invoice.status

        paid = PaymentLedger.amount_paid(invoice)
        if paid <= ZERO:
            return invoice.status

        new_status = InvoiceStatus.PAID if paid >= to_money(invoice.amount) else InvoiceStatus.PARTIALLY_PAID
        if new_status != invoice.status:
            Invoice.objects.filter(pk=invoice.pk).update(status=new_status)
            logger.info(f"Invoice {invoice.pk} status changed: {invoice.status} -> {new_status}")
            invoice.status = new_status
        return new_status

    @staticmethod
    def record_payment(invoice_id, amount, payment_method=PaymentMethods.CASH, reference_number='',
                       status=PaymentStatus.COMPLETED, issue_date=None) -> Payment:
        """Record an externally captured payment; the post_save signal refreshes the invoice."""
        amount = to_money(amount)
        if amount <= ZERO:
            raise ValidationError("Payment amount must be greater than zero")
        if status not in dict(PaymentStatus.CHOICES):
            raise ValidationError(f"Unknown payment status: {status}")

        try:
            invoice = Invoice.objects.get(pk=invoice_id)
        except Invoice.DoesNotExist:
            raise NotFoundError(f"Invoice {invoice_id} not found")

        with transaction.atomic():
            payment = Payment.objects.create(
                invoice=invoice,
                student=invoice.student,
                amount=amount,
                status=status,
                payment_method=payment_method,
                reference_number=reference_number or '',
                issue_date=issue_date or local_today(),
            )
        logger.info(f"Payment {payment.pk} of {amount} recorded against invoice {invoice.pk} ({status})")
        return payment
