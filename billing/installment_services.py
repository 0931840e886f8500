# billing/installment_services.py
"""
Installment profiles and periodic invoice generation.

Generation is gated on PAID phases (Paid invoices under the profile, minus
the down payment), so unpaid-but-issued invoices never block or skip a
billing cycle. generated_count is only ever moved by a conditional UPDATE
bounded by total_phases.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from django.apps import apps
from django.conf import settings
from django.db import transaction
from django.db.models import F, Q
from django.utils.dateparse import parse_date

# SHARED IMPORTS
from shared.constants import InstallmentStatus, InvoiceStatus, PricingType
from shared.utils.dates import add_months, days_after, next_invoice_month, parse_billing_month
from shared.utils.dates import today as local_today
from shared.utils.money import ZERO, percent_of, to_money

from core.exceptions import AcademyException, ConflictError, NotFoundError, ValidationError

# LOCAL MODELS ONLY
from .models import (
    InstallmentInvoice, InstallmentProfile, Invoice, InvoiceEnrollmentLink, InvoiceItem,
    format_enrollment_remarks,
)
from .services import InvoiceTotals, LineSpec, PaymentLedger

logger = logging.getLogger(__name__)

REQUIRED_SETTINGS = (
    'billing_month', 'invoice_issue_date', 'invoice_due_date', 'invoice_generation_date', 'frequency_months',
)


def _as_date(value, field_name):
    if isinstance(value, date):
        return value
    parsed = parse_date(str(value)[:10]) if value else None
    if parsed is None:
        raise ValidationError(f"{field_name} must be a date (YYYY-MM-DD)")
    return parsed


@dataclass
class InstallmentSettings:
    billing_month: Any
    invoice_issue_date: Any
    invoice_due_date: Any
    invoice_generation_date: Any
    frequency_months: int = 1

    @classmethod
    def from_data(cls, data: Optional[Dict[str, Any]]) -> Optional['InstallmentSettings']:
        """None when no settings were supplied; ValidationError when incomplete."""
        if not data:
            return None
        missing = [key for key in REQUIRED_SETTINGS if not data.get(key)]
        if missing:
            raise ValidationError(
                f"Installment settings missing: {', '.join(missing)}",
                details={'missing': missing},
            )
        try:
            frequency = int(data['frequency_months'])
        except (TypeError, ValueError):
            raise ValidationError("frequency_months must be a whole number of months")
        if frequency < 1:
            raise ValidationError("frequency_months must be at least 1")
        try:
            billing_month = parse_billing_month(data['billing_month'])
        except ValueError as e:
            raise ValidationError(str(e))
        return cls(
            billing_month=billing_month,
            invoice_issue_date=_as_date(data['invoice_issue_date'], 'invoice_issue_date'),
            invoice_due_date=_as_date(data['invoice_due_date'], 'invoice_due_date'),
            invoice_generation_date=_as_date(data['invoice_generation_date'], 'invoice_generation_date'),
            frequency_months=frequency,
        )


@dataclass
class GenerationResult:
    invoice: Optional[Invoice]
    generated_count: int
    total_phases: Optional[int]
    paid_phases: int
    phase_limit_reached: bool
    is_active: bool
    next_generation_date: Any = None
    next_invoice_month: Any = None
    skipped_reason: str = ''

    def as_dict(self):
        return {
            'invoice_id': self.invoice.pk if self.invoice else None,
            'amount': str(self.invoice.amount) if self.invoice else None,
            'generated_count': self.generated_count,
            'total_phases': self.total_phases,
            'paid_phases': self.paid_phases,
            'phase_limit_reached': self.phase_limit_reached,
            'is_active': self.is_active,
            'next_generation_date': self.next_generation_date.isoformat() if self.next_generation_date else None,
            'next_invoice_month': self.next_invoice_month.isoformat() if self.next_invoice_month else None,
            'skipped_reason': self.skipped_reason,
        }


class InstallmentScheduler:

    @staticmethod
    def profile_amount(package) -> Decimal:
        """Bundled installment pricing-list price, else the package price."""
        pricing = package.included_pricing_lists().filter(pricing_type=PricingType.INSTALLMENT).first()
        if pricing is not None:
            return to_money(pricing.price)
        return to_money(package.price)

    @staticmethod
    def create_profile(invoice, package, academic_class, student, settings_data, created_by='') -> InstallmentProfile:
        """
        Create the profile and its first Pending occurrence. `invoice` (the
        upgrade invoice) becomes the profile's down-payment invoice.
        """
        installment = settings_data
        if not isinstance(installment, InstallmentSettings):
            installment = InstallmentSettings.from_data(settings_data)
        if installment is None:
            raise ValidationError("Installment settings are required")

        amount = InstallmentScheduler.profile_amount(package)
        billing_month = installment.billing_month
        frequency = installment.frequency_months
        following_month = add_months(billing_month, frequency)
        due_date = installment.invoice_due_date

        with transaction.atomic():
            profile = InstallmentProfile.objects.create(
                student=student,
                branch=invoice.branch,
                package=package,
                academic_class=academic_class,
                amount=amount,
                frequency_months=frequency,
                description=f"Installment plan for {student.full_name} - {academic_class.program.name}",
                day_of_month=due_date.day if hasattr(due_date, 'day') else None,
                is_active=True,
                total_phases=academic_class.number_of_phases,
                generated_count=0,
                downpayment_invoice=invoice,
                downpayment_paid=False,
                bill_invoice_due_date=due_date,
                next_invoice_due_date=following_month,
                first_billing_month=billing_month,
                first_generation_date=installment.invoice_generation_date,
                created_by=created_by or '',
            )
            Invoice.objects.filter(pk=invoice.pk).update(installment_profile=profile)
            invoice.installment_profile = profile

            InstallmentInvoice.objects.create(
                profile=profile,
                scheduled_date=due_date or installment.invoice_generation_date,
                status=InstallmentStatus.PENDING,
                student_name=student.full_name,
                total_amount_including_tax=amount,
                total_amount_excluding_tax=amount,
                next_generation_date=installment.invoice_generation_date,
                next_invoice_month=following_month,
            )

        logger.info(
            f"Installment profile {profile.pk} created for student {student.pk}: "
            f"{amount} every {frequency} month(s), {profile.total_phases or 'unlimited'} phases"
        )
        return profile

    @staticmethod
    def _close_occurrence(occurrence, today) -> None:
        InstallmentInvoice.objects.filter(pk=occurrence.pk).update(
            status=InstallmentStatus.GENERATED,
            scheduled_date=today,
            next_generation_date=None,
            next_invoice_month=None,
        )

    @staticmethod
    def _line_for(profile, occurrence) -> LineSpec:
        including = to_money(occurrence.total_amount_including_tax or profile.amount)
        excluding = to_money(occurrence.total_amount_excluding_tax or profile.amount)
        tax_percentage = None
        if excluding > ZERO and including != excluding:
            tax_percentage = ((including - excluding) / excluding * Decimal('100')).quantize(Decimal('0.01'))
        return LineSpec(
            profile.description or "Installment payment",
            excluding,
            tax_percentage=tax_percentage,
        )

    @staticmethod
    def generate_invoice(occurrence_id, issue_date=None, due_date=None, next_generation_date=None,
                         next_invoice_month_value=None, today=None) -> GenerationResult:
        today = today or local_today()

        with transaction.atomic():
            occurrence = InstallmentInvoice.objects.select_for_update().filter(pk=occurrence_id).first()
            if occurrence is None:
                raise NotFoundError(f"Installment invoice {occurrence_id} not found")
            profile = InstallmentProfile.objects.select_for_update().get(pk=occurrence.profile_id)

            if occurrence.status == InstallmentStatus.GENERATED:
                raise ConflictError(f"Installment invoice {occurrence.pk} is already closed")
            if not profile.is_active:
                raise ConflictError(f"Installment profile {profile.pk} is not active")

            total = profile.total_phases
            paid = profile.paid_phases

            if total is not None and paid >= total:
                InstallmentProfile.objects.filter(pk=profile.pk).update(is_active=False)
                InstallmentScheduler._close_occurrence(occurrence, today)
                logger.info(f"Profile {profile.pk} completed: {paid}/{total} phases paid; deactivated")
                return GenerationResult(
                    invoice=None,
                    generated_count=profile.generated_count,
                    total_phases=total,
                    paid_phases=paid,
                    phase_limit_reached=True,
                    is_active=False,
                    skipped_reason='all phases paid',
                )

            if total is not None and profile.generated_count >= total:
                InstallmentScheduler._close_occurrence(occurrence, today)
                logger.warning(
                    f"Profile {profile.pk} has issued all {total} invoices but only {paid} are paid; "
                    f"no further invoice generated"
                )
                return GenerationResult(
                    invoice=None,
                    generated_count=profile.generated_count,
                    total_phases=total,
                    paid_phases=paid,
                    phase_limit_reached=False,
                    is_active=True,
                    skipped_reason='all invoices already generated',
                )

            issue = issue_date or occurrence.next_generation_date or today
            due = due_date or days_after(issue, settings.INSTALLMENT_INVOICE_DUE_DAYS)
            line = InstallmentScheduler._line_for(profile, occurrence)
            totals = InvoiceTotals.from_items([line])

            invoice = Invoice.objects.create(
                description=profile.description or "Installment payment",
                branch=profile.branch,
                student=profile.student,
                amount=totals.total,
                status=InvoiceStatus.UNPAID,
                issue_date=issue,
                due_date=due,
                installment_profile=profile,
                package=profile.package,
                remarks=format_enrollment_remarks(profile.academic_class_id) if profile.academic_class_id else '',
            )
            InvoiceItem.objects.create(
                invoice=invoice,
                description=line.description,
                amount=line.amount,
                tax_percentage=line.tax_percentage,
            )
            if profile.academic_class_id:
                InvoiceEnrollmentLink.objects.create(invoice=invoice, academic_class_id=profile.academic_class_id)

            claimed = InstallmentProfile.objects.filter(
                Q(total_phases__isnull=True) | Q(generated_count__lt=F('total_phases')),
                pk=profile.pk,
            ).update(generated_count=F('generated_count') + 1)
            if not claimed:
                raise ConflictError(f"Installment profile {profile.pk} reached its generation limit")

            frequency = profile.frequency_months or 1
            base_generation = occurrence.next_generation_date or issue
            next_generation = next_generation_date or add_months(base_generation, frequency)
            next_month = next_invoice_month_value or next_invoice_month(
                occurrence.next_invoice_month or base_generation, frequency
            )
            InstallmentInvoice.objects.filter(pk=occurrence.pk).update(
                status=InstallmentStatus.PENDING,
                scheduled_date=today,
                next_generation_date=next_generation,
                next_invoice_month=next_month,
            )
            InstallmentProfile.objects.filter(pk=profile.pk).update(next_invoice_due_date=next_month)

            profile.refresh_from_db(fields=['generated_count', 'is_active'])

        logger.info(
            f"Installment invoice {invoice.pk} generated for profile {profile.pk}: "
            f"{profile.generated_count}/{total or '-'} generated, {paid} paid"
        )
        return GenerationResult(
            invoice=invoice,
            generated_count=profile.generated_count,
            total_phases=total,
            paid_phases=paid,
            phase_limit_reached=False,
            is_active=profile.is_active,
            next_generation_date=next_generation,
            next_invoice_month=next_month,
        )

    @staticmethod
    def due_occurrences(today=None):
        today = today or local_today()
        return (
            InstallmentInvoice.objects.filter(
                status=InstallmentStatus.PENDING,
                next_generation_date__lte=today,
                profile__is_active=True,
            )
            .filter(Q(profile__total_phases__isnull=True) | Q(profile__generated_count__lt=F('profile__total_phases')))
            .filter(Q(profile__downpayment_invoice__isnull=True) | Q(profile__downpayment_paid=True))
            .select_related('profile')
            .order_by('next_generation_date', 'pk')
        )

    @staticmethod
    def process_due_invoices(today=None) -> Dict[str, Any]:
        """Generate every due occurrence, each in its own transaction."""
        today = today or local_today()
        due = list(InstallmentScheduler.due_occurrences(today))
        processed, errors = [], []

        for occurrence in due:
            try:
                result = InstallmentScheduler.generate_invoice(occurrence.pk, today=today)
                processed.append({'installment_invoice_id': occurrence.pk, **result.as_dict()})
            except AcademyException as e:
                logger.warning(f"Installment invoice {occurrence.pk} skipped: {e.message}")
                errors.append({
                    'installment_invoice_id': occurrence.pk,
                    'student_id': occurrence.profile.student_id,
                    'error': e.message,
                })
            except Exception as e:
                logger.error(f"Installment invoice {occurrence.pk} failed: {str(e)}", exc_info=True)
                errors.append({
                    'installment_invoice_id': occurrence.pk,
                    'student_id': occurrence.profile.student_id,
                    'error': str(e),
                })

        logger.info(f"Installment run for {today}: {len(due)} due, {len(processed)} processed, {len(errors)} errors")
        return {
            'total_due': len(due),
            'processed': len(processed),
            'errors': len(errors),
            'details': {'processed': processed, 'errors': errors},
        }

    @staticmethod
    def refresh_profile_after_payment(invoice) -> Optional[InstallmentProfile]:
        """Mark the down payment paid and deactivate the profile once every phase is paid."""
        profile_id = invoice.installment_profile_id
        if not profile_id:
            profile = InstallmentProfile.objects.filter(downpayment_invoice=invoice).first()
        else:
            profile = InstallmentProfile.objects.filter(pk=profile_id).first()
        if profile is None:
            return None

        if profile.downpayment_invoice_id == invoice.pk and not profile.downpayment_paid \
                and invoice.status == InvoiceStatus.PAID:
            InstallmentProfile.objects.filter(pk=profile.pk).update(downpayment_paid=True)
            profile.downpayment_paid = True
            logger.info(f"Down payment for profile {profile.pk} received (invoice {invoice.pk})")

        if profile.is_active and profile.total_phases is not None and profile.paid_phases >= profile.total_phases:
            InstallmentProfile.objects.filter(pk=profile.pk).update(is_active=False)
            profile.is_active = False
            logger.info(f"Profile {profile.pk} deactivated: all {profile.total_phases} phases paid")

        return profile


# ============ DELINQUENCY ============

@dataclass
class DelinquencyResult:
    scanned: int = 0
    penalized: List[Dict[str, Any]] = field(default_factory=list)
    unenrolled: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def as_dict(self):
        return {
            'scanned': self.scanned,
            'penalties_applied': len(self.penalized),
            'unenrolled_count': self.unenrolled,
            'errors': len(self.errors),
            'details': {'penalized': self.penalized, 'errors': self.errors},
        }


class DelinquencyService:
    """
    Overdue installment invoices carry one late-penalty line per due date,
    charged on the balance left at that point. An invoice still unpaid a full
    calendar month after its due date removes the student from the profile's class.
    """

    REMOVAL_AFTER_MONTHS = 1

    @staticmethod
    def penalty_percent() -> Decimal:
        return to_money(settings.INSTALLMENT_LATE_PENALTY_PERCENT)

    @staticmethod
    def overdue_invoices(today=None):
        today = today or local_today()
        return (
            Invoice.objects.filter(installment_profile__isnull=False, due_date__lt=today)
            .exclude(status__in=(InvoiceStatus.PAID, InvoiceStatus.CANCELLED))
            .order_by('due_date', 'pk')
        )

    @staticmethod
    def process_invoice(invoice_id, today=None) -> Dict[str, Any]:
        """Penalize and, past the grace month, unenroll. Safe to repeat for the same day."""
        today = today or local_today()
        Enrollment = apps.get_model('students', 'Enrollment')
        outcome = {'invoice_id': invoice_id, 'penalty': None, 'unenrolled': 0}

        with transaction.atomic():
            invoice = Invoice.objects.select_for_update().filter(pk=invoice_id).first()
            if invoice is None:
                raise NotFoundError(f"Invoice {invoice_id} not found")
            if invoice.status in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED) \
                    or invoice.due_date is None or invoice.due_date >= today:
                return outcome

            balance = PaymentLedger.balance(invoice)
            if balance <= ZERO:
                return outcome

            if invoice.late_penalty_applied_for_due_date != invoice.due_date:
                percent = DelinquencyService.penalty_percent()
                penalty = percent_of(balance, percent)
                if penalty > ZERO:
                    InvoiceItem.objects.create(
                        invoice=invoice,
                        description=f"Late Payment Penalty ({percent.normalize():f}%)",
                        amount=ZERO,
                        penalty_amount=penalty,
                    )
                    invoice.amount = to_money(invoice.amount) + penalty
                    outcome['penalty'] = str(penalty)
                    logger.info(f"Late penalty {penalty} added to invoice {invoice.pk} (due {invoice.due_date})")
                invoice.late_penalty_applied_for_due_date = invoice.due_date
                invoice.save(update_fields=['amount', 'late_penalty_applied_for_due_date', 'updated_at'])
                PaymentLedger.refresh_invoice_status(invoice)

            profile = invoice.installment_profile
            removal_date = add_months(invoice.due_date, DelinquencyService.REMOVAL_AFTER_MONTHS)
            if removal_date <= today and profile is not None and profile.academic_class_id:
                removed, _ = Enrollment.objects.filter(
                    student_id=profile.student_id,
                    academic_class_id=profile.academic_class_id,
                ).delete()
                outcome['unenrolled'] = removed
                if removed:
                    logger.warning(
                        f"Student {profile.student_id} removed from class {profile.academic_class_id}: "
                        f"invoice {invoice.pk} overdue since {invoice.due_date}"
                    )

        return outcome

    @staticmethod
    def process(today=None) -> DelinquencyResult:
        """Run every overdue installment invoice, each in its own transaction."""
        today = today or local_today()
        invoice_ids = list(DelinquencyService.overdue_invoices(today).values_list('pk', flat=True))
        result = DelinquencyResult(scanned=len(invoice_ids))

        for invoice_id in invoice_ids:
            try:
                outcome = DelinquencyService.process_invoice(invoice_id, today=today)
            except AcademyException as e:
                logger.warning(f"Delinquency check skipped invoice {invoice_id}: {e.message}")
                result.errors.append({'invoice_id': invoice_id, 'error': e.message})
                continue
            except Exception as e:
                logger.error(f"Delinquency check failed for invoice {invoice_id}: {str(e)}", exc_info=True)
                result.errors.append({'invoice_id': invoice_id, 'error': str(e)})
                continue
            if outcome['penalty'] is not None:
                result.penalized.append({'invoice_id': invoice_id, 'penalty': outcome['penalty']})
            result.unenrolled += outcome['unenrolled']

        logger.info(
            f"Delinquency run for {today}: {result.scanned} overdue, {len(result.penalized)} penalized, "
            f"{result.unenrolled} enrollment(s) removed, {len(result.errors)} errors"
        )
        return result
