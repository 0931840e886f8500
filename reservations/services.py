# reservations/services.py
"""
Reservation lifecycle: create, upgrade into an invoiced enrollment intent,
status changes, and the expiration sweep.

Every multi-step write runs in one transaction. An upgrade locks the
reservation row and then the class row before counting seats, so two
upgrades into the same class are serialized on the last seat.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Q, Sum
from django.utils import timezone

# SHARED IMPORTS
from shared.constants import (
    EnrollmentType, InvoiceStatus, PackageType, PaymentStatus, ReservationStatus,
)
from shared.utils import ModelPatch
from shared.utils.dates import days_after
from shared.utils.dates import today as local_today
from shared.utils.money import ZERO, to_money

from billing.installment_services import InstallmentScheduler, InstallmentSettings
from billing.models import Invoice, Payment
from billing.services import InvoiceAssembler, InvoiceAssemblyRequest
from core.exceptions import (
    CapacityError, ConflictError, NotFoundError, StateTransitionError, ValidationError,
)
from core.models import Package, PricingList
from core.services import CapacityService, InventoryService
from promos.models import Promo, PromoUsage
from promos.services import PromoEvaluator
from students.models import Enrollment, Student

# LOCAL MODELS ONLY
from .models import NON_TERMINAL, Reservation

logger = logging.getLogger(__name__)

UPGRADABLE = (ReservationStatus.RESERVED, ReservationStatus.FEE_PAID, ReservationStatus.EXPIRED)

ALLOWED_TRANSITIONS = {
    ReservationStatus.RESERVED: (ReservationStatus.FEE_PAID, ReservationStatus.CANCELLED),
    ReservationStatus.FEE_PAID: (ReservationStatus.CANCELLED,),
}


@dataclass
class UpgradeResult:
    reservation: Reservation
    invoice: Invoice
    installment_profile: Any = None
    promo_evaluation: Any = None
    deducted_merchandise: List[Any] = field(default_factory=list)


@dataclass
class SweepResult:
    expired_ids: List[int] = field(default_factory=list)
    unenrolled: int = 0

    @property
    def expired_count(self) -> int:
        return len(self.expired_ids)

    def as_dict(self):
        return {
            'expired_count': self.expired_count,
            'unenrolled_count': self.unenrolled,
            'expired_reservation_ids': list(self.expired_ids),
        }


# ============ RESERVATION SERVICE ============

class ReservationService:

    @staticmethod
    def get_reservation(reservation_id, lock: bool = False) -> Reservation:
        queryset = Reservation.objects.select_for_update() if lock else Reservation.objects.select_related(
            'student', 'academic_class', 'branch', 'package'
        )
        try:
            return queryset.get(pk=reservation_id)
        except Reservation.DoesNotExist:
            raise NotFoundError(f"Reservation {reservation_id} not found")

    @staticmethod
    def _conflicting_reservations(student_id, class_id, phase_number, exclude_pk=None):
        """Open reservations that would clash with one for `phase_number` (None = whole class)."""
        queryset = Reservation.objects.filter(NON_TERMINAL, student_id=student_id, academic_class_id=class_id)
        if phase_number is not None:
            queryset = queryset.filter(Q(phase_number=phase_number) | Q(phase_number__isnull=True))
        if exclude_pk is not None:
            queryset = queryset.exclude(pk=exclude_pk)
        return queryset

    @staticmethod
    def _validate_phase(academic_class, phase_number):
        if phase_number is None:
            return None
        try:
            phase_number = int(phase_number)
        except (TypeError, ValueError):
            raise ValidationError("phase_number must be a whole number")
        if phase_number < 1:
            raise ValidationError("phase_number must be at least 1")
        total = academic_class.number_of_phases
        if total is not None and phase_number > total:
            raise ValidationError(
                f"phase_number {phase_number} exceeds the class's {total} phases",
                details={'number_of_phases': total},
            )
        return phase_number

    @staticmethod
    def create_reservation(student_id, class_id, phase_number=None, package_id=None, reservation_fee=None,
                           due_date=None, invoice_id=None, notes='', reserved_by='') -> Reservation:
        if not student_id or not class_id:
            raise ValidationError("student_id and class_id are required")

        academic_class = CapacityService.get_class(class_id)
        phase_number = ReservationService._validate_phase(academic_class, phase_number)

        student = Student.objects.filter(pk=student_id).first()
        if student is None:
            raise NotFoundError(f"Student {student_id} not found")

        package = None
        if package_id:
            package = Package.objects.filter(pk=package_id).first()
            if package is None:
                raise NotFoundError(f"Package {package_id} not found")

        invoice = None
        if invoice_id:
            invoice = Invoice.objects.filter(pk=invoice_id).first()
            if invoice is None:
                raise NotFoundError(f"Invoice {invoice_id} not found")

        if reservation_fee is not None:
            fee = to_money(reservation_fee)
            if fee < ZERO:
                raise ValidationError("reservation_fee cannot be negative")
        elif package is not None:
            fee = to_money(package.price)
        else:
            fee = None

        due = due_date or days_after(local_today(), settings.RESERVATION_DEFAULT_DUE_DAYS)

        try:
            with transaction.atomic():
                if ReservationService._conflicting_reservations(student.pk, academic_class.pk, phase_number).exists():
                    raise ConflictError(
                        "Student already has an active reservation for this class"
                        + (f" phase {phase_number}" if phase_number else ""),
                        details={'student_id': student.pk, 'class_id': academic_class.pk},
                        error_code="DUPLICATE_RESERVATION",
                    )
                reservation = Reservation.objects.create(
                    student=student,
                    academic_class=academic_class,
                    branch=academic_class.branch,
                    phase_number=phase_number,
                    package=package,
                    reservation_fee=fee,
                    status=ReservationStatus.RESERVED,
                    due_date=due,
                    invoice=invoice,
                    notes=notes or '',
                    reserved_by=reserved_by or '',
                )
        except IntegrityError:
            raise ConflictError(
                "Student already has an active reservation for this class",
                details={'student_id': student.pk, 'class_id': academic_class.pk},
                error_code="DUPLICATE_RESERVATION",
            )

        logger.info(
            f"Reservation {reservation.pk} created: student {student.pk} -> class {academic_class.pk}"
            f"{f' phase {phase_number}' if phase_number else ''}, fee {fee}, due {due}"
        )
        return reservation

    # ============ UPGRADE ============

    @staticmethod
    def reservation_fee_paid(reservation) -> Decimal:
        """Completed payments against the reservation-fee invoice."""
        if not reservation.invoice_id:
            return ZERO
        total = Payment.objects.filter(
            invoice_id=reservation.invoice_id,
            status=PaymentStatus.COMPLETED,
        ).aggregate(total=Sum('amount'))['total']
        return to_money(total)

    @staticmethod
    def _capacity_error(academic_class, message, class_inactive=False, usage=None):
        details = {
            'class_id': academic_class.pk,
            'alternative_classes': CapacityService.alternative_classes(academic_class),
        }
        if usage is not None:
            details.update({
                'max_students': usage.max_students,
                'enrolled_students': usage.enrolled,
                'reserved_students': usage.reserved,
            })
        return CapacityError(message, details=details, class_inactive=class_inactive)

    @staticmethod
    def _phase_range(reservation, package):
        if package is not None and package.package_type == PackageType.PHASE:
            start = package.phase_start or 1
            return start, package.phase_end or start
        if reservation.phase_number is not None:
            return reservation.phase_number, reservation.phase_number
        return None, None

    @staticmethod
    def _resolve_promo(promo_id, promo_code, package):
        if promo_id:
            promo = Promo.objects.filter(pk=promo_id).first()
            if promo is None:
                raise NotFoundError(f"Promo {promo_id} not found")
            return promo
        if promo_code:
            from promos.services import PromoService
            try:
                return PromoService.find_by_code(promo_code, package)
            except NotFoundError:
                logger.warning(f"Promo code '{promo_code}' not found; upgrading without promo")
        return None

    @staticmethod
    def _pricing_list_ids(selections) -> List[int]:
        ids = []
        for selection in selections or []:
            value = selection
            if isinstance(selection, dict):
                value = selection.get('pricinglist_id') or selection.get('id')
            try:
                ids.append(int(value))
            except (TypeError, ValueError):
                raise ValidationError(
                    "Each selected pricing list needs a numeric pricinglist_id",
                    details={'selected_pricing_lists': selection},
                )
        return ids

    @staticmethod
    def _resolve_merchandise(selections, branch):
        resolved = []
        for selection in selections or []:
            if not isinstance(selection, dict):
                selection = {'merchandise_id': selection}
            merchandise = InventoryService.resolve_merchandise(selection, branch)
            if merchandise is None:
                logger.warning(f"Merchandise not found for selection {selection}; skipped")
                continue
            quantity = int(selection.get('quantity') or 1)
            resolved.append((merchandise, quantity))
        return resolved

    @staticmethod
    def upgrade_reservation(reservation_id, enrollment_type, package_id=None, per_phase_amount=None,
                            selected_pricing_lists: Optional[Sequence[Any]] = None,
                            selected_merchandise: Optional[Sequence[Any]] = None,
                            promo_id=None, promo_code=None,
                            installment_settings: Optional[Dict[str, Any]] = None,
                            upgraded_by='') -> UpgradeResult:
        """
        Reserved / Fee Paid / Expired -> Upgraded. Builds the invoice (and the
        installment profile when settings are given) in one transaction; any
        failure leaves no invoice, usage, profile or stock change behind.
        """
        if enrollment_type not in dict(EnrollmentType.CHOICES):
            raise ValidationError(
                f"enrollment_type must be one of {', '.join(dict(EnrollmentType.CHOICES))}",
                details={'enrollment_type': enrollment_type},
            )
        if enrollment_type == EnrollmentType.PER_PHASE and per_phase_amount is None and not package_id:
            raise ValidationError("Per-Phase enrollment requires per_phase_amount or a package")
        if enrollment_type != EnrollmentType.PER_PHASE and not package_id:
            raise ValidationError(f"{enrollment_type} enrollment requires a package")
        if per_phase_amount is not None and to_money(per_phase_amount) < ZERO:
            raise ValidationError("per_phase_amount cannot be negative")
        parsed_settings = InstallmentSettings.from_data(installment_settings)
        pricing_list_ids = ReservationService._pricing_list_ids(selected_pricing_lists)

        with transaction.atomic():
            reservation = ReservationService.get_reservation(reservation_id, lock=True)
            if reservation.status == ReservationStatus.UPGRADED:
                raise StateTransitionError(f"Reservation {reservation.pk} is already upgraded")
            if reservation.status not in UPGRADABLE:
                raise StateTransitionError(
                    f"Reservation {reservation.pk} cannot be upgraded from {reservation.status}",
                    details={'status': reservation.status},
                )

            academic_class = CapacityService.get_class(reservation.academic_class_id, lock=True)
            student = Student.objects.get(pk=reservation.student_id)
            recovering = reservation.status == ReservationStatus.EXPIRED

            if not academic_class.is_active:
                raise ReservationService._capacity_error(
                    academic_class,
                    f"Class {academic_class.name} is no longer active",
                    class_inactive=True,
                )

            if Enrollment.objects.filter(student=student, academic_class=academic_class).exists():
                raise ConflictError(
                    f"{student.full_name} is already enrolled in {academic_class.name}",
                    details={'student_id': student.pk, 'class_id': academic_class.pk},
                    error_code="ALREADY_ENROLLED",
                )

            if recovering and ReservationService._conflicting_reservations(
                    student.pk, academic_class.pk, reservation.phase_number, exclude_pk=reservation.pk,
            ).exists():
                raise ConflictError(
                    "Student already holds another active reservation for this class",
                    details={'student_id': student.pk, 'class_id': academic_class.pk},
                    error_code="DUPLICATE_RESERVATION",
                )

            usage = CapacityService.seat_usage(academic_class, exclude_reservation_id=reservation.pk)
            if not usage.can_take():
                raise ReservationService._capacity_error(
                    academic_class,
                    f"Class {academic_class.name} is full ({usage.occupied}/{usage.max_students})",
                    usage=usage,
                )

            package = None
            if package_id:
                package = Package.objects.select_related('branch').filter(pk=package_id).first()
                if package is None:
                    raise NotFoundError(f"Package {package_id} not found")

            pricing_lists = []
            if pricing_list_ids:
                pricing_lists = list(PricingList.objects.filter(pk__in=pricing_list_ids).order_by('pk'))
                missing = set(pricing_list_ids) - {pricing.pk for pricing in pricing_lists}
                if missing:
                    raise NotFoundError(f"Pricing list(s) not found: {sorted(missing)}")

            # Promo: evaluated on the pre-fee base, usage claimed before the invoice exists.
            evaluation = None
            promo = ReservationService._resolve_promo(promo_id, promo_code, package)
            if promo is not None:
                base_amount = PromoEvaluator.base_amount_for(package) if package is not None \
                    else to_money(per_phase_amount)
                evaluation = PromoEvaluator.evaluate(promo, student, package, base_amount, promo_code)
                if evaluation.applied:
                    try:
                        PromoEvaluator.record_usage(evaluation, student)
                    except ConflictError as e:
                        logger.warning(f"Promo {promo.pk} not applied to reservation {reservation.pk}: {e.message}")
                        evaluation = evaluation.rejected(e.message)
                else:
                    logger.warning(
                        f"Promo {promo.pk} not applied to reservation {reservation.pk}: "
                        f"{'; '.join(evaluation.reasons)}"
                    )

            # Merchandise: bundled items and selections are deducted; only per-phase selections are charged.
            selections = ReservationService._resolve_merchandise(selected_merchandise, academic_class.branch)
            to_deduct: Dict[int, List[Any]] = {}
            if package is not None:
                for merchandise in package.included_merchandise():
                    to_deduct.setdefault(merchandise.pk, [merchandise, 0])[1] = 1
            charged = []
            for merchandise, quantity in selections:
                entry = to_deduct.setdefault(merchandise.pk, [merchandise, 0])
                entry[1] = max(entry[1], quantity)
                if enrollment_type == EnrollmentType.PER_PHASE:
                    charged.extend([merchandise] * quantity)
            if evaluation is not None and evaluation.applied:
                for merchandise, quantity in evaluation.free_merchandise:
                    entry = to_deduct.setdefault(merchandise.pk, [merchandise, 0])
                    entry[1] += quantity

            deducted = []
            for merchandise, quantity in to_deduct.values():
                if quantity > 0:
                    InventoryService.deduct(merchandise, quantity)
                    deducted.append(merchandise)

            if package is not None and package.is_fullpayment:
                due_date = None
            elif parsed_settings is not None:
                due_date = parsed_settings.invoice_due_date
            else:
                due_date = None

            phase_start, phase_end = ReservationService._phase_range(reservation, package)

            invoice = InvoiceAssembler.assemble(InvoiceAssemblyRequest(
                student=student,
                academic_class=academic_class,
                branch=academic_class.branch,
                enrollment_type=enrollment_type,
                package=package,
                per_phase_amount=to_money(per_phase_amount) if per_phase_amount is not None else None,
                pricing_lists=pricing_lists,
                charged_merchandise=charged,
                promo_evaluation=evaluation,
                reservation_fee_paid=ReservationService.reservation_fee_paid(reservation),
                due_date=due_date,
                phase_start=phase_start,
                phase_end=phase_end,
                created_by=upgraded_by,
            ))

            if evaluation is not None and evaluation.applied:
                PromoUsage.objects.filter(promo=evaluation.promo, student=student).update(invoice=invoice)

            profile = None
            if parsed_settings is not None and package is not None and not package.is_fullpayment:
                profile = InstallmentScheduler.create_profile(
                    invoice, package, academic_class, student, parsed_settings, created_by=upgraded_by,
                )
            elif parsed_settings is not None:
                logger.info(f"Installment settings ignored for full-payment upgrade of reservation {reservation.pk}")

            now = timezone.now()
            patch = ModelPatch(
                ('status', 'upgraded_at', 'upgraded_by', 'enrollment_invoice', 'installment_profile',
                 'expired_at', 'package'),
                status=ReservationStatus.UPGRADED,
                upgraded_at=now,
                upgraded_by=upgraded_by or '',
                enrollment_invoice=invoice,
                installment_profile=profile,
                expired_at=None,
            )
            if package is not None:
                patch.set('package', package)
            patch.apply(Reservation.objects.all(), reservation.pk)
            patch.apply_to_instance(reservation)

        logger.info(
            f"Reservation {reservation.pk} upgraded ({enrollment_type})"
            f"{' from Expired' if recovering else ''}: invoice {invoice.pk} for {invoice.amount}"
            f"{f', installment profile {profile.pk}' if profile else ''}"
        )
        return UpgradeResult(
            reservation=reservation,
            invoice=invoice,
            installment_profile=profile,
            promo_evaluation=evaluation,
            deducted_merchandise=deducted,
        )

    # ============ STATUS CHANGES ============

    @staticmethod
    def update_status(reservation_id, status) -> Reservation:
        """Reserved -> Fee Paid, Reserved/Fee Paid -> Cancelled. Anything else is refused."""
        if status not in dict(ReservationStatus.CHOICES):
            raise ValidationError(f"Unknown reservation status: {status}")

        with transaction.atomic():
            reservation = ReservationService.get_reservation(reservation_id, lock=True)
            if status not in ALLOWED_TRANSITIONS.get(reservation.status, ()):
                raise StateTransitionError(
                    f"Cannot change reservation status from {reservation.status} to {status}",
                    details={'from_status': reservation.status, 'to_status': status},
                )

            patch = ModelPatch(('status', 'reservation_fee_paid_at', 'cancelled_at'), status=status)
            if status == ReservationStatus.FEE_PAID:
                patch.set('reservation_fee_paid_at', timezone.now())
            elif status == ReservationStatus.CANCELLED:
                patch.set('cancelled_at', timezone.now())
            previous = reservation.status
            patch.apply(Reservation.objects.all(), reservation.pk)
            patch.apply_to_instance(reservation)

        logger.info(f"Reservation {reservation.pk} status changed: {previous} -> {status}")
        return reservation

    @staticmethod
    def cancel_reservation(reservation_id) -> Reservation:
        return ReservationService.update_status(reservation_id, ReservationStatus.CANCELLED)

    @staticmethod
    def mark_fee_paid_for_invoice(invoice) -> int:
        """Reserved reservations whose fee invoice is now Paid move to Fee Paid."""
        updated = Reservation.objects.filter(
            invoice=invoice,
            status=ReservationStatus.RESERVED,
        ).update(status=ReservationStatus.FEE_PAID, reservation_fee_paid_at=timezone.now())
        if updated:
            logger.info(f"{updated} reservation(s) marked Fee Paid after invoice {invoice.pk} was paid")
        return updated

    @staticmethod
    def get_alternative_classes(class_id, level_tag=None, limit=None) -> Dict[str, Any]:
        academic_class = CapacityService.get_class(class_id)
        alternatives = CapacityService.alternative_classes(academic_class, level_tag=level_tag, limit=limit)
        return {
            'class_id': academic_class.pk,
            'level_tag': level_tag if level_tag is not None else academic_class.level_tag,
            'alternative_classes': alternatives,
        }


# ============ EXPIRATION SWEEPER ============

class ExpirationSweeper:
    """
    Expire Reserved reservations past their due date whose fee invoice is
    unpaid, and remove the enrollments they were holding.
    """

    @staticmethod
    def candidates(today=None):
        today = today or local_today()
        return (
            Reservation.objects.filter(
                status=ReservationStatus.RESERVED,
                due_date__lt=today,
                expired_at__isnull=True,
            )
            .filter(
                Q(invoice__isnull=True)
                | ~Q(invoice__status__in=(InvoiceStatus.PAID, InvoiceStatus.PARTIALLY_PAID))
            )
            .order_by('due_date', 'pk')
        )

    @staticmethod
    def run(today=None) -> SweepResult:
        today = today or local_today()
        result = SweepResult()

        with transaction.atomic():
            for reservation in ExpirationSweeper.candidates(today):
                claimed = Reservation.objects.filter(
                    pk=reservation.pk,
                    status=ReservationStatus.RESERVED,
                    expired_at__isnull=True,
                ).update(status=ReservationStatus.EXPIRED, expired_at=timezone.now())
                if not claimed:
                    continue

                enrollments = Enrollment.objects.filter(
                    student_id=reservation.student_id,
                    academic_class_id=reservation.academic_class_id,
                )
                if reservation.phase_number is not None:
                    enrollments = enrollments.filter(phase_number=reservation.phase_number)
                removed, _ = enrollments.delete()

                result.expired_ids.append(reservation.pk)
                result.unenrolled += removed
                logger.info(
                    f"Reservation {reservation.pk} expired (due {reservation.due_date}); "
                    f"{removed} enrollment(s) removed"
                )

        if result.expired_ids:
            logger.info(f"Expiration sweep: {result.expired_count} expired, {result.unenrolled} unenrolled")
        return result
