# promos/services.py
"""
Promo evaluation and administration.

Evaluation fails closed: any failing rule leaves the discount at zero and the
reasons are reported back for logging. Applying a promo records a usage row
and bumps current_uses in the same savepoint, so the two never diverge.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from django.db import IntegrityError, transaction
from django.db.models import F, Q

# SHARED IMPORTS
from shared.constants import EligibilityType, PromoStatus, PromoType
from shared.utils import ModelPatch
from shared.utils.dates import today as local_today
from shared.utils.money import ZERO, percent_of, to_money

from core.exceptions import ConflictError, NotFoundError, ValidationError

# LOCAL MODELS ONLY
from .models import Promo, PromoMerchandise, PromoUsage

logger = logging.getLogger(__name__)


@dataclass
class PromoEvaluation:
    promo: Any
    applied: bool = False
    discount: Decimal = ZERO
    base_amount: Decimal = ZERO
    reasons: List[str] = field(default_factory=list)
    free_merchandise: List[Tuple[Any, int]] = field(default_factory=list)

    @property
    def label(self) -> str:
        """Human-readable discount, e.g. '10%' or '50.00'."""
        promo = self.promo
        percentage = promo.discount_percentage or ZERO
        if promo.promo_type == PromoType.PERCENTAGE_DISCOUNT or (
                promo.promo_type == PromoType.COMBINED and percentage > ZERO):
            return f"{percentage.normalize():f}%"
        return f"{to_money(self.discount)}"

    def rejected(self, reason: str) -> 'PromoEvaluation':
        """Copy of this evaluation marked as not applied."""
        return PromoEvaluation(
            promo=self.promo,
            applied=False,
            discount=ZERO,
            base_amount=self.base_amount,
            reasons=self.reasons + [reason],
        )


# ============ PROMO EVALUATOR ============

class PromoEvaluator:

    @staticmethod
    def base_amount_for(package) -> Decimal:
        """Installment packages are judged on their down payment, others on price."""
        if package is None:
            return ZERO
        if package.is_installment and package.downpayment_amount is not None:
            return to_money(package.downpayment_amount)
        return to_money(package.price)

    @staticmethod
    def compute_discount(promo, base_amount) -> Decimal:
        base_amount = to_money(base_amount)
        percentage = promo.discount_percentage or ZERO
        fixed = promo.discount_amount or ZERO

        if promo.promo_type == PromoType.PERCENTAGE_DISCOUNT and percentage > ZERO:
            discount = percent_of(base_amount, percentage)
        elif promo.promo_type == PromoType.FIXED_DISCOUNT and fixed > ZERO:
            discount = to_money(fixed)
        elif promo.promo_type == PromoType.COMBINED:
            if percentage > ZERO:
                discount = percent_of(base_amount, percentage)
            elif fixed > ZERO:
                discount = to_money(fixed)
            else:
                discount = ZERO
        else:
            discount = ZERO
        return min(discount, base_amount)

    @staticmethod
    def is_eligible(promo, student) -> bool:
        eligibility = promo.eligibility_type
        if eligibility == EligibilityType.NEW_STUDENTS_ONLY:
            return not student.has_enrollments
        if eligibility == EligibilityType.EXISTING_STUDENTS_ONLY:
            return student.has_enrollments
        if eligibility == EligibilityType.REFERRAL_ONLY:
            return student.has_verified_referral
        return True

    @staticmethod
    def code_matches(promo, supplied_code: Optional[str], branch=None) -> bool:
        """Exact code, or the base code of a branch-specific code (base + city)."""
        if not promo.promo_code:
            return True
        supplied = (supplied_code or '').strip().upper()
        if not supplied:
            return False
        if supplied == promo.promo_code:
            return True
        if branch is not None:
            return branch_specific_code(supplied, branch) == promo.promo_code
        return False

    @staticmethod
    def check(promo, student=None, package=None, base_amount=None, today=None) -> List[str]:
        """Every failing rule, in a stable order. Student and package checks are skipped when absent."""
        today = today or local_today()
        reasons = []

        if promo.status != PromoStatus.ACTIVE:
            reasons.append('promo is not active')
        if promo.start_date and today < promo.start_date:
            reasons.append('promo is not yet valid')
        if promo.end_date and today > promo.end_date:
            reasons.append('promo has expired')
        if promo.uses_exhausted:
            reasons.append('promo has reached maximum uses')
        if package is not None and not promo.packages.filter(pk=package.pk).exists():
            reasons.append('promo does not match selected package')
        if student is not None:
            if PromoUsage.objects.filter(promo=promo, student=student).exists():
                reasons.append('student has already used this promo')
            if not PromoEvaluator.is_eligible(promo, student):
                reasons.append(f'student does not meet eligibility ({promo.eligibility_type})')
        if base_amount is not None and promo.min_payment_amount is not None:
            if to_money(base_amount) < to_money(promo.min_payment_amount):
                reasons.append(
                    f'base amount ({to_money(base_amount)}) is less than minimum payment '
                    f'({to_money(promo.min_payment_amount)})'
                )
        return reasons

    @staticmethod
    def evaluate(promo, student, package, base_amount=None, promo_code=None, today=None) -> PromoEvaluation:
        """Promos only apply against a package in their package set; no package never matches."""
        if base_amount is None:
            base_amount = PromoEvaluator.base_amount_for(package)
        base_amount = to_money(base_amount)

        reasons = PromoEvaluator.check(promo, student, package, base_amount, today)
        if package is None:
            reasons.append('promo does not match selected package')
        branch = package.branch if package is not None else None
        if not PromoEvaluator.code_matches(promo, promo_code, branch):
            reasons.append('invalid or missing promo code')

        if reasons:
            return PromoEvaluation(promo=promo, base_amount=base_amount, reasons=reasons)

        free_merchandise = [
            (item.merchandise, item.quantity)
            for item in PromoMerchandise.objects.filter(promo=promo).select_related('merchandise')
        ]
        return PromoEvaluation(
            promo=promo,
            applied=True,
            discount=PromoEvaluator.compute_discount(promo, base_amount),
            base_amount=base_amount,
            free_merchandise=free_merchandise,
        )

    @staticmethod
    def record_usage(evaluation: PromoEvaluation, student, invoice=None) -> PromoUsage:
        """
        Insert the usage row and claim one use in a savepoint. Raises
        ConflictError, leaving no usage row, when the student already used the
        promo or the last use was taken concurrently.
        """
        if not evaluation.applied:
            raise ValidationError("Cannot record usage for a promo that was not applied")

        promo = evaluation.promo
        try:
            with transaction.atomic():
                usage = PromoUsage.objects.create(
                    promo=promo,
                    student=student,
                    invoice=invoice,
                    discount_applied=evaluation.discount,
                )
                claimed = Promo.objects.filter(
                    Q(max_uses__isnull=True) | Q(current_uses__lt=F('max_uses')),
                    pk=promo.pk,
                    status=PromoStatus.ACTIVE,
                ).update(current_uses=F('current_uses') + 1)
                if not claimed:
                    raise ConflictError(
                        f"Promo '{promo.name}' has no remaining uses",
                        details={'promo_id': promo.pk},
                    )
                Promo.objects.filter(
                    pk=promo.pk,
                    max_uses__isnull=False,
                    current_uses__gte=F('max_uses'),
                ).update(status=PromoStatus.INACTIVE)
        except IntegrityError:
            raise ConflictError(
                f"Student has already used promo '{promo.name}'",
                details={'promo_id': promo.pk, 'student_id': student.pk},
            )

        promo.refresh_from_db(fields=['current_uses', 'status'])
        logger.info(
            f"Promo {promo.pk} applied to student {student.pk}: discount {evaluation.discount}, "
            f"uses {promo.current_uses}/{promo.max_uses or '-'}"
        )
        return usage


def branch_specific_code(base_code: str, branch) -> str:
    """Base code suffixed with the branch city (or name), letters and digits only."""
    source = (branch.city or branch.name or '').upper()
    return base_code.strip().upper() + ''.join(ch for ch in source if ch.isalnum())


# ============ PROMO ADMINISTRATION ============

class PromoService:

    UPDATABLE_FIELDS = (
        'name', 'promo_type', 'promo_code', 'discount_percentage', 'discount_amount',
        'min_payment_amount', 'start_date', 'end_date', 'max_uses', 'eligibility_type',
        'status', 'description', 'branch_id',
    )

    @staticmethod
    def deactivate_stale(today=None) -> int:
        """Flip Active promos past their end date or out of uses to Inactive."""
        today = today or local_today()
        updated = Promo.objects.filter(status=PromoStatus.ACTIVE).filter(
            Q(end_date__lt=today) | Q(max_uses__isnull=False, current_uses__gte=F('max_uses'))
        ).update(status=PromoStatus.INACTIVE)
        if updated:
            logger.info(f"Deactivated {updated} stale promo(s)")
        return updated

    @staticmethod
    def get_promo(promo_id) -> Promo:
        try:
            return Promo.objects.get(pk=promo_id)
        except Promo.DoesNotExist:
            raise NotFoundError(f"Promo {promo_id} not found")

    @staticmethod
    def find_by_code(code: str, package=None) -> Promo:
        normalized = (code or '').strip().upper()
        if not normalized:
            raise ValidationError("Promo code is required")

        promo = Promo.objects.filter(promo_code=normalized).first()
        if promo is None and package is not None:
            promo = Promo.objects.filter(promo_code=branch_specific_code(normalized, package.branch)).first()
        if promo is None:
            raise NotFoundError("Invalid promo code")
        return promo

    @staticmethod
    def validate_code(code: str, package_id=None, student_id=None, today=None) -> Dict[str, Any]:
        """
        Resolve a code (with branch-specific fallback) and check it against the
        optional package and student. Returns the promo and, when a package is
        given, the discount preview.
        """
        from core.models import Package
        from students.models import Student

        package = None
        if package_id:
            package = Package.objects.select_related('branch').filter(pk=package_id).first()
            if package is None:
                raise NotFoundError(f"Package {package_id} not found")
        student = None
        if student_id:
            student = Student.objects.filter(pk=student_id).first()
            if student is None:
                raise NotFoundError(f"Student {student_id} not found")

        promo = PromoService.find_by_code(code, package)
        base_amount = PromoEvaluator.base_amount_for(package) if package is not None else None
        reasons = PromoEvaluator.check(promo, student, package, base_amount, today)
        if 'student has already used this promo' in reasons:
            raise ConflictError("You have already used this promo code", details={'reasons': reasons})
        if reasons:
            raise ValidationError(f"Promo code cannot be used: {reasons[0]}", details={'reasons': reasons})

        result = {'promo': promo, 'discount': None, 'base_amount': None}
        if package is not None:
            result['base_amount'] = base_amount
            result['discount'] = PromoEvaluator.compute_discount(promo, base_amount)
        return result

    @staticmethod
    def _validate_values(values: Dict[str, Any]) -> None:
        start_date, end_date = values.get('start_date'), values.get('end_date')
        if start_date and end_date and end_date < start_date:
            raise ValidationError("End date must be on or after start date")

        promo_type = values.get('promo_type')
        percentage = values.get('discount_percentage')
        fixed = values.get('discount_amount')
        if promo_type == PromoType.PERCENTAGE_DISCOUNT and not percentage:
            raise ValidationError("Percentage discount requires discount_percentage")
        if promo_type == PromoType.FIXED_DISCOUNT and not fixed:
            raise ValidationError("Fixed discount requires discount_amount")
        if promo_type == PromoType.COMBINED and not (percentage or fixed):
            raise ValidationError("Combined promo requires a percentage or a fixed amount")
        if percentage is not None and not (Decimal('0') <= Decimal(str(percentage)) <= Decimal('100')):
            raise ValidationError("Discount percentage must be between 0 and 100")

    @staticmethod
    def _ensure_code_free(code: Optional[str], exclude_pk=None) -> Optional[str]:
        if not code:
            return None
        normalized = code.strip().upper()
        clash = Promo.objects.filter(promo_code=normalized)
        if exclude_pk is not None:
            clash = clash.exclude(pk=exclude_pk)
        if clash.exists():
            raise ConflictError(f"Promo code {normalized} already exists")
        return normalized

    @staticmethod
    def _set_merchandise(promo, merchandise_items) -> None:
        PromoMerchandise.objects.filter(promo=promo).delete()
        for item in merchandise_items or []:
            PromoMerchandise.objects.create(
                promo=promo,
                merchandise_id=item['merchandise_id'],
                quantity=item.get('quantity') or 1,
            )

    @staticmethod
    def create_promo(data: Dict[str, Any], created_by: str = '') -> Promo:
        values = {key: data.get(key) for key in PromoService.UPDATABLE_FIELDS if key in data}
        PromoService._validate_values(values)
        values['promo_code'] = PromoService._ensure_code_free(values.get('promo_code'))
        values.setdefault('status', PromoStatus.ACTIVE)
        values.setdefault('eligibility_type', EligibilityType.ALL)

        try:
            with transaction.atomic():
                promo = Promo.objects.create(created_by=created_by, **values)
                promo.packages.set(data.get('package_ids') or [])
                PromoService._set_merchandise(promo, data.get('merchandise'))
        except IntegrityError:
            raise ConflictError(f"Promo code {values.get('promo_code')} already exists")

        logger.info(f"Promo created: {promo.name} ({promo.promo_code or 'no code'})")
        return promo

    @staticmethod
    def update_promo(promo_id, data: Dict[str, Any]) -> Promo:
        promo = PromoService.get_promo(promo_id)
        patch = ModelPatch.from_data(PromoService.UPDATABLE_FIELDS, data)

        merged = {key: getattr(promo, key) for key in PromoService.UPDATABLE_FIELDS}
        merged.update(patch.changes)
        PromoService._validate_values(merged)
        if patch.has('promo_code'):
            patch.set('promo_code', PromoService._ensure_code_free(patch.get('promo_code'), exclude_pk=promo.pk))

        try:
            with transaction.atomic():
                patch.apply(Promo.objects.all(), promo.pk)
                if 'package_ids' in data:
                    promo.packages.set(data.get('package_ids') or [])
                if 'merchandise' in data:
                    PromoService._set_merchandise(promo, data.get('merchandise'))
        except IntegrityError:
            raise ConflictError(f"Promo code {patch.get('promo_code')} already exists")

        promo.refresh_from_db()
        logger.info(f"Promo {promo.pk} updated: {sorted(patch.changes)}")
        return promo
