# core/services.py
"""
Class capacity and merchandise inventory services.
Callers own the transaction; these helpers only read or issue single UPDATEs.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from django.apps import apps
from django.conf import settings
from django.db.models import F, Q

# SHARED IMPORTS
from shared.constants import ClassStatus, ReservationStatus

from .exceptions import InventoryError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


# ============ HELPER FUNCTIONS ============

def _get_model(model_name: str, app_label: str = 'core'):
    """Get model lazily to avoid circular imports."""
    try:
        return apps.get_model(app_label, model_name)
    except LookupError as e:
        logger.error(f"Model not found: {app_label}.{model_name} - {e}")
        raise


@dataclass
class SeatUsage:
    enrolled: int
    reserved: int
    max_students: Optional[int]

    @property
    def occupied(self) -> int:
        return self.enrolled + self.reserved

    @property
    def available(self) -> Optional[int]:
        if self.max_students is None:
            return None
        return max(0, self.max_students - self.occupied)

    def can_take(self, seats: int = 1) -> bool:
        return self.max_students is None or self.occupied + seats <= self.max_students


# ============ CAPACITY SERVICES ============

class CapacityService:
    """Seat counting across enrollments and non-terminal reservations."""

    @staticmethod
    def get_class(class_id, lock: bool = False):
        """Fetch a class, optionally locking its row for the rest of the transaction."""
        Class = _get_model('Class')
        if lock:
            queryset = Class.objects.select_for_update()
        else:
            queryset = Class.objects.select_related('program__curriculum', 'branch')
        try:
            return queryset.get(pk=class_id)
        except Class.DoesNotExist:
            raise NotFoundError(f"Class {class_id} not found")

    @staticmethod
    def seat_usage(academic_class, exclude_reservation_id=None) -> SeatUsage:
        """
        Distinct enrolled students plus distinct students holding a
        non-terminal reservation. The two counts are independent: an enrolled
        student with an open reservation for a later phase takes two seats.
        """
        Enrollment = _get_model('Enrollment', 'students')
        Reservation = _get_model('Reservation', 'reservations')

        enrolled_ids = set(
            Enrollment.objects.filter(academic_class=academic_class)
            .values_list('student_id', flat=True)
        )
        reservations = (
            Reservation.objects.filter(academic_class=academic_class)
            .exclude(status__in=ReservationStatus.TERMINAL)
        )
        if exclude_reservation_id is not None:
            reservations = reservations.exclude(pk=exclude_reservation_id)
        reserved_ids = set(reservations.values_list('student_id', flat=True))

        return SeatUsage(
            enrolled=len(enrolled_ids),
            reserved=len(reserved_ids),
            max_students=academic_class.max_students,
        )

    @staticmethod
    def alternative_classes(academic_class, level_tag: Optional[str] = None,
                            limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Active classes sharing the level tag that still have free seats,
        unlimited classes first, then most free seats, then name.
        """
        Class = _get_model('Class')
        level_tag = level_tag if level_tag is not None else academic_class.level_tag
        limit = limit or settings.ALTERNATIVE_CLASS_LIMIT

        candidates = (
            Class.objects.filter(status=ClassStatus.ACTIVE, level_tag=level_tag)
            .exclude(pk=academic_class.pk)
            .select_related('program', 'branch')
        )

        alternatives = []
        for candidate in candidates:
            usage = CapacityService.seat_usage(candidate)
            if not usage.can_take():
                continue
            alternatives.append({
                'class_id': candidate.pk,
                'class_name': candidate.name,
                'level_tag': candidate.level_tag,
                'program_name': candidate.program.name,
                'branch_name': candidate.branch.name,
                'max_students': candidate.max_students,
                'enrolled_students': usage.enrolled,
                'reserved_students': usage.reserved,
                'available_slots': usage.available,
            })

        alternatives.sort(key=lambda row: (
            row['available_slots'] is not None,
            -(row['available_slots'] or 0),
            row['class_name'],
        ))
        return alternatives[:limit]


# ============ INVENTORY SERVICES ============

class InventoryService:
    """Merchandise lookup and stock deduction."""

    @staticmethod
    def resolve_merchandise(selection: Dict[str, Any], branch=None):
        """
        Find a merchandise row by id, then by name and size, then by name.
        Returns None when nothing matches.
        """
        Merchandise = _get_model('Merchandise')
        merchandise = None

        merchandise_id = selection.get('merchandise_id') or selection.get('id')
        if merchandise_id:
            merchandise = Merchandise.objects.filter(pk=merchandise_id).first()

        name = (selection.get('merchandise_name') or selection.get('name') or '').strip()
        if merchandise is None and name:
            queryset = Merchandise.objects.filter(name__iexact=name)
            if branch is not None:
                queryset = queryset.filter(Q(branch=branch) | Q(branch__isnull=True))
            size = (selection.get('size') or '').strip()
            if size:
                merchandise = queryset.filter(size__iexact=size).order_by('pk').first()
            if merchandise is None:
                merchandise = queryset.order_by('pk').first()

        if merchandise is not None and branch is not None and merchandise.branch_id not in (None, branch.pk):
            raise ValidationError(
                f"Merchandise '{merchandise.name}' does not belong to branch {branch.name}",
                details={'merchandise_id': merchandise.pk},
            )
        return merchandise

    @staticmethod
    def deduct(merchandise, quantity: int = 1) -> None:
        """
        Conditionally decrement stock; untracked stock (NULL quantity) is left alone.
        Raises InventoryError when fewer than `quantity` items remain.
        """
        if quantity <= 0:
            raise ValidationError("Merchandise quantity must be positive")

        Merchandise = _get_model('Merchandise')
        if merchandise.quantity is None:
            logger.debug(f"Stock not tracked for merchandise {merchandise.pk}; skipping deduction")
            return

        updated = Merchandise.objects.filter(
            pk=merchandise.pk,
            quantity__gte=quantity,
        ).update(quantity=F('quantity') - quantity)

        if not updated:
            current = Merchandise.objects.filter(pk=merchandise.pk).values_list('quantity', flat=True).first()
            raise InventoryError(
                f"Insufficient inventory for {merchandise}: requested {quantity}, available {current or 0}",
                details={'merchandise_id': merchandise.pk, 'requested': quantity, 'available': current or 0},
            )

        merchandise.refresh_from_db(fields=['quantity'])
        logger.info(f"Deducted {quantity} x {merchandise} (remaining {merchandise.quantity})")
