# reservations/views.py
"""
Reservation API. Views validate input and delegate to ReservationService.
"""
import logging

from django.conf import settings
from rest_framework import status
from rest_framework.decorators import api_view

# SHARED IMPORTS
from shared.utils.responses import paginate, success_response

from core.exceptions import ValidationError

# LOCAL IMPORTS
from .models import Reservation
from .serializers import (
    CreateReservationSerializer, ReservationSerializer, UpdateStatusSerializer, UpgradeReservationSerializer,
    UpgradeResultSerializer,
)
from .services import ExpirationSweeper, ReservationService

logger = logging.getLogger(__name__)


def _validated(serializer_class, data):
    serializer = serializer_class(data=data)
    if not serializer.is_valid():
        raise ValidationError("Invalid request data", details={'errors': serializer.errors})
    return serializer.validated_data


def _actor(request):
    user = getattr(request, 'user', None)
    return user.get_username() if user is not None and user.is_authenticated else ''


# ============ LIST / CREATE ============

@api_view(['GET', 'POST'])
def reservation_list_view(request):
    if request.method == 'POST':
        data = _validated(CreateReservationSerializer, request.data)
        reservation = ReservationService.create_reservation(
            data['student_id'],
            data['class_id'],
            phase_number=data.get('phase_number'),
            package_id=data.get('package_id'),
            reservation_fee=data.get('reservation_fee'),
            due_date=data.get('due_date'),
            invoice_id=data.get('invoice_id'),
            notes=data.get('notes', ''),
            reserved_by=_actor(request),
        )
        return success_response(
            ReservationSerializer(reservation).data,
            message="Reservation created",
            status=status.HTTP_201_CREATED,
        )

    if settings.RESERVATION_SWEEP_ON_READ:
        try:
            ExpirationSweeper.run()
        except Exception as e:
            logger.error(f"Reservation sweep before list read failed: {str(e)}", exc_info=True)

    reservations = Reservation.objects.select_related('student', 'academic_class', 'package')
    for param, lookup in (('class_id', 'academic_class_id'), ('student_id', 'student_id'),
                          ('branch_id', 'branch_id'), ('status', 'status')):
        value = request.query_params.get(param)
        if value:
            reservations = reservations.filter(**{lookup: value})

    page_obj, meta = paginate(request, reservations)
    return success_response(ReservationSerializer(page_obj.object_list, many=True).data, pagination=meta)


# ============ DETAIL / CANCEL ============

@api_view(['GET', 'DELETE'])
def reservation_detail_view(request, reservation_id):
    if request.method == 'DELETE':
        reservation = ReservationService.cancel_reservation(reservation_id)
        return success_response(ReservationSerializer(reservation).data, message="Reservation cancelled")

    reservation = ReservationService.get_reservation(reservation_id)
    return success_response(ReservationSerializer(reservation).data)


@api_view(['PUT'])
def upgrade_reservation_view(request, reservation_id):
    data = _validated(UpgradeReservationSerializer, request.data)
    installment_settings = data.get('installment_settings')
    result = ReservationService.upgrade_reservation(
        reservation_id,
        data['enrollment_type'],
        package_id=data.get('package_id'),
        per_phase_amount=data.get('per_phase_amount'),
        selected_pricing_lists=data.get('selected_pricing_lists'),
        selected_merchandise=[dict(item) for item in data.get('selected_merchandise', [])],
        promo_id=data.get('promo_id'),
        promo_code=data.get('promo_code') or None,
        installment_settings=dict(installment_settings) if installment_settings else None,
        upgraded_by=_actor(request),
    )
    return success_response(UpgradeResultSerializer(result).data, message="Reservation upgraded")


@api_view(['PUT'])
def update_status_view(request, reservation_id):
    data = _validated(UpdateStatusSerializer, request.data)
    reservation = ReservationService.update_status(reservation_id, data['status'])
    return success_response(ReservationSerializer(reservation).data, message=f"Reservation {reservation.status}")


# ============ SWEEP / ALTERNATIVES ============

@api_view(['POST'])
def expire_unpaid_view(request):
    result = ExpirationSweeper.run()
    return success_response(
        result.as_dict(),
        message=f"Expired {result.expired_count} reservation(s)",
        **result.as_dict(),
    )


@api_view(['GET'])
def alternative_classes_view(request, class_id):
    level_tag = request.query_params.get('level_tag') or None
    try:
        limit = int(request.query_params['limit']) if request.query_params.get('limit') else None
    except ValueError:
        raise ValidationError("limit must be a whole number")
    return success_response(ReservationService.get_alternative_classes(class_id, level_tag=level_tag, limit=limit))
