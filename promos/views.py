# promos/views.py
import logging

from rest_framework import status
from rest_framework.decorators import api_view

# SHARED IMPORTS
from shared.constants import PromoStatus
from shared.utils.responses import paginate, success_response

from core.exceptions import ValidationError

# LOCAL IMPORTS
from .models import Promo
from .serializers import PromoSerializer, PromoWriteSerializer, ValidateCodeSerializer
from .services import PromoService

logger = logging.getLogger(__name__)


def _validated(serializer_class, data, partial=False):
    serializer = serializer_class(data=data, partial=partial)
    if not serializer.is_valid():
        raise ValidationError("Invalid request data", details={'errors': serializer.errors})
    return dict(serializer.validated_data)


def _actor(request):
    user = getattr(request, 'user', None)
    return user.get_username() if user is not None and user.is_authenticated else ''


@api_view(['GET', 'POST'])
def promo_list_view(request):
    if request.method == 'POST':
        data = _validated(PromoWriteSerializer, request.data)
        promo = PromoService.create_promo(data, created_by=_actor(request))
        return success_response(PromoSerializer(promo).data, message="Promo created", status=status.HTTP_201_CREATED)

    PromoService.deactivate_stale()

    promos = Promo.objects.select_related('branch').prefetch_related('packages', 'merchandise_items__merchandise')
    status_filter = request.query_params.get('status')
    branch_id = request.query_params.get('branch_id')
    package_id = request.query_params.get('package_id')

    if status_filter in dict(PromoStatus.CHOICES):
        promos = promos.filter(status=status_filter)
    if branch_id:
        promos = promos.filter(branch_id=branch_id)
    if package_id:
        promos = promos.filter(packages__id=package_id).distinct()

    page_obj, meta = paginate(request, promos)
    return success_response(PromoSerializer(page_obj.object_list, many=True).data, pagination=meta)


@api_view(['GET', 'PUT'])
def promo_detail_view(request, promo_id):
    if request.method == 'PUT':
        data = _validated(PromoWriteSerializer, request.data, partial=True)
        promo = PromoService.update_promo(promo_id, data)
        return success_response(PromoSerializer(promo).data, message="Promo updated")

    promo = PromoService.get_promo(promo_id)
    return success_response(PromoSerializer(promo).data)


@api_view(['POST'])
def validate_code_view(request):
    data = _validated(ValidateCodeSerializer, request.data)
    result = PromoService.validate_code(
        data['promo_code'],
        package_id=data.get('package_id'),
        student_id=data.get('student_id'),
    )
    payload = {
        'promo': PromoSerializer(result['promo']).data,
        'base_amount': str(result['base_amount']) if result['base_amount'] is not None else None,
        'discount': str(result['discount']) if result['discount'] is not None else None,
    }
    return success_response(payload, message="Promo code is valid")
