# reservations/serializers.py
from rest_framework import serializers

from shared.constants import EnrollmentType, ReservationStatus

from billing.serializers import InstallmentProfileSerializer, InstallmentSettingsSerializer, InvoiceDetailSerializer

from .models import Reservation


class ReservationSerializer(serializers.ModelSerializer):
    student_name = serializers.CharField(source='student.full_name', read_only=True)
    class_name = serializers.CharField(source='academic_class.name', read_only=True)
    class_id = serializers.IntegerField(source='academic_class_id', read_only=True)
    package_name = serializers.CharField(source='package.name', read_only=True, default=None)

    class Meta:
        model = Reservation
        fields = [
            'id', 'student', 'student_name', 'class_id', 'class_name', 'branch', 'phase_number',
            'package', 'package_name', 'reservation_fee', 'status', 'due_date', 'invoice',
            'enrollment_invoice', 'installment_profile', 'notes', 'reserved_by', 'upgraded_by',
            'reserved_at', 'reservation_fee_paid_at', 'upgraded_at', 'expired_at', 'cancelled_at',
        ]


class CreateReservationSerializer(serializers.Serializer):
    student_id = serializers.IntegerField()
    class_id = serializers.IntegerField()
    phase_number = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    package_id = serializers.IntegerField(required=False, allow_null=True)
    reservation_fee = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    due_date = serializers.DateField(required=False, allow_null=True)
    invoice_id = serializers.IntegerField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class MerchandiseSelectionSerializer(serializers.Serializer):
    merchandise_id = serializers.IntegerField(required=False, allow_null=True)
    merchandise_name = serializers.CharField(required=False, allow_blank=True)
    size = serializers.CharField(required=False, allow_blank=True)
    quantity = serializers.IntegerField(required=False, min_value=1, default=1)


class UpgradeReservationSerializer(serializers.Serializer):
    enrollment_type = serializers.ChoiceField(choices=EnrollmentType.CHOICES)
    package_id = serializers.IntegerField(required=False, allow_null=True)
    per_phase_amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    selected_pricing_lists = serializers.ListField(child=serializers.IntegerField(), required=False)
    selected_merchandise = MerchandiseSelectionSerializer(many=True, required=False)
    promo_id = serializers.IntegerField(required=False, allow_null=True)
    promo_code = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    installment_settings = InstallmentSettingsSerializer(required=False, allow_null=True)


class UpdateStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=ReservationStatus.CHOICES)


class UpgradeResultSerializer(serializers.Serializer):
    reservation = ReservationSerializer()
    invoice = InvoiceDetailSerializer()
    installment_profile = InstallmentProfileSerializer(allow_null=True)
    promo = serializers.SerializerMethodField()

    def get_promo(self, obj):
        evaluation = obj.promo_evaluation
        if evaluation is None:
            return None
        return {
            'promo_id': evaluation.promo.pk,
            'applied': evaluation.applied,
            'discount': str(evaluation.discount),
            'reasons': evaluation.reasons,
        }
