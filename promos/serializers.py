# promos/serializers.py
from rest_framework import serializers

from shared.constants import EligibilityType, PromoStatus, PromoType

from .models import Promo, PromoMerchandise


class PromoMerchandiseSerializer(serializers.ModelSerializer):
    merchandise_id = serializers.IntegerField()
    merchandise_name = serializers.CharField(source='merchandise.name', read_only=True)

    class Meta:
        model = PromoMerchandise
        fields = ['merchandise_id', 'merchandise_name', 'quantity']


class PromoSerializer(serializers.ModelSerializer):
    package_ids = serializers.PrimaryKeyRelatedField(source='packages', many=True, read_only=True)
    merchandise = PromoMerchandiseSerializer(source='merchandise_items', many=True, read_only=True)

    class Meta:
        model = Promo
        fields = [
            'id', 'name', 'branch', 'promo_type', 'promo_code', 'discount_percentage', 'discount_amount',
            'min_payment_amount', 'start_date', 'end_date', 'max_uses', 'current_uses', 'eligibility_type',
            'status', 'description', 'package_ids', 'merchandise', 'created_by', 'created_at',
        ]


class PromoMerchandiseInputSerializer(serializers.Serializer):
    merchandise_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1, default=1)


class PromoWriteSerializer(serializers.Serializer):
    """Create (all required fields) or partial update (partial=True)."""
    name = serializers.CharField(max_length=255)
    branch_id = serializers.IntegerField(required=False, allow_null=True)
    promo_type = serializers.ChoiceField(choices=PromoType.CHOICES)
    promo_code = serializers.CharField(max_length=50, required=False, allow_null=True, allow_blank=True)
    discount_percentage = serializers.DecimalField(max_digits=5, decimal_places=2, required=False, allow_null=True)
    discount_amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    min_payment_amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    start_date = serializers.DateField()
    end_date = serializers.DateField()
    max_uses = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    eligibility_type = serializers.ChoiceField(choices=EligibilityType.CHOICES, required=False)
    status = serializers.ChoiceField(choices=PromoStatus.CHOICES, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    package_ids = serializers.ListField(child=serializers.IntegerField(), required=False)
    merchandise = PromoMerchandiseInputSerializer(many=True, required=False)


class ValidateCodeSerializer(serializers.Serializer):
    promo_code = serializers.CharField()
    package_id = serializers.IntegerField(required=False, allow_null=True)
    student_id = serializers.IntegerField(required=False, allow_null=True)
