# billing/serializers.py
from rest_framework import serializers

from .models import InstallmentInvoice, InstallmentProfile, Invoice, InvoiceEnrollmentLink, InvoiceItem, Payment
from .services import InvoiceTotals


class InvoiceItemSerializer(serializers.ModelSerializer):
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = InvoiceItem
        fields = ['id', 'description', 'amount', 'tax_percentage', 'discount_amount', 'penalty_amount', 'line_total']


class InvoiceEnrollmentLinkSerializer(serializers.ModelSerializer):
    class_id = serializers.IntegerField(source='academic_class_id', read_only=True)

    class Meta:
        model = InvoiceEnrollmentLink
        fields = ['class_id', 'phase_start', 'phase_end']


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = ['id', 'amount', 'status', 'payment_method', 'reference_number', 'issue_date', 'created_at']


class InvoiceSerializer(serializers.ModelSerializer):
    """List shape: stored and computed status side by side."""
    student_name = serializers.CharField(source='student.full_name', read_only=True, default=None)
    computed_status = serializers.CharField(read_only=True)

    class Meta:
        model = Invoice
        fields = [
            'id', 'description', 'branch', 'student', 'student_name', 'amount', 'status', 'computed_status',
            'issue_date', 'due_date', 'late_penalty_applied_for_due_date', 'installment_profile', 'package', 'promo',
            'remarks', 'created_by', 'created_at',
        ]


class InvoiceDetailSerializer(InvoiceSerializer):
    items = InvoiceItemSerializer(many=True, read_only=True)
    payments = PaymentSerializer(many=True, read_only=True)
    enrollment_link = serializers.SerializerMethodField()
    totals = serializers.SerializerMethodField()
    amount_paid = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    balance = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta(InvoiceSerializer.Meta):
        fields = InvoiceSerializer.Meta.fields + [
            'items', 'payments', 'enrollment_link', 'totals', 'amount_paid', 'balance',
        ]

    def get_enrollment_link(self, obj):
        link = InvoiceEnrollmentLink.objects.filter(invoice=obj).first()
        return InvoiceEnrollmentLinkSerializer(link).data if link else None

    def get_totals(self, obj):
        return InvoiceTotals.from_items(obj.items.all()).as_dict()


class InstallmentInvoiceSerializer(serializers.ModelSerializer):
    class Meta:
        model = InstallmentInvoice
        fields = [
            'id', 'scheduled_date', 'status', 'student_name', 'total_amount_including_tax',
            'total_amount_excluding_tax', 'next_generation_date', 'next_invoice_month',
        ]


class InstallmentProfileSerializer(serializers.ModelSerializer):
    student_name = serializers.CharField(source='student.full_name', read_only=True)
    paid_phases = serializers.IntegerField(read_only=True)
    occurrences = InstallmentInvoiceSerializer(many=True, read_only=True)

    class Meta:
        model = InstallmentProfile
        fields = [
            'id', 'student', 'student_name', 'branch', 'package', 'academic_class', 'amount', 'frequency_months',
            'description', 'day_of_month', 'is_active', 'total_phases', 'generated_count', 'paid_phases',
            'downpayment_invoice', 'downpayment_paid', 'bill_invoice_due_date', 'next_invoice_due_date',
            'first_billing_month', 'first_generation_date', 'occurrences',
        ]


class InstallmentSettingsSerializer(serializers.Serializer):
    billing_month = serializers.CharField()
    invoice_issue_date = serializers.DateField()
    invoice_due_date = serializers.DateField()
    invoice_generation_date = serializers.DateField()
    frequency_months = serializers.IntegerField(min_value=1)


class GenerateInvoiceSerializer(serializers.Serializer):
    issue_date = serializers.DateField(required=False, allow_null=True)
    due_date = serializers.DateField(required=False, allow_null=True)
    next_generation_date = serializers.DateField(required=False, allow_null=True)
    next_invoice_month = serializers.DateField(required=False, allow_null=True)


class ProcessDueSerializer(serializers.Serializer):
    today = serializers.DateField(required=False, allow_null=True)


class RecordPaymentSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    payment_method = serializers.ChoiceField(choices=Payment._meta.get_field('payment_method').choices, required=False)
    reference_number = serializers.CharField(required=False, allow_blank=True, default='')
    status = serializers.ChoiceField(choices=Payment._meta.get_field('status').choices, required=False)
    issue_date = serializers.DateField(required=False, allow_null=True)
