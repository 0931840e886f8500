# billing/admin.py
from django.conf import settings
from django.contrib import admin
from django.urls import reverse
from django.utils.html import format_html

from shared.constants import InvoiceStatus

from .models import InstallmentInvoice, InstallmentProfile, Invoice, InvoiceEnrollmentLink, InvoiceItem, Payment

STATUS_COLORS = {
    InvoiceStatus.DRAFT: 'gray',
    InvoiceStatus.PENDING: 'blue',
    InvoiceStatus.UNPAID: 'orange',
    InvoiceStatus.PARTIALLY_PAID: 'goldenrod',
    InvoiceStatus.PAID: 'green',
    InvoiceStatus.CANCELLED: 'red',
}


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0
    fields = ['description', 'amount', 'discount_amount', 'penalty_amount', 'tax_percentage']


class InvoiceEnrollmentLinkInline(admin.StackedInline):
    model = InvoiceEnrollmentLink
    extra = 0
    raw_id_fields = ['academic_class']


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    fields = ['amount', 'status', 'payment_method', 'reference_number', 'issue_date']


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = [
        'id', 'description', 'student_link', 'branch', 'amount_formatted',
        'status_badge', 'computed_status', 'issue_date', 'due_date'
    ]
    list_filter = ['status', 'branch', 'issue_date']
    search_fields = ['description', 'remarks', 'student__full_name']
    readonly_fields = ['created_at', 'updated_at']
    date_hierarchy = 'issue_date'
    raw_id_fields = ['branch', 'student', 'installment_profile', 'package', 'promo']
    inlines = [InvoiceItemInline, InvoiceEnrollmentLinkInline, PaymentInline]

    fieldsets = (
        ('Basic Information', {
            'fields': ('description', 'branch', 'student', 'package', 'promo', 'installment_profile')
        }),
        ('Amount & Status', {
            'fields': ('amount', 'status', 'issue_date', 'due_date', 'late_penalty_applied_for_due_date')
        }),
        ('Metadata', {
            'fields': ('remarks', 'created_by', 'created_at', 'updated_at')
        }),
    )

    def amount_formatted(self, obj):
        return f"{settings.ACADEMY_CURRENCY} {obj.amount:,.2f}"
    amount_formatted.short_description = 'Amount'

    def status_badge(self, obj):
        color = STATUS_COLORS.get(obj.status, 'gray')
        return format_html(
            '<span style="background: {}; color: white; padding: 2px 8px; border-radius: 10px;">{}</span>',
            color, obj.get_status_display()
        )
    status_badge.short_description = 'Status'

    def student_link(self, obj):
        if obj.student:
            url = reverse('admin:students_student_change', args=[obj.student.id])
            return format_html('<a href="{}">{}</a>', url, obj.student.full_name)
        return '-'
    student_link.short_description = 'Student'

    def has_delete_permission(self, request, obj=None):
        if obj and obj.status == InvoiceStatus.PAID:
            return False
        return super().has_delete_permission(request, obj)

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('branch', 'student')


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['id', 'invoice_link', 'amount', 'status', 'payment_method', 'reference_number', 'issue_date']
    list_filter = ['status', 'payment_method', 'issue_date']
    search_fields = ['reference_number', 'invoice__description']
    raw_id_fields = ['invoice', 'student']

    def invoice_link(self, obj):
        url = reverse('admin:billing_invoice_change', args=[obj.invoice_id])
        return format_html('<a href="{}">Invoice {}</a>', url, obj.invoice_id)
    invoice_link.short_description = 'Invoice'


class InstallmentInvoiceInline(admin.TabularInline):
    model = InstallmentInvoice
    extra = 0
    fields = ['status', 'scheduled_date', 'next_generation_date', 'next_invoice_month', 'total_amount_including_tax']


@admin.register(InstallmentProfile)
class InstallmentProfileAdmin(admin.ModelAdmin):
    list_display = [
        'id', 'student', 'academic_class', 'amount', 'frequency_months',
        'generated_count', 'total_phases', 'downpayment_paid', 'is_active'
    ]
    list_filter = ['is_active', 'downpayment_paid', 'branch']
    search_fields = ['student__full_name', 'description']
    raw_id_fields = ['student', 'branch', 'package', 'academic_class', 'downpayment_invoice']
    readonly_fields = ['generated_count', 'created_at', 'updated_at']
    inlines = [InstallmentInvoiceInline]

    fieldsets = (
        ('Plan', {
            'fields': ('student', 'branch', 'package', 'academic_class', 'amount', 'frequency_months', 'description')
        }),
        ('Progress', {
            'fields': ('is_active', 'total_phases', 'generated_count', 'downpayment_invoice', 'downpayment_paid')
        }),
        ('Schedule', {
            'fields': (
                'day_of_month', 'bill_invoice_due_date', 'next_invoice_due_date',
                'first_billing_month', 'first_generation_date'
            )
        }),
        ('Metadata', {
            'fields': ('created_by', 'created_at', 'updated_at')
        }),
    )
