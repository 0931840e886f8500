# reservations/admin.py
from django.contrib import admin

from .models import Reservation


@admin.register(Reservation)
class ReservationAdmin(admin.ModelAdmin):
    list_display = [
        'id', 'student', 'academic_class', 'phase_number', 'package',
        'reservation_fee', 'status', 'due_date', 'reserved_at'
    ]
    list_filter = ['status', 'branch', 'due_date']
    search_fields = ['student__full_name', 'academic_class__name', 'notes']
    raw_id_fields = [
        'student', 'academic_class', 'branch', 'package', 'invoice', 'enrollment_invoice', 'installment_profile'
    ]
    readonly_fields = [
        'reserved_at', 'reservation_fee_paid_at', 'upgraded_at', 'expired_at', 'cancelled_at', 'updated_at'
    ]
    date_hierarchy = 'reserved_at'

    fieldsets = (
        ('Reservation', {
            'fields': ('student', 'academic_class', 'branch', 'phase_number', 'package', 'notes')
        }),
        ('Fee & Status', {
            'fields': ('reservation_fee', 'status', 'due_date', 'invoice')
        }),
        ('Upgrade', {
            'fields': ('enrollment_invoice', 'installment_profile', 'upgraded_by', 'upgraded_at')
        }),
        ('Timestamps', {
            'fields': (
                'reserved_by', 'reserved_at', 'reservation_fee_paid_at', 'expired_at', 'cancelled_at', 'updated_at'
            )
        }),
    )

    def has_delete_permission(self, request, obj=None):
        return False

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('student', 'academic_class', 'package')
