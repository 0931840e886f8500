# promos/admin.py
from django.contrib import admin

from .models import Promo, PromoMerchandise, PromoUsage


class PromoMerchandiseInline(admin.TabularInline):
    model = PromoMerchandise
    extra = 0
    raw_id_fields = ['merchandise']


@admin.register(Promo)
class PromoAdmin(admin.ModelAdmin):
    list_display = [
        'name', 'promo_code', 'promo_type', 'branch', 'start_date', 'end_date',
        'current_uses', 'max_uses', 'eligibility_type', 'status'
    ]
    list_filter = ['status', 'promo_type', 'eligibility_type', 'branch']
    search_fields = ['name', 'promo_code', 'description']
    filter_horizontal = ['packages']
    readonly_fields = ['current_uses', 'created_at', 'updated_at']
    inlines = [PromoMerchandiseInline]

    fieldsets = (
        ('Basic Information', {
            'fields': ('name', 'branch', 'promo_code', 'description', 'packages')
        }),
        ('Discount', {
            'fields': ('promo_type', 'discount_percentage', 'discount_amount', 'min_payment_amount')
        }),
        ('Validity', {
            'fields': ('status', 'start_date', 'end_date', 'max_uses', 'current_uses', 'eligibility_type')
        }),
        ('Metadata', {
            'fields': ('created_by', 'created_at', 'updated_at')
        }),
    )


@admin.register(PromoUsage)
class PromoUsageAdmin(admin.ModelAdmin):
    list_display = ['promo', 'student', 'invoice', 'discount_applied', 'used_at']
    list_filter = ['promo']
    search_fields = ['promo__name', 'student__full_name']
    raw_id_fields = ['promo', 'student', 'invoice']

    def has_change_permission(self, request, obj=None):
        return False
