# core/admin.py
from django.contrib import admin

from .models import Branch, Curriculum, Program, Class, PricingList, Merchandise, Package, PackageDetail


@admin.register(Branch)
class BranchAdmin(admin.ModelAdmin):
    list_display = ['name', 'city', 'is_active', 'created_at']
    list_filter = ['is_active', 'city']
    search_fields = ['name', 'city']
    list_editable = ['is_active']


@admin.register(Curriculum)
class CurriculumAdmin(admin.ModelAdmin):
    list_display = ['name', 'number_of_phase', 'number_of_session_per_phase']
    search_fields = ['name']


@admin.register(Program)
class ProgramAdmin(admin.ModelAdmin):
    list_display = ['name', 'branch', 'curriculum']
    list_filter = ['branch']
    search_fields = ['name']
    raw_id_fields = ['branch', 'curriculum']


@admin.register(Class)
class ClassAdmin(admin.ModelAdmin):
    list_display = ['name', 'branch', 'program', 'level_tag', 'max_students', 'status', 'start_date']
    list_filter = ['status', 'branch', 'level_tag']
    search_fields = ['name', 'program__name', 'level_tag']
    raw_id_fields = ['branch', 'program']

    fieldsets = (
        ('Basic Information', {
            'fields': ('branch', 'program', 'name', 'level_tag')
        }),
        ('Capacity & Status', {
            'fields': ('max_students', 'status', 'start_date', 'end_date')
        }),
    )


@admin.register(PricingList)
class PricingListAdmin(admin.ModelAdmin):
    list_display = ['name', 'branch', 'level_tag', 'pricing_type', 'price']
    list_filter = ['pricing_type', 'branch']
    search_fields = ['name', 'level_tag']


@admin.register(Merchandise)
class MerchandiseAdmin(admin.ModelAdmin):
    list_display = ['name', 'size', 'branch', 'price', 'quantity']
    list_filter = ['branch']
    search_fields = ['name']
    list_editable = ['quantity']


class PackageDetailInline(admin.TabularInline):
    model = PackageDetail
    extra = 0
    raw_id_fields = ['pricing_list', 'merchandise']


@admin.register(Package)
class PackageAdmin(admin.ModelAdmin):
    list_display = ['name', 'branch', 'package_type', 'price', 'downpayment_amount', 'status']
    list_filter = ['package_type', 'status', 'branch']
    search_fields = ['name', 'level_tag']
    inlines = [PackageDetailInline]

    fieldsets = (
        ('Basic Information', {
            'fields': ('branch', 'name', 'level_tag', 'package_type', 'status')
        }),
        ('Amounts', {
            'fields': ('price', 'downpayment_amount')
        }),
        ('Phase Range', {
            'fields': ('phase_start', 'phase_end')
        }),
    )
