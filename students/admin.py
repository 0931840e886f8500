# students/admin.py
from django.contrib import admin

from .models import Student, Enrollment, Referral


@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    list_display = ['full_name', 'email', 'branch', 'level_tag', 'is_active', 'created_at']
    list_filter = ['branch', 'is_active', 'level_tag']
    search_fields = ['full_name', 'email', 'phone_number']


@admin.register(Enrollment)
class EnrollmentAdmin(admin.ModelAdmin):
    list_display = ['student', 'academic_class', 'phase_number', 'enrolled_at', 'enrolled_by']
    list_filter = ['academic_class__branch']
    search_fields = ['student__full_name', 'academic_class__name']
    raw_id_fields = ['student', 'academic_class']


@admin.register(Referral)
class ReferralAdmin(admin.ModelAdmin):
    list_display = ['referred_student', 'referrer', 'referrer_name', 'status', 'created_at']
    list_filter = ['status']
    search_fields = ['referred_student__full_name', 'referrer_name']
    raw_id_fields = ['referred_student', 'referrer']
