# students/models.py
"""
Students, their class enrollments and referral records.
Enrollments are written by the payment-completion flow, not by reservations.
"""
import logging

from django.db import models
from django.utils import timezone

# SHARED IMPORTS
from shared.constants import ReferralStatus

logger = logging.getLogger(__name__)


class Student(models.Model):
    branch = models.ForeignKey(
        'core.Branch',
        on_delete=models.CASCADE,
        related_name='students'
    )
    full_name = models.CharField(max_length=255)
    email = models.EmailField(blank=True, default='')
    phone_number = models.CharField(max_length=20, blank=True, default='')
    level_tag = models.CharField(max_length=50, blank=True, default='')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'students_student'
        ordering = ['full_name']
        indexes = [
            models.Index(fields=['branch', 'is_active']),
            models.Index(fields=['email']),
        ]

    def __str__(self):
        return self.full_name

    @property
    def has_enrollments(self) -> bool:
        """True once the student has been enrolled in any class phase."""
        return self.enrollments.exists()

    @property
    def has_verified_referral(self) -> bool:
        return self.referrals_received.filter(status=ReferralStatus.VERIFIED).exists()


class Enrollment(models.Model):
    """
    A student seated in a class, per phase. `phase_number` of None is a
    whole-class enrollment.
    """
    student = models.ForeignKey(
        Student,
        on_delete=models.CASCADE,
        related_name='enrollments'
    )
    academic_class = models.ForeignKey(
        'core.Class',
        on_delete=models.CASCADE,
        related_name='enrollments'
    )
    phase_number = models.PositiveIntegerField(null=True, blank=True)
    enrolled_at = models.DateTimeField(default=timezone.now)
    enrolled_by = models.CharField(max_length=255, blank=True, default='')

    class Meta:
        db_table = 'students_enrollment'
        verbose_name = 'Enrollment'
        verbose_name_plural = 'Enrollments'
        unique_together = ['student', 'academic_class', 'phase_number']
        indexes = [
            models.Index(fields=['academic_class', 'student']),
        ]

    def __str__(self):
        phase = f" (phase {self.phase_number})" if self.phase_number else ""
        return f"{self.student} - {self.academic_class.name}{phase}"


class Referral(models.Model):
    """Referral of a new student; backs referral-only promo eligibility."""
    referred_student = models.ForeignKey(
        Student,
        on_delete=models.CASCADE,
        related_name='referrals_received'
    )
    referrer = models.ForeignKey(
        Student,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='referrals_made'
    )
    referrer_name = models.CharField(max_length=255, blank=True, default='')
    status = models.CharField(max_length=20, choices=ReferralStatus.CHOICES, default=ReferralStatus.PENDING)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'students_referral'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['referred_student', 'status']),
        ]

    def __str__(self):
        referrer = self.referrer or self.referrer_name or 'unknown'
        return f"{self.referred_student} referred by {referrer} ({self.status})"
