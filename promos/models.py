# promos/models.py
import logging

from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

# SHARED IMPORTS
from shared.constants import EligibilityType, PromoStatus, PromoType

logger = logging.getLogger(__name__)


class Promo(models.Model):
    """
    Discount and/or free-merchandise incentive on one or more packages.
    Usable only while Active, inside [start_date, end_date] and below max_uses.
    """
    name = models.CharField(max_length=255)
    packages = models.ManyToManyField('core.Package', related_name='promos', blank=True)
    branch = models.ForeignKey(
        'core.Branch',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='promos'
    )
    promo_type = models.CharField(max_length=30, choices=PromoType.CHOICES)
    promo_code = models.CharField(max_length=50, unique=True, null=True, blank=True)
    discount_percentage = models.DecimalField(
        max_digits=5, decimal_places=2, null=True, blank=True, validators=[MinValueValidator(0)]
    )
    discount_amount = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True, validators=[MinValueValidator(0)]
    )
    min_payment_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    start_date = models.DateField()
    end_date = models.DateField()
    max_uses = models.PositiveIntegerField(null=True, blank=True)
    current_uses = models.PositiveIntegerField(default=0)
    eligibility_type = models.CharField(max_length=30, choices=EligibilityType.CHOICES, default=EligibilityType.ALL)
    status = models.CharField(max_length=20, choices=PromoStatus.CHOICES, default=PromoStatus.ACTIVE)
    description = models.TextField(blank=True, default='')
    created_by = models.CharField(max_length=255, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'promos_promo'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'start_date', 'end_date']),
            models.Index(fields=['promo_code']),
        ]

    def __str__(self):
        return f"{self.name} ({self.promo_code})" if self.promo_code else self.name

    def save(self, *args, **kwargs):
        if self.promo_code:
            self.promo_code = self.promo_code.strip().upper()
        else:
            self.promo_code = None
        super().save(*args, **kwargs)

    @property
    def uses_exhausted(self) -> bool:
        return self.max_uses is not None and self.current_uses >= self.max_uses


class PromoMerchandise(models.Model):
    """Merchandise handed out free when the promo applies."""
    promo = models.ForeignKey(Promo, on_delete=models.CASCADE, related_name='merchandise_items')
    merchandise = models.ForeignKey('core.Merchandise', on_delete=models.CASCADE, related_name='promo_items')
    quantity = models.PositiveIntegerField(default=1)

    class Meta:
        db_table = 'promos_promo_merchandise'
        unique_together = ['promo', 'merchandise']

    def __str__(self):
        return f"{self.quantity} x {self.merchandise} ({self.promo.name})"


class PromoUsage(models.Model):
    """One row per (promo, student); the single-use-per-student record."""
    promo = models.ForeignKey(Promo, on_delete=models.CASCADE, related_name='usages')
    student = models.ForeignKey('students.Student', on_delete=models.CASCADE, related_name='promo_usages')
    invoice = models.ForeignKey(
        'billing.Invoice',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='promo_usages'
    )
    discount_applied = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    used_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'promos_promo_usage'
        unique_together = ['promo', 'student']
        ordering = ['-used_at']

    def __str__(self):
        return f"{self.promo.name} used by {self.student} ({self.discount_applied})"
