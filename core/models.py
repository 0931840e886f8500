# core/models.py
"""
Academy reference data: branches, curricula, programs, classes,
pricing lists, merchandise and packages.
"""
import logging
from decimal import Decimal
from typing import Optional

from django.db import models

# SHARED IMPORTS
from shared.constants import ClassStatus, PackageType, PricingType, RecordStatus

logger = logging.getLogger(__name__)


# ============ BRANCH MODEL ============

class Branch(models.Model):
    """Physical academy branch; every billable record is scoped to one."""
    name = models.CharField(max_length=255)
    city = models.CharField(max_length=100, blank=True, default='')
    address = models.TextField(blank=True, default='')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'core_branch'
        ordering = ['name']
        indexes = [
            models.Index(fields=['is_active']),
        ]
        verbose_name = "Branch"
        verbose_name_plural = "Branches"

    def __str__(self):
        return self.name


# ============ CURRICULUM & PROGRAM ============

class Curriculum(models.Model):
    """Defines how many phases (terms) a program is divided into."""
    name = models.CharField(max_length=255)
    number_of_phase = models.PositiveIntegerField(null=True, blank=True)
    number_of_session_per_phase = models.PositiveIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'core_curriculum'
        ordering = ['name']
        verbose_name_plural = "Curricula"

    def __str__(self):
        return self.name


class Program(models.Model):
    branch = models.ForeignKey(Branch, on_delete=models.CASCADE, related_name='programs')
    curriculum = models.ForeignKey(
        Curriculum,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='programs'
    )
    name = models.CharField(max_length=255)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'core_program'
        ordering = ['name']

    def __str__(self):
        return self.name


# ============ CLASS MODEL ============

class Class(models.Model):
    """
    A scheduled run of a program at a branch.

    `level_tag` groups classes that can stand in for one another when a class
    is full; `max_students` of None means unlimited seats.
    """
    branch = models.ForeignKey(Branch, on_delete=models.CASCADE, related_name='classes')
    program = models.ForeignKey(Program, on_delete=models.CASCADE, related_name='classes')
    name = models.CharField(max_length=100)
    level_tag = models.CharField(max_length=50, blank=True, default='')
    max_students = models.PositiveIntegerField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=ClassStatus.CHOICES, default=ClassStatus.ACTIVE)
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'core_class'
        ordering = ['name']
        indexes = [
            models.Index(fields=['branch', 'status']),
            models.Index(fields=['level_tag', 'status']),
        ]
        verbose_name = "Class"
        verbose_name_plural = "Classes"

    def __str__(self):
        return f"{self.name} - {self.branch.name}"

    @property
    def is_active(self) -> bool:
        return self.status == ClassStatus.ACTIVE

    @property
    def number_of_phases(self) -> Optional[int]:
        """Phase count from the program's curriculum, if configured."""
        curriculum = self.program.curriculum if self.program_id else None
        return curriculum.number_of_phase if curriculum else None


# ============ PRICING & MERCHANDISE ============

class PricingList(models.Model):
    """Priced fee item (tuition, materials, enrollment fee) for a level."""
    branch = models.ForeignKey(
        Branch,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='pricing_lists'
    )
    name = models.CharField(max_length=255)
    level_tag = models.CharField(max_length=50, blank=True, default='')
    price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    pricing_type = models.CharField(max_length=20, choices=PricingType.CHOICES, default=PricingType.STANDARD)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'core_pricing_list'
        ordering = ['name']
        indexes = [
            models.Index(fields=['branch', 'level_tag']),
        ]

    def __str__(self):
        return f"{self.name} ({self.price})"


class Merchandise(models.Model):
    """
    Physical item (uniform, kit). `quantity` of None means stock is not
    tracked and deductions always succeed.
    """
    branch = models.ForeignKey(
        Branch,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='merchandise'
    )
    name = models.CharField(max_length=255)
    size = models.CharField(max_length=20, blank=True, default='')
    price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    quantity = models.IntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'core_merchandise'
        ordering = ['name', 'size']
        indexes = [
            models.Index(fields=['branch', 'name']),
        ]
        verbose_name_plural = "Merchandise"

    def __str__(self):
        return f"{self.name} ({self.size})" if self.size else self.name


# ============ PACKAGES ============

class Package(models.Model):
    """Sellable bundle of tuition, pricing lists and merchandise."""
    branch = models.ForeignKey(Branch, on_delete=models.CASCADE, related_name='packages')
    name = models.CharField(max_length=255)
    level_tag = models.CharField(max_length=50, blank=True, default='')
    package_type = models.CharField(max_length=20, choices=PackageType.CHOICES, default=PackageType.FULLPAYMENT)
    price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    downpayment_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    phase_start = models.PositiveIntegerField(null=True, blank=True)
    phase_end = models.PositiveIntegerField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=RecordStatus.CHOICES, default=RecordStatus.ACTIVE)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'core_package'
        ordering = ['name']
        indexes = [
            models.Index(fields=['branch', 'status']),
        ]

    def __str__(self):
        return self.name

    @property
    def is_installment(self) -> bool:
        return self.package_type == PackageType.INSTALLMENT

    @property
    def is_fullpayment(self) -> bool:
        """Full payment by type, or by bundling a full-payment pricing list."""
        if self.package_type == PackageType.FULLPAYMENT:
            return True
        return self.details.filter(
            is_included=True,
            pricing_list__pricing_type=PricingType.FULLPAYMENT,
        ).exists()

    def included_merchandise(self):
        return Merchandise.objects.filter(
            package_details__package=self,
            package_details__is_included=True,
        ).distinct()

    def included_pricing_lists(self):
        return PricingList.objects.filter(
            package_details__package=self,
            package_details__is_included=True,
        ).distinct()


class PackageDetail(models.Model):
    package = models.ForeignKey(Package, on_delete=models.CASCADE, related_name='details')
    pricing_list = models.ForeignKey(
        PricingList,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='package_details'
    )
    merchandise = models.ForeignKey(
        Merchandise,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='package_details'
    )
    is_included = models.BooleanField(default=True)

    class Meta:
        db_table = 'core_package_detail'

    def __str__(self):
        item = self.pricing_list or self.merchandise
        return f"{self.package.name}: {item}"
