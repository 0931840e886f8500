"""
Shared package - central access to constants and small utilities.
Avoids importing models or services to prevent circular dependencies.
"""

# Constants
from .constants import (
    ReservationStatus,
    InvoiceStatus,
    PaymentStatus,
    PaymentMethods,
    InstallmentStatus,
    EnrollmentType,
    PackageType,
    PricingType,
    ClassStatus,
    RecordStatus,
    ReferralStatus,
    PromoStatus,
    PromoType,
    EligibilityType,
)

__all__ = [
    'ReservationStatus',
    'InvoiceStatus',
    'PaymentStatus',
    'PaymentMethods',
    'InstallmentStatus',
    'EnrollmentType',
    'PackageType',
    'PricingType',
    'ClassStatus',
    'RecordStatus',
    'ReferralStatus',
    'PromoStatus',
    'PromoType',
    'EligibilityType',
]
