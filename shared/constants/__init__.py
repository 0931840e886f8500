from .choices import (
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
