# shared/constants/choices.py

"""
Status and type values shared by every academy app.
NO DEPENDENCIES - safe to import from models, services and serializers.
"""


class ReservationStatus:
    RESERVED = 'Reserved'
    FEE_PAID = 'Fee Paid'
    UPGRADED = 'Upgraded'
    CANCELLED = 'Cancelled'
    EXPIRED = 'Expired'

    # Terminal for the uniqueness invariant; Upgraded still holds the seat
    TERMINAL = (CANCELLED, EXPIRED)
    UPGRADABLE = (RESERVED, FEE_PAID, EXPIRED)

    CHOICES = (
        (RESERVED, 'Reserved'),
        (FEE_PAID, 'Fee Paid'),
        (UPGRADED, 'Upgraded'),
        (CANCELLED, 'Cancelled'),
        (EXPIRED, 'Expired'),
    )


class InvoiceStatus:
    DRAFT = 'Draft'
    PENDING = 'Pending'
    UNPAID = 'Unpaid'
    PARTIALLY_PAID = 'Partially Paid'
    PAID = 'Paid'
    CANCELLED = 'Cancelled'

    SETTLED = (PAID, CANCELLED)
    COLLECTED = (PAID, PARTIALLY_PAID)

    CHOICES = (
        (DRAFT, 'Draft'),
        (PENDING, 'Pending'),
        (UNPAID, 'Unpaid'),
        (PARTIALLY_PAID, 'Partially Paid'),
        (PAID, 'Paid'),
        (CANCELLED, 'Cancelled'),
    )


class PaymentStatus:
    PENDING = 'Pending'
    COMPLETED = 'Completed'
    FAILED = 'Failed'
    CANCELLED = 'Cancelled'

    CHOICES = (
        (PENDING, 'Pending'),
        (COMPLETED, 'Completed'),
        (FAILED, 'Failed'),
        (CANCELLED, 'Cancelled'),
    )


class PaymentMethods:
    CASH = 'Cash'
    BANK_TRANSFER = 'Bank Transfer'
    CARD = 'Card'
    E_WALLET = 'E-Wallet'

    CHOICES = (
        (CASH, 'Cash'),
        (BANK_TRANSFER, 'Bank Transfer'),
        (CARD, 'Card'),
        (E_WALLET, 'E-Wallet'),
    )


class InstallmentStatus:
    PENDING = 'Pending'
    GENERATED = 'Generated'

    CHOICES = (
        (PENDING, 'Pending'),
        (GENERATED, 'Generated'),
    )


class EnrollmentType:
    FULLPAYMENT = 'Fullpayment'
    INSTALLMENT = 'Installment'
    PER_PHASE = 'Per-Phase'

    CHOICES = (
        (FULLPAYMENT, 'Full payment'),
        (INSTALLMENT, 'Installment'),
        (PER_PHASE, 'Per-Phase'),
    )


class PackageType:
    FULLPAYMENT = 'Fullpayment'
    INSTALLMENT = 'Installment'
    PHASE = 'Phase'

    CHOICES = (
        (FULLPAYMENT, 'Full payment'),
        (INSTALLMENT, 'Installment'),
        (PHASE, 'Phase'),
    )


class PricingType:
    STANDARD = 'standard'
    FULLPAYMENT = 'fullpayment'
    INSTALLMENT = 'installment'

    CHOICES = (
        (STANDARD, 'Standard'),
        (FULLPAYMENT, 'New enrollee full payment'),
        (INSTALLMENT, 'New enrollee installment'),
    )


class ClassStatus:
    ACTIVE = 'Active'
    INACTIVE = 'Inactive'
    CLOSED = 'Closed'

    CHOICES = (
        (ACTIVE, 'Active'),
        (INACTIVE, 'Inactive'),
        (CLOSED, 'Closed'),
    )


class RecordStatus:
    ACTIVE = 'Active'
    INACTIVE = 'Inactive'

    CHOICES = (
        (ACTIVE, 'Active'),
        (INACTIVE, 'Inactive'),
    )


class ReferralStatus:
    PENDING = 'Pending'
    VERIFIED = 'Verified'
    REJECTED = 'Rejected'

    CHOICES = (
        (PENDING, 'Pending'),
        (VERIFIED, 'Verified'),
        (REJECTED, 'Rejected'),
    )


class PromoStatus:
    ACTIVE = 'Active'
    INACTIVE = 'Inactive'
    EXPIRED = 'Expired'

    CHOICES = (
        (ACTIVE, 'Active'),
        (INACTIVE, 'Inactive'),
        (EXPIRED, 'Expired'),
    )


class PromoType:
    PERCENTAGE_DISCOUNT = 'percentage_discount'
    FIXED_DISCOUNT = 'fixed_discount'
    FREE_MERCHANDISE = 'free_merchandise'
    COMBINED = 'combined'

    CHOICES = (
        (PERCENTAGE_DISCOUNT, 'Percentage discount'),
        (FIXED_DISCOUNT, 'Fixed discount'),
        (FREE_MERCHANDISE, 'Free merchandise'),
        (COMBINED, 'Combined'),
    )


class EligibilityType:
    ALL = 'all'
    NEW_STUDENTS_ONLY = 'new_students_only'
    EXISTING_STUDENTS_ONLY = 'existing_students_only'
    REFERRAL_ONLY = 'referral_only'

    CHOICES = (
        (ALL, 'All students'),
        (NEW_STUDENTS_ONLY, 'New students only'),
        (EXISTING_STUDENTS_ONLY, 'Existing students only'),
        (REFERRAL_ONLY, 'Referred students only'),
    )
