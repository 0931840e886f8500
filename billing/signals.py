# billing/signals.py
import logging

from django.db import transaction
from django.db.models.signals import post_save, pre_save
from django.dispatch import receiver

from shared.constants import InvoiceStatus
from .models import Invoice, Payment

logger = logging.getLogger(__name__)


# ============================================================
# INVOICE STATUS CHANGE (pre_save sees the stored value)
# ============================================================

@receiver(pre_save, sender=Invoice)
def log_invoice_status_change(sender, instance, **kwargs):
    if not instance.pk:
        return

    previous = sender.objects.filter(pk=instance.pk).values_list('status', flat=True).first()
    if previous is None or previous == instance.status:
        return

    logger.info(f"Invoice {instance.pk} status changed: {previous} -> {instance.status}")


# ============================================================
# PAYMENT EVENTS
# ============================================================

@receiver(post_save, sender=Payment)
def handle_payment_saved(sender, instance, **kwargs):
    """
    Refresh the invoice's stored status from completed payments. Once Paid,
    the installment profile picks up a paid down payment or final phase and
    reservations holding this fee invoice move to Fee Paid.
    """
    from reservations.services import ReservationService
    from .installment_services import InstallmentScheduler
    from .services import PaymentLedger

    invoice = Invoice.objects.get(pk=instance.invoice_id)
    with transaction.atomic():
        status = PaymentLedger.refresh_invoice_status(invoice)
        if status == InvoiceStatus.PAID:
            InstallmentScheduler.refresh_profile_after_payment(invoice)
            ReservationService.mark_fee_paid_for_invoice(invoice)


@receiver(post_save, sender=Invoice)
def log_invoice_save(sender, instance, created, **kwargs):
    if created:
        logger.debug(f"Invoice created: {instance.pk} ({instance.status}, {instance.amount})")
