# billing/views.py
"""
Billing API: invoice reads, payment recording and installment generation.
"""
import logging

from django.conf import settings
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view

# SHARED IMPORTS
from shared.constants import PaymentMethods, PaymentStatus
from shared.utils.responses import paginate, success_response

from core.exceptions import ValidationError

# LOCAL IMPORTS
from .installment_services import DelinquencyService, InstallmentScheduler
from .models import InstallmentProfile, Invoice
from .serializers import (
    GenerateInvoiceSerializer, InstallmentProfileSerializer, InvoiceDetailSerializer, InvoiceSerializer,
    PaymentSerializer, ProcessDueSerializer, RecordPaymentSerializer,
)
from .services import PaymentLedger, derive_invoice_status

logger = logging.getLogger(__name__)


def _validated(serializer_class, data):
    serializer = serializer_class(data=data)
    if not serializer.is_valid():
        raise ValidationError("Invalid request data", details={'errors': serializer.errors})
    return serializer.validated_data


def _sweep_expired_reservations():
    """Opportunistic reservation sweep before list reads; never fails the read."""
    if not getattr(settings, 'RESERVATION_SWEEP_ON_READ', True):
        return
    try:
        from reservations.services import ExpirationSweeper
        ExpirationSweeper.run()
    except Exception as e:
        logger.error(f"Reservation sweep before invoice read failed: {str(e)}", exc_info=True)


# ============ INVOICE VIEWS ============

@api_view(['GET'])
def invoice_list_view(request):
    """List invoices; ?status filters on the computed status."""
    _sweep_expired_reservations()

    invoices = Invoice.objects.select_related('student', 'branch').order_by('-created_at')

    student_id = request.query_params.get('student_id')
    branch_id = request.query_params.get('branch_id')
    status_filter = request.query_params.get('status')

    if student_id:
        invoices = invoices.filter(student_id=student_id)
    if branch_id:
        invoices = invoices.filter(branch_id=branch_id)
    if status_filter:
        matching = [
            invoice.pk for invoice in invoices.only('pk', 'status', 'due_date')
            if derive_invoice_status(invoice.status, invoice.due_date) == status_filter
        ]
        invoices = invoices.filter(pk__in=matching)

    page_obj, meta = paginate(request, invoices)
    return success_response(InvoiceSerializer(page_obj.object_list, many=True).data, pagination=meta)


@api_view(['GET'])
def invoice_detail_view(request, invoice_id):
    invoice = get_object_or_404(
        Invoice.objects.select_related('student', 'branch').prefetch_related('items', 'payments'),
        pk=invoice_id,
    )
    return success_response(InvoiceDetailSerializer(invoice).data)


@api_view(['POST'])
def record_payment_view(request, invoice_id):
    """Record a captured payment; the invoice status follows from completed payments."""
    data = _validated(RecordPaymentSerializer, request.data)
    payment = PaymentLedger.record_payment(
        invoice_id,
        data['amount'],
        payment_method=data.get('payment_method') or PaymentMethods.CASH,
        reference_number=data.get('reference_number', ''),
        status=data.get('status') or PaymentStatus.COMPLETED,
        issue_date=data.get('issue_date'),
    )
    invoice = Invoice.objects.get(pk=invoice_id)
    return success_response(
        {
            'payment': PaymentSerializer(payment).data,
            'invoice_status': invoice.status,
            'balance': str(PaymentLedger.balance(invoice)),
        },
        message="Payment recorded",
        status=status.HTTP_201_CREATED,
    )


# ============ INSTALLMENT VIEWS ============

@api_view(['GET'])
def installment_profile_list_view(request):
    profiles = InstallmentProfile.objects.select_related('student').prefetch_related('occurrences')

    student_id = request.query_params.get('student_id')
    is_active = request.query_params.get('is_active')
    if student_id:
        profiles = profiles.filter(student_id=student_id)
    if is_active in ('true', 'false'):
        profiles = profiles.filter(is_active=is_active == 'true')

    page_obj, meta = paginate(request, profiles)
    return success_response(InstallmentProfileSerializer(page_obj.object_list, many=True).data, pagination=meta)


@api_view(['POST'])
def process_due_installments_view(request):
    data = _validated(ProcessDueSerializer, request.data)
    summary = InstallmentScheduler.process_due_invoices(today=data.get('today'))
    return success_response(
        summary,
        message=f"Processed {summary['processed']} of {summary['total_due']} due installment invoices",
    )


@api_view(['POST'])
def process_delinquency_view(request):
    data = _validated(ProcessDueSerializer, request.data)
    result = DelinquencyService.process(today=data.get('today'))
    return success_response(
        result.as_dict(),
        message=f"Checked {result.scanned} overdue installment invoices",
    )


@api_view(['POST'])
def generate_installment_invoice_view(request, occurrence_id):
    data = _validated(GenerateInvoiceSerializer, request.data)
    result = InstallmentScheduler.generate_invoice(
        occurrence_id,
        issue_date=data.get('issue_date'),
        due_date=data.get('due_date'),
        next_generation_date=data.get('next_generation_date'),
        next_invoice_month_value=data.get('next_invoice_month'),
    )
    if result.invoice is None:
        message = "Phase limit reached; profile deactivated" if result.phase_limit_reached \
            else "All invoices already generated"
    else:
        message = f"Invoice {result.invoice.pk} generated"
    return success_response(result.as_dict(), message=message)
