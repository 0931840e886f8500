from django.urls import path
from . import views

app_name = 'billing'

urlpatterns = [
    # Invoices
    path('invoices/', views.invoice_list_view, name='invoice_list'),
    path('invoices/<int:invoice_id>/', views.invoice_detail_view, name='invoice_detail'),
    path('invoices/<int:invoice_id>/payments/', views.record_payment_view, name='record_payment'),

    # Installments
    path('installment-profiles/', views.installment_profile_list_view, name='installment_profile_list'),
    path('installments/process-due/', views.process_due_installments_view, name='process_due_installments'),
    path('installments/process-delinquency/', views.process_delinquency_view, name='process_delinquency'),
    path(
        'installments/<int:occurrence_id>/generate/',
        views.generate_installment_invoice_view,
        name='generate_installment_invoice',
    ),
]
