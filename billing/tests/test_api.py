# billing/tests/test_api.py
from datetime import date, timedelta
from decimal import Decimal

from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from shared.constants import InvoiceStatus, PackageType

from billing.installment_services import InstallmentScheduler
from core.tests.factories import (
    make_branch, make_class, make_invoice, make_package, make_student, make_user, pay,
)


class BillingApiTest(APITestCase):
    def setUp(self):
        self.user = make_user()
        self.client.force_authenticate(self.user)
        self.branch = make_branch()
        self.student = make_student(self.branch)

    def test_requires_authentication(self):
        self.client.force_authenticate(None)
        response = self.client.get(reverse('billing:invoice_list'))
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

    def test_invoice_list_filters_on_computed_status(self):
        overdue = make_invoice(
            self.branch, self.student, due_date=timezone.localdate() - timedelta(days=1),
        )
        make_invoice(self.branch, self.student, due_date=timezone.localdate() + timedelta(days=5))

        response = self.client.get(reverse('billing:invoice_list'), {'status': InvoiceStatus.UNPAID})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertEqual([row['id'] for row in response.data['data']], [overdue.pk])
        self.assertEqual(response.data['data'][0]['status'], InvoiceStatus.PENDING)
        self.assertEqual(response.data['data'][0]['computed_status'], InvoiceStatus.UNPAID)

    def test_invoice_detail(self):
        invoice = make_invoice(self.branch, self.student, amount='120.00')
        invoice.items.create(description='Tuition', amount=Decimal('120.00'))
        pay(invoice, '20.00')

        response = self.client.get(reverse('billing:invoice_detail', args=[invoice.pk]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data['data']
        self.assertEqual(data['totals']['total'], '120.00')
        self.assertEqual(Decimal(data['balance']), Decimal('100.00'))
        self.assertEqual(data['status'], InvoiceStatus.PARTIALLY_PAID)
        self.assertIsNone(data['enrollment_link'])

    def test_invoice_detail_not_found(self):
        response = self.client.get(reverse('billing:invoice_detail', args=[999999]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(response.data['success'])

    def test_record_payment(self):
        invoice = make_invoice(self.branch, self.student, amount='80.00')
        response = self.client.post(
            reverse('billing:record_payment', args=[invoice.pk]),
            {'amount': '80.00', 'reference_number': 'OR-55'},
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['invoice_status'], InvoiceStatus.PAID)

    def test_record_payment_rejects_bad_amount(self):
        invoice = make_invoice(self.branch, self.student)
        response = self.client.post(
            reverse('billing:record_payment', args=[invoice.pk]), {'amount': 'abc'}, format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error_code'], 'VALIDATION_ERROR')


class InstallmentApiTest(APITestCase):
    def setUp(self):
        self.client.force_authenticate(make_user())
        self.branch = make_branch()
        self.student = make_student(self.branch)
        self.academic_class = make_class(self.branch, phases=2)
        package = make_package(self.branch, price='900.00', package_type=PackageType.INSTALLMENT)
        self.downpayment = make_invoice(self.branch, self.student, amount='300.00')
        self.profile = InstallmentScheduler.create_profile(
            self.downpayment, package, self.academic_class, self.student,
            {
                'billing_month': '2026-02',
                'invoice_issue_date': '2026-01-25',
                'invoice_due_date': '2026-01-31',
                'invoice_generation_date': '2026-02-25',
                'frequency_months': 1,
            },
        )

    def test_profile_list(self):
        response = self.client.get(reverse('billing:installment_profile_list'), {'is_active': 'true'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data'][0]['id'], self.profile.pk)
        self.assertEqual(len(response.data['data'][0]['occurrences']), 1)

    def test_generate(self):
        occurrence = self.profile.occurrences.get()
        response = self.client.post(
            reverse('billing:generate_installment_invoice', args=[occurrence.pk]),
            {'issue_date': '2026-02-25'},
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['generated_count'], 1)
        self.assertIsNotNone(response.data['data']['invoice_id'])

    def test_process_due(self):
        pay(self.downpayment)
        response = self.client.post(
            reverse('billing:process_due_installments'), {'today': '2026-03-01'}, format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['processed'], 1)

    def test_process_delinquency(self):
        overdue = make_invoice(
            self.branch, self.student, amount='1000.00', status=InvoiceStatus.UNPAID,
            installment_profile=self.profile, due_date=date(2026, 3, 5),
        )
        response = self.client.post(
            reverse('billing:process_delinquency'), {'today': '2026-03-10'}, format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['penalties_applied'], 1)
        self.assertEqual(response.data['data']['details']['penalized'][0]['invoice_id'], overdue.pk)
        overdue.refresh_from_db()
        self.assertEqual(overdue.amount, Decimal('1100.00'))
