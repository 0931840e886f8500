# billing/tests/test_installments.py
from datetime import date
from decimal import Decimal

from django.test import SimpleTestCase, TestCase, override_settings

from shared.constants import InstallmentStatus, InvoiceStatus, PackageType, PricingType
from shared.utils.dates import add_months, next_invoice_month

from billing.installment_services import InstallmentScheduler, InstallmentSettings
from billing.models import InstallmentInvoice, InstallmentProfile, Invoice, InvoiceEnrollmentLink
from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.tests.factories import (
    include_in_package, make_branch, make_class, make_invoice, make_package, make_pricing_list, make_student, pay,
)

SETTINGS = {
    'billing_month': '2026-02',
    'invoice_issue_date': '2026-01-25',
    'invoice_due_date': '2026-01-31',
    'invoice_generation_date': '2026-02-25',
    'frequency_months': 1,
}


class MonthArithmeticTest(SimpleTestCase):
    def test_clamps_to_end_of_short_month(self):
        self.assertEqual(add_months(date(2026, 1, 31), 1), date(2026, 2, 28))
        self.assertEqual(add_months(date(2028, 1, 31), 1), date(2028, 2, 29))

    def test_crosses_year(self):
        self.assertEqual(add_months(date(2026, 11, 15), 3), date(2027, 2, 15))
        self.assertEqual(next_invoice_month(date(2026, 12, 20), 1), date(2027, 1, 1))


class InstallmentSettingsTest(TestCase):
    def test_none_when_absent(self):
        self.assertIsNone(InstallmentSettings.from_data(None))

    def test_missing_keys(self):
        with self.assertRaises(ValidationError) as ctx:
            InstallmentSettings.from_data({'billing_month': '2026-02'})
        self.assertIn('invoice_due_date', ctx.exception.details['missing'])

    def test_parses_dates(self):
        parsed = InstallmentSettings.from_data(SETTINGS)
        self.assertEqual(parsed.billing_month, date(2026, 2, 1))
        self.assertEqual(parsed.invoice_due_date, date(2026, 1, 31))
        self.assertEqual(parsed.frequency_months, 1)

    def test_rejects_zero_frequency(self):
        with self.assertRaises(ValidationError):
            InstallmentSettings.from_data(dict(SETTINGS, frequency_months=0))


class InstallmentSchedulerTest(TestCase):
    def setUp(self):
        self.branch = make_branch()
        self.academic_class = make_class(self.branch, phases=3)
        self.student = make_student(self.branch)
        self.package = make_package(
            self.branch, name='Installment Plan', price='3000.00', package_type=PackageType.INSTALLMENT,
            downpayment_amount=Decimal('1000.00'),
        )
        include_in_package(
            self.package,
            pricing_list=make_pricing_list(self.branch, name='Monthly', price='1000.00',
                                           pricing_type=PricingType.INSTALLMENT),
        )
        self.downpayment = make_invoice(self.branch, self.student, amount='1000.00')

    def _profile(self):
        return InstallmentScheduler.create_profile(
            self.downpayment, self.package, self.academic_class, self.student, SETTINGS, created_by='staff',
        )

    def _phase_invoice(self, profile, status=InvoiceStatus.UNPAID):
        return make_invoice(self.branch, self.student, amount='1000.00', status=status, installment_profile=profile)

    def test_create_profile(self):
        profile = self._profile()

        self.assertEqual(profile.amount, Decimal('1000.00'))
        self.assertEqual(profile.total_phases, 3)
        self.assertEqual(profile.generated_count, 0)
        self.assertEqual(profile.downpayment_invoice, self.downpayment)
        self.assertEqual(profile.first_billing_month, date(2026, 2, 1))
        self.downpayment.refresh_from_db()
        self.assertEqual(self.downpayment.installment_profile, profile)

        occurrence = profile.occurrences.get()
        self.assertEqual(occurrence.status, InstallmentStatus.PENDING)
        self.assertEqual(occurrence.next_generation_date, date(2026, 2, 25))
        self.assertEqual(occurrence.next_invoice_month, date(2026, 3, 1))

    def test_profile_amount_falls_back_to_package_price(self):
        package = make_package(self.branch, name='Plain', price='750.00', package_type=PackageType.INSTALLMENT)
        self.assertEqual(InstallmentScheduler.profile_amount(package), Decimal('750.00'))

    @override_settings(INSTALLMENT_INVOICE_DUE_DAYS=7)
    def test_generate_invoice(self):
        profile = self._profile()
        occurrence = profile.occurrences.get()

        result = InstallmentScheduler.generate_invoice(occurrence.pk, today=date(2026, 2, 25))

        self.assertIsNotNone(result.invoice)
        self.assertEqual(result.generated_count, 1)
        self.assertTrue(result.is_active)
        invoice = result.invoice
        self.assertEqual(invoice.status, InvoiceStatus.UNPAID)
        self.assertEqual(invoice.amount, Decimal('1000.00'))
        self.assertEqual(invoice.issue_date, date(2026, 2, 25))
        self.assertEqual(invoice.due_date, date(2026, 3, 4))
        self.assertEqual(invoice.installment_profile, profile)
        self.assertEqual(
            InvoiceEnrollmentLink.objects.get(invoice=invoice).academic_class, self.academic_class
        )

        occurrence.refresh_from_db()
        self.assertEqual(occurrence.status, InstallmentStatus.PENDING)
        self.assertEqual(occurrence.next_generation_date, date(2026, 3, 25))
        self.assertEqual(occurrence.next_invoice_month, date(2026, 4, 1))

    def test_tax_derived_from_amounts(self):
        profile = self._profile()
        InstallmentInvoice.objects.filter(profile=profile).update(
            total_amount_excluding_tax=Decimal('1000.00'), total_amount_including_tax=Decimal('1120.00'),
        )
        result = InstallmentScheduler.generate_invoice(profile.occurrences.get().pk, today=date(2026, 2, 25))
        item = result.invoice.items.get()
        self.assertEqual(item.tax_percentage, Decimal('12.00'))
        self.assertEqual(result.invoice.amount, Decimal('1120.00'))

    def test_generation_gated_by_paid_phases_not_generated_count(self):
        profile = self._profile()
        pay(self.downpayment)
        self._phase_invoice(profile, status=InvoiceStatus.PAID)
        self._phase_invoice(profile)
        InstallmentProfile.objects.filter(pk=profile.pk).update(generated_count=2)

        result = InstallmentScheduler.generate_invoice(profile.occurrences.get().pk, today=date(2026, 4, 25))

        self.assertIsNotNone(result.invoice)
        self.assertEqual(result.generated_count, 3)
        self.assertEqual(result.paid_phases, 1)
        self.assertFalse(result.phase_limit_reached)
        profile.refresh_from_db()
        self.assertTrue(profile.is_active)
        self.assertEqual(profile.generated_count, 3)

    def test_all_phases_paid_deactivates(self):
        profile = self._profile()
        for _ in range(3):
            self._phase_invoice(profile, status=InvoiceStatus.PAID)
        occurrence = profile.occurrences.get()

        result = InstallmentScheduler.generate_invoice(occurrence.pk, today=date(2026, 5, 25))

        self.assertIsNone(result.invoice)
        self.assertTrue(result.phase_limit_reached)
        profile.refresh_from_db()
        self.assertFalse(profile.is_active)
        occurrence.refresh_from_db()
        self.assertEqual(occurrence.status, InstallmentStatus.GENERATED)
        self.assertIsNone(occurrence.next_generation_date)

    def test_generated_count_never_exceeds_total(self):
        profile = self._profile()
        InstallmentProfile.objects.filter(pk=profile.pk).update(generated_count=3)
        invoices_before = Invoice.objects.count()

        result = InstallmentScheduler.generate_invoice(profile.occurrences.get().pk, today=date(2026, 5, 25))

        self.assertIsNone(result.invoice)
        self.assertTrue(result.is_active)
        self.assertEqual(Invoice.objects.count(), invoices_before)
        profile.refresh_from_db()
        self.assertEqual(profile.generated_count, 3)

    def test_generate_rejects_closed_or_missing(self):
        profile = self._profile()
        occurrence = profile.occurrences.get()
        InstallmentInvoice.objects.filter(pk=occurrence.pk).update(status=InstallmentStatus.GENERATED)
        with self.assertRaises(ConflictError):
            InstallmentScheduler.generate_invoice(occurrence.pk)
        with self.assertRaises(NotFoundError):
            InstallmentScheduler.generate_invoice(999999)

    def test_process_due_waits_for_downpayment(self):
        self._profile()
        summary = InstallmentScheduler.process_due_invoices(today=date(2026, 2, 25))
        self.assertEqual(summary['total_due'], 0)

        pay(self.downpayment)
        summary = InstallmentScheduler.process_due_invoices(today=date(2026, 2, 25))
        self.assertEqual(summary['total_due'], 1)
        self.assertEqual(summary['processed'], 1)
        self.assertEqual(summary['errors'], 0)
        self.assertIsNotNone(summary['details']['processed'][0]['invoice_id'])

    def test_process_due_skips_future_occurrences(self):
        self._profile()
        pay(self.downpayment)
        summary = InstallmentScheduler.process_due_invoices(today=date(2026, 2, 24))
        self.assertEqual(summary['total_due'], 0)

    def test_payment_marks_downpayment_and_final_phase(self):
        profile = self._profile()
        pay(self.downpayment)
        profile.refresh_from_db()
        self.assertTrue(profile.downpayment_paid)
        self.assertTrue(profile.is_active)

        invoices = [self._phase_invoice(profile) for _ in range(3)]
        for invoice in invoices:
            pay(invoice)
        profile.refresh_from_db()
        self.assertFalse(profile.is_active)
