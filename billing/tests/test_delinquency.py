# billing/tests/test_delinquency.py
from datetime import date
from decimal import Decimal
from io import StringIO

from django.core.management import CommandError, call_command
from django.test import TestCase, override_settings

from shared.constants import InvoiceStatus, PackageType

from billing.installment_services import DelinquencyService, InstallmentScheduler
from billing.models import Invoice, InvoiceItem
from core.tests.factories import enroll, make_branch, make_class, make_invoice, make_package, make_student, pay
from students.models import Enrollment

DUE = date(2026, 3, 5)


@override_settings(INSTALLMENT_LATE_PENALTY_PERCENT='10')
class DelinquencyServiceTest(TestCase):
    def setUp(self):
        self.branch = make_branch()
        self.academic_class = make_class(self.branch, phases=3)
        self.student = make_student(self.branch)
        package = make_package(self.branch, name='Installment Plan', price='3000.00',
                               package_type=PackageType.INSTALLMENT)
        downpayment = make_invoice(self.branch, self.student, amount='1000.00')
        self.profile = InstallmentScheduler.create_profile(
            downpayment, package, self.academic_class, self.student,
            {
                'billing_month': '2026-02',
                'invoice_issue_date': '2026-01-25',
                'invoice_due_date': '2026-01-31',
                'invoice_generation_date': '2026-02-25',
                'frequency_months': 1,
            },
        )

    def _phase_invoice(self, due_date=DUE, **kwargs):
        kwargs.setdefault('status', InvoiceStatus.UNPAID)
        return make_invoice(
            self.branch, self.student, amount='1000.00', installment_profile=self.profile, due_date=due_date,
            **kwargs
        )

    def test_penalty_applied_once_per_due_date(self):
        invoice = self._phase_invoice()

        first = DelinquencyService.process(today=date(2026, 3, 6))
        second = DelinquencyService.process(today=date(2026, 3, 7))

        self.assertEqual(first.penalized, [{'invoice_id': invoice.pk, 'penalty': '100.00'}])
        self.assertEqual(second.penalized, [])
        invoice.refresh_from_db()
        self.assertEqual(invoice.amount, Decimal('1100.00'))
        self.assertEqual(invoice.late_penalty_applied_for_due_date, DUE)
        self.assertEqual(invoice.status, InvoiceStatus.UNPAID)
        line = InvoiceItem.objects.get(invoice=invoice, penalty_amount__gt=0)
        self.assertEqual(line.description, 'Late Payment Penalty (10%)')
        self.assertEqual(line.amount, Decimal('0.00'))
        self.assertEqual(line.line_total, Decimal('100.00'))

    def test_penalty_is_charged_on_remaining_balance(self):
        invoice = self._phase_invoice()
        pay(invoice, amount='400.00')

        DelinquencyService.process(today=date(2026, 3, 6))

        invoice.refresh_from_db()
        self.assertEqual(invoice.amount, Decimal('1060.00'))
        self.assertEqual(invoice.status, InvoiceStatus.PARTIALLY_PAID)

    def test_moved_due_date_gets_a_new_penalty(self):
        invoice = self._phase_invoice()
        DelinquencyService.process(today=date(2026, 3, 6))
        Invoice.objects.filter(pk=invoice.pk).update(due_date=date(2026, 3, 20))

        result = DelinquencyService.process(today=date(2026, 3, 21))

        self.assertEqual(result.penalized, [{'invoice_id': invoice.pk, 'penalty': '110.00'}])
        invoice.refresh_from_db()
        self.assertEqual(invoice.amount, Decimal('1210.00'))

    def test_skips_current_settled_and_non_installment_invoices(self):
        self._phase_invoice(due_date=date(2026, 3, 6))
        self._phase_invoice(status=InvoiceStatus.PAID)
        self._phase_invoice(status=InvoiceStatus.CANCELLED)
        make_invoice(self.branch, self.student, amount='1000.00', status=InvoiceStatus.UNPAID, due_date=DUE)

        result = DelinquencyService.process(today=date(2026, 3, 6))

        self.assertEqual(result.scanned, 0)
        self.assertFalse(InvoiceItem.objects.filter(penalty_amount__gt=0).exists())

    @override_settings(INSTALLMENT_LATE_PENALTY_PERCENT='12.5')
    def test_configurable_rate(self):
        invoice = self._phase_invoice()
        DelinquencyService.process(today=date(2026, 3, 6))
        line = InvoiceItem.objects.get(invoice=invoice, penalty_amount__gt=0)
        self.assertEqual(line.penalty_amount, Decimal('125.00'))
        self.assertEqual(line.description, 'Late Payment Penalty (12.5%)')

    def test_student_removed_a_month_after_due_date(self):
        self._phase_invoice()
        enroll(self.student, self.academic_class, phase_number=1)
        enroll(self.student, self.academic_class, phase_number=2)
        other_class = make_class(self.branch, name='Violin')
        enroll(self.student, other_class)

        before = DelinquencyService.process(today=date(2026, 4, 4))
        self.assertEqual(before.unenrolled, 0)
        self.assertEqual(Enrollment.objects.filter(academic_class=self.academic_class).count(), 2)

        after = DelinquencyService.process(today=date(2026, 4, 5))
        self.assertEqual(after.unenrolled, 2)
        self.assertFalse(Enrollment.objects.filter(academic_class=self.academic_class).exists())
        self.assertTrue(Enrollment.objects.filter(academic_class=other_class).exists())

    def test_paid_invoice_does_not_remove_student(self):
        invoice = self._phase_invoice()
        pay(invoice)
        enroll(self.student, self.academic_class)

        result = DelinquencyService.process(today=date(2026, 5, 1))

        self.assertEqual(result.scanned, 0)
        self.assertTrue(Enrollment.objects.filter(student=self.student).exists())

    def test_process_invoice_is_repeatable(self):
        invoice = self._phase_invoice()
        first = DelinquencyService.process_invoice(invoice.pk, today=date(2026, 3, 6))
        again = DelinquencyService.process_invoice(invoice.pk, today=date(2026, 3, 6))
        self.assertEqual(first['penalty'], '100.00')
        self.assertIsNone(again['penalty'])
        self.assertEqual(InvoiceItem.objects.filter(invoice=invoice, penalty_amount__gt=0).count(), 1)

    def test_as_dict(self):
        invoice = self._phase_invoice()
        summary = DelinquencyService.process(today=date(2026, 3, 6)).as_dict()
        self.assertEqual(summary['scanned'], 1)
        self.assertEqual(summary['penalties_applied'], 1)
        self.assertEqual(summary['details']['penalized'][0]['invoice_id'], invoice.pk)


class DelinquencyCommandTest(TestCase):
    def test_runs_for_date(self):
        out = StringIO()
        call_command('process_installment_delinquency', '--date', '2026-03-06', stdout=out)
        self.assertIn('Delinquency run completed', out.getvalue())

    def test_invalid_date(self):
        with self.assertRaises(CommandError):
            call_command('process_installment_delinquency', '--date', 'tomorrow')
