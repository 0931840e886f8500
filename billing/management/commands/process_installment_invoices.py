# management/commands/process_installment_invoices.py
from django.core.management.base import BaseCommand, CommandError
from django.utils.dateparse import parse_date

from billing.installment_services import InstallmentScheduler


class Command(BaseCommand):
    help = 'Generate installment invoices whose next generation date has arrived'

    def add_arguments(self, parser):
        parser.add_argument('--date', help='Run as of this date (YYYY-MM-DD); defaults to today')

    def handle(self, *args, **options):
        today = None
        if options.get('date'):
            today = parse_date(options['date'])
            if today is None:
                raise CommandError(f"Invalid --date: {options['date']}")

        summary = InstallmentScheduler.process_due_invoices(today=today)

        for item in summary['details']['processed']:
            if item['invoice_id']:
                self.stdout.write(
                    self.style.SUCCESS(
                        f"Generated invoice {item['invoice_id']} "
                        f"({item['generated_count']}/{item['total_phases'] or '-'})"
                    )
                )
            else:
                self.stdout.write(f"Skipped occurrence {item['installment_invoice_id']}: {item['skipped_reason']}")

        for item in summary['details']['errors']:
            self.stdout.write(
                self.style.ERROR(f"Occurrence {item['installment_invoice_id']} failed: {item['error']}")
            )

        self.stdout.write(
            self.style.SUCCESS(
                f"Installment run completed: {summary['processed']} processed, "
                f"{summary['errors']} errors out of {summary['total_due']} due"
            )
        )
