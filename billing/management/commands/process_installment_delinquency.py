# management/commands/process_installment_delinquency.py
from django.core.management.base import BaseCommand, CommandError
from django.utils.dateparse import parse_date

from billing.installment_services import DelinquencyService


class Command(BaseCommand):
    help = 'Add late penalties to overdue installment invoices and unenroll students a month past due'

    def add_arguments(self, parser):
        parser.add_argument('--date', help='Run as of this date (YYYY-MM-DD); defaults to today')

    def handle(self, *args, **options):
        today = None
        if options.get('date'):
            today = parse_date(options['date'])
            if today is None:
                raise CommandError(f"Invalid --date: {options['date']}")

        result = DelinquencyService.process(today=today)

        for item in result.penalized:
            self.stdout.write(f"Invoice {item['invoice_id']}: late penalty {item['penalty']}")

        for item in result.errors:
            self.stdout.write(self.style.ERROR(f"Invoice {item['invoice_id']} failed: {item['error']}"))

        self.stdout.write(
            self.style.SUCCESS(
                f"Delinquency run completed: {len(result.penalized)} penalized, "
                f"{result.unenrolled} enrollment(s) removed, {len(result.errors)} errors "
                f"out of {result.scanned} overdue"
            )
        )
