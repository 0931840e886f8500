# management/commands/expire_reservations.py
from django.core.management.base import BaseCommand, CommandError
from django.utils.dateparse import parse_date

from reservations.services import ExpirationSweeper


class Command(BaseCommand):
    help = 'Expire unpaid reservations past their due date and remove the enrollments they held'

    def add_arguments(self, parser):
        parser.add_argument('--date', help='Run as of this date (YYYY-MM-DD); defaults to today')

    def handle(self, *args, **options):
        today = None
        if options.get('date'):
            today = parse_date(options['date'])
            if today is None:
                raise CommandError(f"Invalid --date: {options['date']}")

        result = ExpirationSweeper.run(today=today)

        for reservation_id in result.expired_ids:
            self.stdout.write(f"Expired reservation {reservation_id}")

        self.stdout.write(
            self.style.SUCCESS(
                f"Reservation sweep completed: {result.expired_count} expired, "
                f"{result.unenrolled} enrollment(s) removed"
            )
        )
