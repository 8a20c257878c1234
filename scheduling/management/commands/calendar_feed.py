"""
Management command to print the aggregated calendar feed for a date range.

Useful for checking what the calendar will show after catalog changes,
e.g. from cron output or a shell session.
"""

from datetime import timedelta

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from scheduling import services
from scheduling.exceptions import InvalidDateRangeError
from scheduling.stores import DjangoBookingStore, DjangoCatalogStore
from scheduling.timeutils import parse_date


class Command(BaseCommand):
    help = 'Print sessions, class occurrences and bookings for a date range'

    def add_arguments(self, parser):
        parser.add_argument(
            '--start',
            type=parse_date,
            default=None,
            help='First date (YYYY-MM-DD, default: today)'
        )
        parser.add_argument(
            '--end',
            type=parse_date,
            default=None,
            help='Last date (YYYY-MM-DD, default: start + 6 days)'
        )
        parser.add_argument(
            '--booked-only',
            action='store_true',
            help='Only list bookings'
        )

    def handle(self, *args, **options):
        start = options['start'] or timezone.now().date()
        end = options['end'] or start + timedelta(days=6)

        try:
            events = services.calendar_events(
                DjangoCatalogStore(),
                DjangoBookingStore(),
                start,
                end,
                show_only_booked=options['booked_only'],
            )
        except InvalidDateRangeError as exc:
            raise CommandError(exc.message)

        self.stdout.write(f'Calendar from {start.isoformat()} to {end.isoformat()}:')
        for event in events:
            status_str = f" [{event.booking_status}]" if event.booking_status == 'cancelled' else ""
            self.stdout.write(
                f"{event.start.strftime('%Y-%m-%d %H:%M')}-{event.end.strftime('%H:%M')} "
                f"{event.kind:<8} {event.title}{status_str}"
            )

        self.stdout.write(
            self.style.SUCCESS(f'{len(events)} event(s)')
        )
