# scholarships/management/commands/send_renewal_reminders.py

from django.core.management.base import BaseCommand, CommandError
from django.core.exceptions import ValidationError

from scholarships.services import ScholarshipRenewalService
from utils.context import RequestContext


class Command(BaseCommand):
    help = (
        'Remind scholars to renew for the given period, or with --expiring, '
        'remind scholars whose grant is about to expire'
    )

    def add_arguments(self, parser):
        parser.add_argument('--academic-year', help='Target academic year, e.g. 2025-2026')
        parser.add_argument('--semester', choices=['1st', '2nd'], help='Target semester')
        parser.add_argument(
            '--expiring',
            action='store_true',
            help='Remind scholars whose grant expires within the configured reminder window',
        )
        parser.add_argument('--days', type=int, help='Override the reminder window (days) for --expiring')

    def handle(self, *args, **options):
        service = ScholarshipRenewalService()

        with RequestContext(request_path='command:send_renewal_reminders'):
            if options['expiring']:
                reminded = service.send_expiry_reminders(within_days=options['days'])
            else:
                if not options['academic_year'] or not options['semester']:
                    raise CommandError('--academic-year and --semester are required unless --expiring is given')
                try:
                    reminded = service.send_renewal_reminders(options['academic_year'], options['semester'])
                except ValidationError as e:
                    raise CommandError('; '.join(e.messages))

        self.stdout.write(self.style.SUCCESS(f'Sent {reminded} reminder(s)'))
