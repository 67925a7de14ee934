# events/management/commands/archive_past_events.py

from django.core.management.base import BaseCommand

from events.services import EventService, ARCHIVE_AFTER_DAYS
from utils.context import RequestContext


class Command(BaseCommand):
    help = 'Archive published events that ended more than N days ago'

    def add_arguments(self, parser):
        parser.add_argument(
            '--days',
            type=int,
            default=ARCHIVE_AFTER_DAYS,
            help=f'Archive events that ended more than this many days ago (default {ARCHIVE_AFTER_DAYS})',
        )

    def handle(self, *args, **options):
        with RequestContext(request_path='command:archive_past_events'):
            archived = EventService().archive_past_events(older_than_days=options['days'])

        self.stdout.write(self.style.SUCCESS(f'Archived {archived} event(s)'))
