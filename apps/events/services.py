# events/services.py

"""
Event Operations

Publishing workflow, slug generation and calendar expansion for student
government events. Recurring events are expanded through events.recurrence
with the RECURRENCE_MAX_OCCURRENCES cap.
"""

from datetime import timedelta
from django.conf import settings
from django.db import transaction
from django.utils.text import slugify
import logging

from events.models import Event
from events.recurrence import Occurrence
from utils.audit import log_activity
from utils.clock import get_clock
from utils.exceptions import InvalidTransitionError, RuleParseError

logger = logging.getLogger(__name__)

ARCHIVE_AFTER_DAYS = 30

PUBLISH = 'publish'
CANCEL = 'cancel'
ARCHIVE = 'archive'

# (current status, action) -> next status
STATUS_TRANSITIONS = {
    ('draft', PUBLISH): 'published',
    ('draft', CANCEL): 'cancelled',
    ('published', CANCEL): 'cancelled',
    ('published', ARCHIVE): 'archived',
    ('cancelled', ARCHIVE): 'archived',
}


# =============================================================================
# EVENT SERVICE
# =============================================================================

class EventService:
    """
    Event lifecycle (draft -> published -> cancelled/archived) and calendar
    queries.
    """

    def __init__(self, clock=None):
        self.clock = get_clock(clock)

    @property
    def max_occurrences(self):
        return getattr(settings, 'RECURRENCE_MAX_OCCURRENCES', 100)

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    @transaction.atomic
    def create_event(self, event_data):
        """
        Create an event with a unique slug.

        Args:
            event_data (dict): Event fields
                Required:
                    - title: str
                    - start_date: datetime
                Optional:
                    - end_date: datetime (defaults to start_date)
                    - is_recurring / recurrence_rule
                    - description, location, category, organizer, all_day

        Returns:
            Event instance

        Raises:
            ValidationError: If the schedule or recurrence rule is invalid
        """
        data = dict(event_data)
        if not data.get('end_date'):
            data['end_date'] = data['start_date']
        data['slug'] = self.generate_unique_slug(data['title'])

        event = Event(**data)
        event.full_clean()
        event.save()

        logger.info(f"Created event '{event.title}' ({event.slug})")
        return event

    @transaction.atomic
    def update_event(self, event, event_data):
        data = dict(event_data)
        if 'title' in data and data['title'] != event.title:
            data['slug'] = self.generate_unique_slug(data['title'], exclude_pk=event.pk)
        if 'start_date' in data and not data.get('end_date'):
            data['end_date'] = data['start_date']

        for field, value in data.items():
            setattr(event, field, value)

        event.full_clean()
        event.save()

        logger.info(f"Updated event '{event.title}'")
        return event

    # -------------------------------------------------------------------------
    # STATUS CHANGES
    # -------------------------------------------------------------------------

    def publish(self, event):
        return self._set_status(event, PUBLISH)

    def cancel(self, event):
        return self._set_status(event, CANCEL)

    def archive(self, event):
        return self._set_status(event, ARCHIVE)

    @transaction.atomic
    def _set_status(self, event, action):
        """
        Apply ``action`` if STATUS_TRANSITIONS allows it from the event's
        current status.

        Raises:
            InvalidTransitionError: e.g. publishing an archived event
        """
        old_status = event.status
        status = STATUS_TRANSITIONS.get((old_status, action))
        if status is None:
            raise InvalidTransitionError(
                old_status, action, message=f"Cannot {action} an event that is {old_status}."
            )

        event.status = status
        event.save()

        log_activity(
            action=f"event_{status}",
            target_object=event,
            description=f"Event '{event.title}' {status}",
            old_values={'status': old_status},
            new_values={'status': status},
        )
        return event

    @transaction.atomic
    def archive_past_events(self, older_than_days=ARCHIVE_AFTER_DAYS):
        """
        Archive published events that ended more than ``older_than_days``
        ago. Recurring events with a future occurrence stay published.

        Returns:
            int: Number of events archived
        """
        now = self.clock.now()
        cutoff = now - timedelta(days=older_than_days)
        archived = 0

        for event in Event.objects.filter(status='published', end_date__lt=cutoff):
            if event.is_recurring:
                try:
                    next_occurrence = event.get_next_occurrence(after=cutoff, max_occurrences=self.max_occurrences)
                    if next_occurrence is not None:
                        continue
                except RuleParseError as e:
                    logger.warning(f"Archiving event {event.slug} with invalid rule: {e}")
            self.archive(event)
            archived += 1

        logger.info(f"Archived {archived} past events")
        return archived

    # -------------------------------------------------------------------------
    # QUERIES
    # -------------------------------------------------------------------------

    def get_upcoming_events(self, limit=10):
        """Published events with an occurrence still ahead, soonest first. ``limit=None`` returns all of them."""
        now = self.clock.now()
        upcoming = []

        for event in Event.objects.filter(status='published'):
            try:
                occurrence = event.get_next_occurrence(after=now, max_occurrences=self.max_occurrences)
            except RuleParseError as e:
                logger.warning(f"Skipping event {event.slug} in upcoming list: {e}")
                continue
            if occurrence is not None:
                upcoming.append((occurrence.start, event))

        upcoming.sort(key=lambda item: item[0])
        return [event for _, event in upcoming[:limit]]

    def get_calendar_occurrences(self, window_start, window_end):
        """
        Expand published events into concrete occurrences overlapping
        ``[window_start, window_end]``.

        An event whose rule cannot be parsed is shown once, at its stored
        dates, and a warning is logged.

        Returns:
            list of (event, occurrence) tuples ordered by occurrence start
        """
        entries = []
        events = Event.objects.filter(status='published', start_date__lte=window_end)

        for event in events:
            try:
                occurrences = list(event.get_occurrences(max_occurrences=self.max_occurrences))
            except RuleParseError as e:
                logger.warning(f"Event {event.slug} has an invalid recurrence rule, showing once: {e}")
                occurrences = [Occurrence(event.start_date, event.end_date)]

            for occurrence in occurrences:
                if occurrence.start > window_end:
                    break
                if occurrence.end >= window_start:
                    entries.append((event, occurrence))

        entries.sort(key=lambda entry: entry[1].start)
        return entries

    # -------------------------------------------------------------------------
    # SLUGS
    # -------------------------------------------------------------------------

    @staticmethod
    def generate_unique_slug(title, exclude_pk=None):
        base = slugify(title)[:250] or 'event'
        slug = base
        suffix = 1

        while True:
            queryset = Event.objects.filter(slug=slug)
            if exclude_pk is not None:
                queryset = queryset.exclude(pk=exclude_pk)
            if not queryset.exists():
                return slug
            slug = f"{base}-{suffix}"
            suffix += 1
