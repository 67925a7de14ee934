"""
Event publishing workflow, slugs and calendar expansion.
"""
from datetime import datetime, timedelta

import pytest
from django.core.exceptions import ValidationError

from events.models import Event
from events.services import EventService
from tests.conftest import MANILA
from utils.exceptions import InvalidTransitionError, RuleParseError
from utils.models import AuditLog

pytestmark = pytest.mark.django_db


def at(year, month, day, hour=10, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=MANILA)


@pytest.fixture
def service(clock):
    return EventService(clock=clock)


@pytest.fixture
def weekly_meeting(service):
    event = service.create_event({
        'title': 'Council Meeting',
        'start_date': at(2025, 1, 6),
        'end_date': at(2025, 1, 6, 12),
        'is_recurring': True,
        'recurrence_rule': 'FREQ=WEEKLY;BYDAY=MO,WE,FR;COUNT=6',
        'category': 'meeting',
    })
    return service.publish(event)


# =============================================================================
# CREATE / UPDATE
# =============================================================================

class TestCreateEvent:

    def test_creates_draft_with_slug(self, service):
        event = service.create_event({'title': 'Freshmen Orientation', 'start_date': at(2025, 1, 10)})

        assert event.slug == 'freshmen-orientation'
        assert event.status == 'draft'
        assert event.end_date == event.start_date

    def test_duplicate_titles_get_numbered_slugs(self, service):
        slugs = [
            service.create_event({'title': 'Blood Drive', 'start_date': at(2025, 1, 10)}).slug
            for _ in range(3)
        ]

        assert slugs == ['blood-drive', 'blood-drive-1', 'blood-drive-2']

    def test_title_without_letters_uses_fallback_slug(self, service):
        assert service.create_event({'title': '!!!', 'start_date': at(2025, 1, 10)}).slug == 'event'

    def test_end_before_start_is_rejected(self, service):
        with pytest.raises(ValidationError) as exc_info:
            service.create_event({
                'title': 'Backwards', 'start_date': at(2025, 1, 10, 12), 'end_date': at(2025, 1, 10, 9),
            })

        assert 'end_date' in exc_info.value.message_dict
        assert not Event.objects.exists()

    @pytest.mark.parametrize('rule', ['', 'FREQ=HOURLY', 'FREQ=MONTHLY;BYMONTHDAY=40'])
    def test_recurring_event_needs_valid_rule(self, service, rule):
        with pytest.raises(ValidationError) as exc_info:
            service.create_event({
                'title': 'Bad Rule', 'start_date': at(2025, 1, 10), 'is_recurring': True, 'recurrence_rule': rule,
            })

        assert 'recurrence_rule' in exc_info.value.message_dict

    def test_update_regenerates_slug_on_title_change(self, service):
        service.create_event({'title': 'Acquaintance Party', 'start_date': at(2025, 1, 10)})
        event = service.create_event({'title': 'Draft Title', 'start_date': at(2025, 1, 11)})

        updated = service.update_event(event, {'title': 'Acquaintance Party'})

        assert updated.slug == 'acquaintance-party-1'

    def test_update_keeps_slug_for_same_title(self, service):
        event = service.create_event({'title': 'Foundation Day', 'start_date': at(2025, 1, 10)})

        assert service.update_event(event, {'title': 'Foundation Day', 'location': 'Gym'}).slug == 'foundation-day'


# =============================================================================
# STATUS CHANGES
# =============================================================================

class TestStatusChanges:

    def test_publish_cancel_archive_are_audited(self, service):
        event = service.create_event({'title': 'Sportsfest', 'start_date': at(2025, 1, 20)})

        service.publish(event)
        service.cancel(event)
        service.archive(event)

        actions = set(AuditLog.objects.values_list('action', flat=True))
        assert {'event_published', 'event_cancelled', 'event_archived'} <= actions
        assert Event.objects.get(pk=event.pk).status == 'archived'

    @pytest.mark.parametrize('status, action', [
        ('archived', 'publish'),
        ('cancelled', 'publish'),
        ('archived', 'cancel'),
        ('draft', 'archive'),
        ('published', 'publish'),
    ])
    def test_illegal_status_change_is_rejected(self, service, status, action):
        event = service.create_event({'title': 'Closed Fair', 'start_date': at(2025, 1, 20)})
        Event.objects.filter(pk=event.pk).update(status=status)
        event.refresh_from_db()

        with pytest.raises(InvalidTransitionError) as exc_info:
            getattr(service, action)(event)

        assert exc_info.value.current_status == status
        assert Event.objects.get(pk=event.pk).status == status
        assert not AuditLog.objects.filter(action__startswith='event_').exists()

    def test_draft_can_be_cancelled(self, service):
        event = service.create_event({'title': 'Tentative Fair', 'start_date': at(2025, 1, 20)})

        assert service.cancel(event).status == 'cancelled'

    def test_archive_past_events(self, service, clock):
        old = service.publish(service.create_event({'title': 'Old Fair', 'start_date': at(2024, 11, 1)}))
        recent = service.publish(service.create_event({'title': 'Recent Fair', 'start_date': at(2024, 12, 20)}))
        draft = service.create_event({'title': 'Old Draft', 'start_date': at(2024, 10, 1)})

        archived = service.archive_past_events(older_than_days=30)

        assert archived == 1
        assert Event.objects.get(pk=old.pk).status == 'archived'
        assert Event.objects.get(pk=recent.pk).status == 'published'
        assert Event.objects.get(pk=draft.pk).status == 'draft'

    def test_recurring_event_with_future_occurrence_stays_published(self, service):
        event = service.publish(service.create_event({
            'title': 'Weekly Mass',
            'start_date': at(2024, 10, 6),
            'is_recurring': True,
            'recurrence_rule': 'FREQ=WEEKLY',
        }))

        assert service.archive_past_events(older_than_days=30) == 0
        assert Event.objects.get(pk=event.pk).status == 'published'

    def test_archive_respects_occurrence_cap(self, settings, service):
        settings.RECURRENCE_MAX_OCCURRENCES = 3
        event = service.publish(service.create_event({
            'title': 'Daily Drill',
            'start_date': at(2024, 11, 1),
            'is_recurring': True,
            'recurrence_rule': 'FREQ=DAILY',
        }))

        assert service.archive_past_events(older_than_days=30) == 1
        assert Event.objects.get(pk=event.pk).status == 'archived'


# =============================================================================
# QUERIES
# =============================================================================

class TestQueries:

    def test_upcoming_events_ordered_by_next_occurrence(self, service, weekly_meeting):
        later = service.publish(service.create_event({'title': 'Job Fair', 'start_date': at(2025, 2, 1)}))
        service.publish(service.create_event({'title': 'Past Fair', 'start_date': at(2024, 12, 1)}))
        service.create_event({'title': 'Unpublished', 'start_date': at(2025, 1, 7)})

        assert service.get_upcoming_events() == [weekly_meeting, later]
        assert service.get_upcoming_events(limit=1) == [weekly_meeting]
        assert service.get_upcoming_events(limit=None) == [weekly_meeting, later]

    def test_upcoming_respects_occurrence_cap(self, settings, service):
        settings.RECURRENCE_MAX_OCCURRENCES = 3
        service.publish(service.create_event({
            'title': 'Enrollment Week',
            'start_date': at(2025, 1, 1),
            'is_recurring': True,
            'recurrence_rule': 'FREQ=DAILY',
        }))

        assert service.get_upcoming_events() == []

    def test_calendar_expands_recurring_events(self, service, weekly_meeting):
        entries = service.get_calendar_occurrences(at(2025, 1, 8, 0), at(2025, 1, 12, 23))

        assert [occurrence.start for _, occurrence in entries] == [at(2025, 1, 8), at(2025, 1, 10)]
        assert all(event == weekly_meeting for event, _ in entries)

    def test_calendar_includes_one_off_events(self, service, weekly_meeting):
        fair = service.publish(service.create_event({
            'title': 'Book Fair', 'start_date': at(2025, 1, 9, 8), 'end_date': at(2025, 1, 9, 17),
        }))

        entries = service.get_calendar_occurrences(at(2025, 1, 8, 0), at(2025, 1, 12, 23))

        assert [event for event, _ in entries] == [weekly_meeting, fair, weekly_meeting]

    def test_calendar_shows_invalid_rule_once(self, service):
        broken = Event.objects.create(
            title='Broken', slug='broken', start_date=at(2025, 1, 9), end_date=at(2025, 1, 9, 11),
            is_recurring=True, recurrence_rule='FREQ=HOURLY', status='published',
        )

        entries = service.get_calendar_occurrences(at(2025, 1, 1), at(2025, 1, 31))

        assert [(event, occurrence.start) for event, occurrence in entries] == [(broken, at(2025, 1, 9))]

    def test_calendar_cap_follows_setting(self, settings, service):
        settings.RECURRENCE_MAX_OCCURRENCES = 3
        service.publish(service.create_event({
            'title': 'Daily Prayer', 'start_date': at(2025, 1, 6, 8), 'is_recurring': True, 'recurrence_rule': 'FREQ=DAILY',
        }))

        assert len(service.get_calendar_occurrences(at(2025, 1, 1), at(2025, 1, 31))) == 3


# =============================================================================
# MODEL HELPERS
# =============================================================================

class TestEventRule:

    def test_one_off_event_has_no_rule(self):
        event = Event(title='One-off', start_date=at(2025, 1, 6), end_date=at(2025, 1, 6))

        assert event.rule is None
        assert event.get_recurrence_description() == 'Does not repeat'

    def test_recurring_without_rule_raises(self):
        event = Event(title='Empty', start_date=at(2025, 1, 6), end_date=at(2025, 1, 6), is_recurring=True)

        with pytest.raises(RuleParseError):
            event.rule

    def test_occurrence_helpers(self, weekly_meeting):
        assert weekly_meeting.is_occurrence_on(at(2025, 1, 8).date())
        assert not weekly_meeting.is_occurrence_on(at(2025, 1, 7).date())
        assert weekly_meeting.get_next_occurrence(after=at(2025, 1, 8)).start == at(2025, 1, 10)
        assert weekly_meeting.get_recurrence_description() == 'Weekly on Mon, Wed, Fri, 6 times'
        assert len(list(weekly_meeting.get_occurrences())) == 6

    def test_next_occurrence_is_none_after_last(self, weekly_meeting):
        assert weekly_meeting.get_next_occurrence(after=at(2025, 2, 1)) is None

    def test_next_occurrence_defaults_to_clock(self, clock, weekly_meeting):
        clock.advance(days=2)

        assert weekly_meeting.get_next_occurrence(clock=clock).start == at(2025, 1, 8)

    def test_end_of_each_occurrence(self, weekly_meeting):
        for occurrence in weekly_meeting.get_occurrences():
            assert occurrence.end - occurrence.start == timedelta(hours=2)
