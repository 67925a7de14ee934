"""
iCalendar export of events: VEVENT fields, RRULE, status mapping and the
download views.
"""
from datetime import date, datetime, timedelta

import pytest
from django.utils import timezone
from icalendar import Calendar

from events import ical
from events.models import Event
from events.services import EventService
from tests.conftest import MANILA

pytestmark = pytest.mark.django_db


def at(year, month, day, hour=10, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=MANILA)


def vevents(content):
    return list(Calendar.from_ical(content).walk('VEVENT'))


@pytest.fixture
def service(clock):
    return EventService(clock=clock)


@pytest.fixture
def meeting(service):
    return service.publish(service.create_event({
        'title': 'Council Meeting',
        'description': '<p>Monthly <b>general</b> assembly</p>',
        'location': 'Gym, Court 1; bring ID',
        'organizer': 'Student Council',
        'start_date': at(2025, 1, 20, 10),
        'end_date': at(2025, 1, 20, 12),
        'is_recurring': True,
        'recurrence_rule': 'FREQ=WEEKLY;BYDAY=MO,WE,FR;COUNT=6',
    }))


# =============================================================================
# CALENDAR / VEVENT
# =============================================================================

class TestExportEvent:

    def test_calendar_header(self, meeting, clock):
        calendar = Calendar.from_ical(ical.export_event(meeting, clock=clock))

        assert str(calendar['prodid']) == '-//Campus Portal//Events Calendar//EN'
        assert str(calendar['version']) == '2.0'
        assert str(calendar['method']) == 'PUBLISH'
        assert str(calendar['x-wr-calname']) == 'Campus Events'
        assert str(calendar['x-wr-timezone']) == 'Asia/Manila'

    def test_event_fields(self, meeting, clock):
        [component] = vevents(ical.export_event(meeting, clock=clock))

        assert str(component['uid']) == f'event-{meeting.pk}@campusportal.local'
        assert str(component['summary']) == 'Council Meeting'
        assert str(component['description']) == 'Monthly general assembly'
        assert str(component['location']) == 'Gym, Court 1; bring ID'
        assert str(component['status']) == 'CONFIRMED'
        assert component.decoded('dtstart') == at(2025, 1, 20, 10)
        assert component.decoded('dtend') == at(2025, 1, 20, 12)
        assert component.decoded('dtstamp') == clock.now()
        assert str(component['url']) == 'https://portal.campus.local/events/council-meeting/'
        assert str(component['organizer']) == 'MAILTO:events@campusportal.local'
        assert component['organizer'].params['CN'] == 'Student Council'

    def test_timed_events_are_written_in_utc(self, meeting, clock):
        content = ical.export_event(meeting, clock=clock)

        assert b'DTSTART:20250120T020000Z' in content
        assert b'DTSTAMP:20250106T010000Z' in content

    def test_text_is_escaped_and_lines_folded(self, service, meeting, clock):
        meeting = service.update_event(meeting, {'description': 'Agenda: ' + 'budget review, ' * 20})

        content = ical.export_event(meeting, clock=clock)

        assert b'LOCATION:Gym\\, Court 1\\; bring ID' in content
        assert all(len(line) <= 75 for line in content.split(b'\r\n'))

    def test_recurrence_rule(self, meeting, clock):
        [component] = vevents(ical.export_event(meeting, clock=clock))

        rule = component['rrule']
        assert rule['FREQ'] == ['WEEKLY']
        assert rule['BYDAY'] == ['MO', 'WE', 'FR']
        assert rule['COUNT'] == [6]

    def test_one_off_event_has_no_rule(self, service, clock):
        event = service.create_event({'title': 'Book Fair', 'start_date': at(2025, 1, 9, 8)})

        [component] = vevents(ical.export_event(event, clock=clock))

        assert 'rrule' not in component
        assert 'organizer' not in component
        assert 'location' not in component

    def test_invalid_rule_is_left_out(self, clock):
        broken = Event.objects.create(
            title='Broken', slug='broken', start_date=at(2025, 1, 9), end_date=at(2025, 1, 9, 11),
            is_recurring=True, recurrence_rule='FREQ=HOURLY', status='published',
        )

        [component] = vevents(ical.export_event(broken, clock=clock))

        assert 'rrule' not in component
        assert str(component['summary']) == 'Broken'

    def test_all_day_event_uses_dates(self, service, clock):
        event = service.create_event({
            'title': 'Foundation Day',
            'start_date': at(2025, 1, 20, 0),
            'end_date': at(2025, 1, 21, 23, 59),
            'all_day': True,
        })

        [component] = vevents(ical.export_event(event, clock=clock))

        assert component.decoded('dtstart') == date(2025, 1, 20)
        assert component.decoded('dtend') == date(2025, 1, 22)

    @pytest.mark.parametrize('action, expected', [
        (None, 'TENTATIVE'),
        ('publish', 'CONFIRMED'),
        ('cancel', 'CANCELLED'),
    ])
    def test_status_mapping(self, service, clock, action, expected):
        event = service.create_event({'title': 'Sportsfest', 'start_date': at(2025, 1, 20)})
        if action:
            getattr(service, action)(event)

        [component] = vevents(ical.export_event(event, clock=clock))

        assert str(component['status']) == expected

    def test_export_many(self, service, meeting, clock):
        fair = service.create_event({'title': 'Job Fair', 'start_date': at(2025, 2, 1)})

        components = vevents(ical.export_events([meeting, fair], clock=clock))

        assert [str(component['summary']) for component in components] == ['Council Meeting', 'Job Fair']
        assert len({str(component['uid']) for component in components}) == 2


def test_filenames(meeting):
    assert ical.event_filename(meeting) == 'council-meeting.ics'
    assert ical.calendar_filename(date(2025, 1, 6)) == 'campus-events-2025-01-06.ics'


# =============================================================================
# VIEWS
# =============================================================================

class TestExportViews:

    def test_single_event_download(self, client, meeting):
        response = client.get(f'/events/{meeting.slug}/export.ics')

        assert response.status_code == 200
        assert response['Content-Type'] == 'text/calendar; charset=utf-8'
        assert response['Content-Disposition'] == 'attachment; filename="council-meeting.ics"'
        assert [str(c['summary']) for c in vevents(response.content)] == ['Council Meeting']

    def test_unknown_slug_is_404(self, client):
        assert client.get('/events/no-such-event/export.ics').status_code == 404

    def test_post_is_rejected(self, client, meeting):
        assert client.post(f'/events/{meeting.slug}/export.ics').status_code == 405

    def test_all_upcoming_published_events(self, client):
        service = EventService()
        soon = timezone.now() + timedelta(days=7)
        service.publish(service.create_event({'title': 'Upcoming Assembly', 'start_date': soon}))
        service.create_event({'title': 'Draft Assembly', 'start_date': soon})
        service.publish(service.create_event({'title': 'Past Assembly', 'start_date': soon - timedelta(days=60)}))

        response = client.get('/events/export/all.ics')

        assert response.status_code == 200
        assert response['Content-Disposition'].startswith('attachment; filename="campus-events-')
        assert [str(c['summary']) for c in vevents(response.content)] == ['Upcoming Assembly']
