# events/ical.py

"""
iCalendar Export

Builds RFC 5545 calendars for student government events so students can
subscribe from Google Calendar, Outlook or Apple Calendar.

A recurring event is exported as a single VEVENT carrying its RRULE; the
client expands it. Timed events are written in UTC, all-day events as
dates. Text escaping and line folding are left to icalendar.
"""

from datetime import timedelta, timezone as dt_timezone
from django.conf import settings
from django.utils import timezone
from django.utils.html import strip_tags
from django.utils.text import slugify
from icalendar import Calendar, Event as CalendarEvent, vCalAddress, vRecur
import logging

from utils.clock import get_clock
from utils.exceptions import RuleParseError

logger = logging.getLogger(__name__)

PRODID = '-//Campus Portal//Events Calendar//EN'
CONTENT_TYPE = 'text/calendar; charset=utf-8'

ICAL_STATUS = {
    'published': 'CONFIRMED',
    'cancelled': 'CANCELLED',
}
DEFAULT_ICAL_STATUS = 'TENTATIVE'


# =============================================================================
# CALENDAR
# =============================================================================

def build_calendar(events, clock=None):
    """
    Calendar containing one VEVENT per event.

    Args:
        events: Iterable of Event instances
        clock: Clock used for DTSTAMP

    Returns:
        icalendar.Calendar
    """
    calendar = Calendar()
    calendar.add('prodid', PRODID)
    calendar.add('version', '2.0')
    calendar.add('calscale', 'GREGORIAN')
    calendar.add('method', 'PUBLISH')
    calendar.add('x-wr-calname', getattr(settings, 'EVENTS_CALENDAR_NAME', 'Campus Events'))
    calendar.add('x-wr-timezone', settings.TIME_ZONE)
    calendar.add(
        'x-wr-caldesc',
        getattr(settings, 'EVENTS_CALENDAR_DESCRIPTION', 'Student Government Events Calendar'),
    )

    stamp = _utc(get_clock(clock).now())
    for event in events:
        calendar.add_component(build_vevent(event, stamp))

    return calendar


def export_event(event, clock=None):
    """Serialized calendar (bytes) holding only ``event``."""
    return build_calendar([event], clock=clock).to_ical()


def export_events(events, clock=None):
    """Serialized calendar (bytes) holding every event in ``events``."""
    events = list(events)
    logger.info(f"Exporting {len(events)} event(s) to iCalendar")
    return build_calendar(events, clock=clock).to_ical()


# =============================================================================
# VEVENT
# =============================================================================

def build_vevent(event, stamp):
    component = CalendarEvent()
    component.add('uid', event_uid(event))
    component.add('dtstamp', stamp)

    if event.all_day:
        start_day = timezone.localtime(event.start_date).date()
        end_day = timezone.localtime(event.end_date).date()
        # DTEND is exclusive for dates
        component.add('dtstart', start_day)
        component.add('dtend', end_day + timedelta(days=1))
    else:
        component.add('dtstart', _utc(event.start_date))
        component.add('dtend', _utc(event.end_date))

    component.add('summary', event.title)
    if event.description:
        component.add('description', strip_tags(event.description).strip())
    if event.location:
        component.add('location', event.location)
    component.add('status', ICAL_STATUS.get(event.status, DEFAULT_ICAL_STATUS))

    if event.is_recurring:
        try:
            component.add('rrule', vRecur.from_ical(event.rule.to_rrule()))
        except RuleParseError as e:
            logger.warning(f"Exporting event {event.slug} without RRULE: {e}")

    if event.created_at:
        component.add('created', _utc(event.created_at))
    if event.updated_at:
        component.add('last-modified', _utc(event.updated_at))

    if event.organizer:
        email = getattr(settings, 'EVENTS_ORGANIZER_EMAIL', 'events@campusportal.local')
        organizer = vCalAddress(f"MAILTO:{email}")
        organizer.params['cn'] = event.organizer
        component.add('organizer', organizer)

    page_url = getattr(settings, 'EVENT_PAGE_URL', '')
    if page_url:
        component.add('url', f"{page_url}{event.slug}/")

    return component


def event_uid(event):
    domain = getattr(settings, 'EVENTS_UID_DOMAIN', 'campusportal.local')
    return f"event-{event.pk}@{domain}"


def _utc(value):
    return value.astimezone(dt_timezone.utc)


# =============================================================================
# FILENAMES
# =============================================================================

def event_filename(event):
    return f"{slugify(event.title) or 'event'}.ics"


def calendar_filename(day):
    return f"campus-events-{day:%Y-%m-%d}.ics"
