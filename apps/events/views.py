# events/views.py

from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_GET
import logging

from events import ical
from events.models import Event
from events.services import EventService

logger = logging.getLogger(__name__)


# =============================================================================
# ICALENDAR EXPORT
# =============================================================================

def _calendar_response(content, filename):
    response = HttpResponse(content, content_type=ical.CONTENT_TYPE)
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response


@require_GET
def export_event(request, slug):
    """Download a single event as an .ics file."""
    event = get_object_or_404(Event, slug=slug)
    return _calendar_response(ical.export_event(event), ical.event_filename(event))


@require_GET
def export_upcoming_events(request):
    """
    Download every published event that still has an occurrence ahead.

    Recurring events are included once, with their RRULE.
    """
    service = EventService()
    events = service.get_upcoming_events(limit=None)
    return _calendar_response(
        ical.export_events(events, clock=service.clock),
        ical.calendar_filename(service.clock.today()),
    )
