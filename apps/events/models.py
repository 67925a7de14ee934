# events/models.py

from django.db import models
from django.core.exceptions import ValidationError
from utils.models import BaseModel
from utils.exceptions import RuleParseError
from events import recurrence

import logging

logger = logging.getLogger(__name__)


# =============================================================================
# EVENT MODEL
# =============================================================================

class Event(BaseModel):
    """
    Calendar event published by the student government.

    A recurring event stores its rule as RRULE text; occurrences are never
    persisted, they are expanded on demand by events.recurrence.
    """

    # -------------------------------------------------------------------------
    # CHOICE FIELDS
    # -------------------------------------------------------------------------

    STATUS_CHOICES = (
        ('draft', 'Draft'),
        ('published', 'Published'),
        ('cancelled', 'Cancelled'),
        ('archived', 'Archived'),
    )

    CATEGORY_CHOICES = (
        ('academic', 'Academic'),
        ('cultural', 'Cultural'),
        ('sports', 'Sports'),
        ('meeting', 'Meeting'),
        ('community', 'Community Service'),
        ('other', 'Other'),
    )

    # -------------------------------------------------------------------------
    # BASIC INFORMATION
    # -------------------------------------------------------------------------

    title = models.CharField("Title", max_length=255)
    slug = models.SlugField("Slug", max_length=280, unique=True)
    description = models.TextField("Description", blank=True)
    location = models.CharField("Location", max_length=255, blank=True)
    category = models.CharField("Category", max_length=30, choices=CATEGORY_CHOICES, default='other')
    organizer = models.CharField("Organizer", max_length=255, blank=True)

    # -------------------------------------------------------------------------
    # SCHEDULE
    # -------------------------------------------------------------------------

    start_date = models.DateTimeField("Starts")
    end_date = models.DateTimeField("Ends")
    all_day = models.BooleanField("All Day", default=False)

    is_recurring = models.BooleanField("Recurring", default=False)
    recurrence_rule = models.CharField(
        "Recurrence Rule",
        max_length=255,
        blank=True,
        help_text="RRULE text, e.g. FREQ=WEEKLY;BYDAY=MO,WE,FR;COUNT=5"
    )

    status = models.CharField("Status", max_length=20, choices=STATUS_CHOICES, default='draft', db_index=True)

    class Meta:
        ordering = ['start_date']
        indexes = [
            models.Index(fields=['status', 'start_date']),
        ]

    def __str__(self):
        return f"{self.title} ({self.start_date:%Y-%m-%d})"

    # -------------------------------------------------------------------------
    # VALIDATION
    # -------------------------------------------------------------------------

    def clean(self):
        super().clean()
        errors = {}

        if self.start_date and self.end_date and self.end_date < self.start_date:
            errors['end_date'] = "End date cannot be before start date"

        if self.is_recurring:
            if not (self.recurrence_rule or '').strip():
                errors['recurrence_rule'] = "Recurring events need a recurrence rule"
            else:
                try:
                    recurrence.RecurrenceRule.parse(self.recurrence_rule)
                except RuleParseError as e:
                    errors['recurrence_rule'] = f"Invalid recurrence rule: {e}"

        if errors:
            raise ValidationError(errors)

    # -------------------------------------------------------------------------
    # RECURRENCE
    # -------------------------------------------------------------------------

    @property
    def rule(self):
        """
        Parsed RecurrenceRule, or None for a one-off event.

        Raises RuleParseError if the event is marked recurring but its rule
        is missing or malformed.
        """
        if not self.is_recurring:
            return None
        if not (self.recurrence_rule or '').strip():
            raise RuleParseError("Recurring event has no recurrence rule", rule=self.recurrence_rule)
        return recurrence.RecurrenceRule.parse(self.recurrence_rule)

    def get_occurrences(self, max_occurrences=recurrence.DEFAULT_MAX_OCCURRENCES):
        return recurrence.generate_occurrences(
            self.start_date, self.end_date, self.rule, max_occurrences=max_occurrences
        )

    def get_next_occurrence(self, after=None, clock=None, max_occurrences=recurrence.DEFAULT_MAX_OCCURRENCES):
        return recurrence.get_next_occurrence(
            self.start_date, self.end_date, self.rule, after=after, clock=clock,
            max_occurrences=max_occurrences,
        )

    def is_occurrence_on(self, day):
        return recurrence.is_occurrence(day, self.start_date, self.rule)

    def get_recurrence_description(self):
        if not self.is_recurring:
            return 'Does not repeat'
        return recurrence.describe(self.recurrence_rule)
