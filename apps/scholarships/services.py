# scholarships/services.py

"""
Scholarship Renewal Operations

Which active recipients qualify for the next (academic year, semester), and
creation of their renewal records without duplicates. The unique constraint
on ScholarshipRecipient makes check-then-create safe: a concurrent insert
surfaces as IntegrityError and is reported as "already exists".
"""

from dataclasses import dataclass, field
from datetime import timedelta
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import Exists, OuterRef
import logging
import uuid

from core.models import PortalSettings
from registrar.notifications import NotificationService
from scholarships.models import ScholarshipRecipient
from utils.audit import log_activity
from utils.clock import get_clock
from utils.exceptions import InvalidTransitionError, NotFoundError

logger = logging.getLogger(__name__)


@dataclass
class BulkRenewalResult:
    """Outcome of bulk_renew; one entry per requested id lands in exactly one bucket."""

    created: list = field(default_factory=list)
    failed: list = field(default_factory=list)
    missing: list = field(default_factory=list)
    errors: dict = field(default_factory=dict)

    @property
    def created_count(self):
        return len(self.created)

    @property
    def failed_count(self):
        return len(self.failed) + len(self.missing)

    def summary(self):
        return {
            'created': self.created_count,
            'failed': len(self.failed),
            'missing': len(self.missing),
        }


def _as_uuid(value):
    try:
        return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
    except ValueError:
        return None


def get_previous_period(academic_year, semester):
    """
    Period immediately before (academic_year, semester).

    Example:
        get_previous_period('2024-2025', '1st')  # ('2023-2024', '2nd')
        get_previous_period('2024-2025', '2nd')  # ('2024-2025', '1st')

    Raises:
        ValidationError: If the academic year or semester is malformed
    """
    try:
        start_year = int(academic_year.split('-')[0])
    except (AttributeError, ValueError):
        raise ValidationError(f"Invalid academic year: {academic_year}")

    if semester == '1st':
        return f"{start_year - 1}-{start_year}", '2nd'
    if semester == '2nd':
        return academic_year, '1st'
    raise ValidationError(f"Invalid semester: {semester}")


# =============================================================================
# SCHOLARSHIP RENEWAL SERVICE
# =============================================================================

class ScholarshipRenewalService:

    def __init__(self, clock=None, notifier=None):
        self.clock = get_clock(clock)
        self.notifier = notifier if notifier is not None else NotificationService(clock=self.clock)

    # -------------------------------------------------------------------------
    # ELIGIBILITY
    # -------------------------------------------------------------------------

    @staticmethod
    def _period_record_exists(academic_year, semester):
        return ScholarshipRecipient.objects.filter(
            student=OuterRef('student'),
            scholarship=OuterRef('scholarship'),
            academic_year=academic_year,
            semester=semester,
        )

    def get_eligible_scholars(self, academic_year, semester, from_previous_period=False):
        """
        Active recipients without a record for the target period.

        Args:
            academic_year (str): Target year, e.g. '2025-2026'
            semester (str): '1st' or '2nd'
            from_previous_period (bool): Only consider recipients of the
                period immediately before the target

        Returns:
            QuerySet of ScholarshipRecipient
        """
        queryset = (
            ScholarshipRecipient.objects
            .filter(status='Active')
            .filter(~Exists(self._period_record_exists(academic_year, semester)))
            .select_related('student', 'scholarship')
        )

        if from_previous_period:
            previous_year, previous_semester = get_previous_period(academic_year, semester)
            queryset = queryset.filter(academic_year=previous_year, semester=previous_semester)

        return queryset

    def get_scholars_needing_renewal(self, within_days=30):
        """Active recipients whose grant expires between today and today + within_days."""
        today = self.clock.today()
        return (
            ScholarshipRecipient.objects
            .filter(
                status='Active',
                expiration_date__isnull=False,
                expiration_date__gte=today,
                expiration_date__lte=today + timedelta(days=within_days),
            )
            .select_related('student', 'scholarship')
            .order_by('expiration_date')
        )

    @staticmethod
    def has_period_record(student_id, scholarship_id, academic_year, semester):
        return ScholarshipRecipient.objects.filter(
            student_id=student_id,
            scholarship_id=scholarship_id,
            academic_year=academic_year,
            semester=semester,
        ).exists()

    def is_eligible_for_renewal(self, recipient, academic_year, semester):
        """
        Single-recipient check: active, requirements complete, not expired,
        and no record yet for the target period.
        """
        if recipient.status != 'Active':
            return False
        if not recipient.requirements_complete:
            return False
        if recipient.expiration_date and recipient.expiration_date < self.clock.today():
            return False

        return not self.has_period_record(
            recipient.student_id, recipient.scholarship_id, academic_year, semester
        )

    # -------------------------------------------------------------------------
    # RENEWAL CREATION
    # -------------------------------------------------------------------------

    def create_renewal_application(self, previous_recipient, academic_year, semester, remarks=''):
        """
        Create the renewal record for the target period.

        Returns:
            ScholarshipRecipient, or None if the student already holds this
            scholarship for the period

        Example:
            renewal = ScholarshipRenewalService().create_renewal_application(
                recipient, '2025-2026', '1st'
            )
            if renewal is None:
                ...  # already renewed
        """
        lookup = {
            'student_id': previous_recipient.student_id,
            'scholarship_id': previous_recipient.scholarship_id,
            'academic_year': academic_year,
            'semester': semester,
        }
        if self.has_period_record(**lookup):
            logger.info(f"Renewal for {previous_recipient} in {academic_year} {semester} already exists")
            return None

        renewal = ScholarshipRecipient(
            **lookup,
            amount=previous_recipient.amount,
            status='Active',
            renewal_status='Pending',
            previous_recipient=previous_recipient,
            requirements_complete=False,
            date_awarded=self.clock.today(),
            remarks=remarks or 'Renewal from previous period',
        )
        renewal.full_clean(validate_unique=False, validate_constraints=False)

        try:
            with transaction.atomic():
                renewal.save()
        except IntegrityError:
            logger.info(
                f"Concurrent renewal for {previous_recipient} in {academic_year} {semester}, keeping existing"
            )
            return None

        log_activity(
            action='scholarship_renewal_created',
            target_object=renewal,
            description=f"Renewal application for {academic_year} {semester}",
            metadata={
                'previous_recipient': previous_recipient.pk,
                'academic_year': academic_year,
                'semester': semester,
            },
        )
        logger.info(f"Created renewal {renewal.pk} for {previous_recipient.student}")
        return renewal

    def bulk_renew(self, recipient_ids, academic_year, semester):
        """
        Renew each recipient independently. One bad id never stops the rest.

        Returns:
            BulkRenewalResult
        """
        result = BulkRenewalResult()
        recipient_ids = list(recipient_ids)
        recipients = ScholarshipRecipient.objects.select_related('student', 'scholarship').in_bulk(
            [key for key in map(_as_uuid, recipient_ids) if key is not None]
        )

        for recipient_id in recipient_ids:
            recipient = recipients.get(_as_uuid(recipient_id))
            if recipient is None:
                result.missing.append(recipient_id)
                result.errors[str(recipient_id)] = 'Recipient not found'
                continue

            try:
                renewal = self.create_renewal_application(recipient, academic_year, semester)
            except ValidationError as e:
                result.failed.append(recipient_id)
                result.errors[str(recipient_id)] = '; '.join(e.messages)
                logger.warning(f"Renewal of {recipient_id} rejected: {e.messages}")
                continue

            if renewal is None:
                result.failed.append(recipient_id)
                result.errors[str(recipient_id)] = f"Already renewed for {academic_year} {semester}"
            else:
                result.created.append(renewal)

        logger.info(f"Bulk renewal for {academic_year} {semester}: {result.summary()}")
        return result

    # -------------------------------------------------------------------------
    # REVIEW & HISTORY
    # -------------------------------------------------------------------------

    @transaction.atomic
    def review_renewal(self, recipient, approve, notes='', reviewer=None):
        """
        Approve or reject a pending renewal. A rejected renewal is made
        inactive.

        Raises:
            InvalidTransitionError: If the renewal is not pending
        """
        recipient = ScholarshipRecipient.objects.select_for_update().get(pk=recipient.pk)
        if recipient.renewal_status != 'Pending':
            raise InvalidTransitionError(
                recipient.renewal_status or 'none',
                'review',
                message=f"Only pending renewals can be reviewed (current: {recipient.renewal_status or 'None'}).",
            )

        old_values = {'renewal_status': recipient.renewal_status, 'status': recipient.status}
        recipient.renewal_status = 'Approved' if approve else 'Rejected'
        if not approve:
            recipient.status = 'Inactive'
        recipient.review_notes = notes
        recipient.review_date = self.clock.now()
        recipient.reviewed_by_id = str(reviewer.pk) if reviewer else ''
        recipient.save()

        log_activity(
            action='scholarship_renewal_approved' if approve else 'scholarship_renewal_rejected',
            target_object=recipient,
            user=reviewer,
            description=f"Renewal {recipient.renewal_status.lower()} for {recipient.student}",
            old_values=old_values,
            new_values={'renewal_status': recipient.renewal_status, 'status': recipient.status},
        )
        return recipient

    @staticmethod
    def get_renewal_history(student):
        """Renewal records for a student, newest period first."""
        return (
            ScholarshipRecipient.objects
            .filter(student=student, previous_recipient__isnull=False)
            .select_related('scholarship')
            .order_by('-academic_year', '-semester')
        )

    @staticmethod
    def get_recipient(recipient_id):
        try:
            return ScholarshipRecipient.objects.select_related('student', 'scholarship').get(pk=recipient_id)
        except (ScholarshipRecipient.DoesNotExist, ValidationError, ValueError):
            raise NotFoundError(f"Scholarship recipient {recipient_id} not found")

    # -------------------------------------------------------------------------
    # REMINDERS
    # -------------------------------------------------------------------------

    def send_renewal_reminders(self, academic_year, semester):
        """
        Remind last period's active scholars to renew for the target period.

        Returns:
            int: Number of scholars reminded
        """
        scholars = self.get_eligible_scholars(academic_year, semester, from_previous_period=True)
        reminded = 0
        for recipient in scholars:
            self.notifier.notify_student(
                recipient.student,
                'Scholarship Renewal Reminder',
                f"Your {recipient.scholarship.name} grant can be renewed for {academic_year} "
                f"{semester} semester. Please submit your renewal requirements to the Student Affairs Office.",
            )
            reminded += 1

        logger.info(f"Sent {reminded} renewal reminder(s) for {academic_year} {semester}")
        return reminded

    def send_expiry_reminders(self, within_days=None):
        """
        Remind scholars whose grant is about to expire.

        Returns:
            int: Number of scholars reminded
        """
        if within_days is None:
            within_days = PortalSettings.get_instance().renewal_reminder_days

        reminded = 0
        for recipient in self.get_scholars_needing_renewal(within_days):
            self.notifier.notify_student(
                recipient.student,
                'Scholarship Expiring Soon',
                f"Your {recipient.scholarship.name} grant expires on "
                f"{recipient.expiration_date:%B %d, %Y}. Please apply for renewal before then.",
            )
            reminded += 1

        logger.info(f"Sent {reminded} expiry reminder(s) (within {within_days} days)")
        return reminded
