"""
Scholarship renewal eligibility, creation, bulk renewal, review and reminders.
"""
import uuid
from datetime import date, timedelta

import pytest
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction

from scholarships.models import ScholarshipRecipient
from scholarships.services import ScholarshipRenewalService, get_previous_period
from students.models import Student
from utils.exceptions import InvalidTransitionError, NotFoundError
from utils.models import AuditLog

pytestmark = pytest.mark.django_db


@pytest.fixture
def service(clock, notifier):
    return ScholarshipRenewalService(clock=clock, notifier=notifier)


def make_recipient(student, scholarship, academic_year='2024-2025', semester='1st', **kwargs):
    values = {'amount': '10000.00', 'status': 'Active', 'requirements_complete': True}
    values.update(kwargs)
    return ScholarshipRecipient.objects.create(
        student=student,
        scholarship=scholarship,
        academic_year=academic_year,
        semester=semester,
        **values,
    )


def make_student(number):
    return Student.objects.create(
        student_number=f'2023-{number:05d}',
        first_name='Scholar',
        last_name=f'No{number}',
        email=f'scholar{number}@campus.test',
    )


# =============================================================================
# PERIODS
# =============================================================================

@pytest.mark.parametrize('academic_year, semester, expected', [
    ('2024-2025', '1st', ('2023-2024', '2nd')),
    ('2024-2025', '2nd', ('2024-2025', '1st')),
])
def test_previous_period(academic_year, semester, expected):
    assert get_previous_period(academic_year, semester) == expected


@pytest.mark.parametrize('academic_year, semester', [
    ('twenty', '1st'),
    ('2024-2025', 'summer'),
    (None, '1st'),
])
def test_previous_period_rejects_bad_input(academic_year, semester):
    with pytest.raises(ValidationError):
        get_previous_period(academic_year, semester)


# =============================================================================
# ELIGIBILITY
# =============================================================================

class TestEligibility:

    def test_active_recipient_is_eligible(self, service, recipient):
        eligible = service.get_eligible_scholars('2024-2025', '2nd')

        assert list(eligible) == [recipient]

    def test_renewed_recipient_is_excluded(self, service, recipient):
        service.create_renewal_application(recipient, '2024-2025', '2nd')

        eligible = service.get_eligible_scholars('2024-2025', '2nd')

        assert recipient not in eligible

    def test_inactive_recipient_is_excluded(self, service, recipient):
        recipient.status = 'Suspended'
        recipient.save()

        assert not service.get_eligible_scholars('2024-2025', '2nd').exists()

    def test_from_previous_period_only(self, service, recipient, other_student, scholarship):
        older = make_recipient(other_student, scholarship, academic_year='2023-2024', semester='2nd')

        all_eligible = set(service.get_eligible_scholars('2024-2025', '2nd'))
        previous_only = list(service.get_eligible_scholars('2024-2025', '2nd', from_previous_period=True))

        assert all_eligible == {recipient, older}
        assert previous_only == [recipient]

    def test_single_recipient_checks(self, service, recipient, clock):
        assert service.is_eligible_for_renewal(recipient, '2024-2025', '2nd')

        recipient.requirements_complete = False
        assert not service.is_eligible_for_renewal(recipient, '2024-2025', '2nd')

        recipient.requirements_complete = True
        recipient.expiration_date = clock.today() - timedelta(days=1)
        assert not service.is_eligible_for_renewal(recipient, '2024-2025', '2nd')

    def test_already_renewed_is_not_eligible(self, service, recipient):
        service.create_renewal_application(recipient, '2024-2025', '2nd')

        assert not service.is_eligible_for_renewal(recipient, '2024-2025', '2nd')

    def test_needing_renewal_window(self, service, scholarship, clock):
        today = clock.today()
        soon = make_recipient(make_student(1), scholarship, expiration_date=today + timedelta(days=10))
        make_recipient(make_student(2), scholarship, expiration_date=today + timedelta(days=40))
        make_recipient(make_student(3), scholarship, expiration_date=today - timedelta(days=1))
        make_recipient(make_student(4), scholarship, expiration_date=today + timedelta(days=5), status='Inactive')

        assert list(service.get_scholars_needing_renewal(within_days=30)) == [soon]


# =============================================================================
# RENEWAL CREATION
# =============================================================================

class TestCreateRenewal:

    def test_creates_pending_renewal(self, service, recipient, clock):
        renewal = service.create_renewal_application(recipient, '2024-2025', '2nd')

        assert renewal.previous_recipient == recipient
        assert renewal.renewal_status == 'Pending'
        assert renewal.status == 'Active'
        assert not renewal.requirements_complete
        assert renewal.date_awarded == clock.today()
        assert renewal.is_renewal()
        assert AuditLog.objects.filter(action='scholarship_renewal_created').count() == 1

    def test_second_call_returns_none(self, service, recipient):
        first = service.create_renewal_application(recipient, '2024-2025', '2nd')
        second = service.create_renewal_application(recipient, '2024-2025', '2nd')

        assert first is not None
        assert second is None
        assert ScholarshipRecipient.objects.filter(academic_year='2024-2025', semester='2nd').count() == 1

    def test_concurrent_insert_returns_none(self, service, recipient, monkeypatch):
        make_recipient(recipient.student, recipient.scholarship, academic_year='2024-2025', semester='2nd')
        monkeypatch.setattr(service, 'has_period_record', lambda *args, **kwargs: False)

        assert service.create_renewal_application(recipient, '2024-2025', '2nd') is None
        assert ScholarshipRecipient.objects.filter(semester='2nd').count() == 1

    def test_malformed_academic_year(self, service, recipient):
        with pytest.raises(ValidationError):
            service.create_renewal_application(recipient, '2025', '1st')

    def test_database_rejects_duplicate_period(self, recipient):
        with pytest.raises(IntegrityError), transaction.atomic():
            make_recipient(recipient.student, recipient.scholarship)


# =============================================================================
# BULK RENEWAL
# =============================================================================

class TestBulkRenew:

    def test_already_renewed_count_as_failures(self, service, scholarship):
        recipients = [make_recipient(make_student(n), scholarship) for n in range(1, 5)]
        service.create_renewal_application(recipients[0], '2024-2025', '2nd')

        result = service.bulk_renew([r.pk for r in recipients], '2024-2025', '2nd')

        assert result.created_count == 3
        assert result.failed == [recipients[0].pk]
        assert 'Already renewed' in result.errors[str(recipients[0].pk)]
        assert ScholarshipRecipient.objects.filter(semester='2nd').count() == 4

    def test_unknown_ids_are_missing(self, service, recipient):
        unknown = uuid.uuid4()

        result = service.bulk_renew([str(recipient.pk), unknown, 'not-a-uuid'], '2024-2025', '2nd')

        assert result.created_count == 1
        assert result.missing == [unknown, 'not-a-uuid']
        assert result.failed_count == 2
        assert result.summary() == {'created': 1, 'failed': 0, 'missing': 2}

    def test_validation_errors_do_not_stop_the_batch(self, service, scholarship):
        recipients = [make_recipient(make_student(n), scholarship) for n in range(1, 3)]

        result = service.bulk_renew([r.pk for r in recipients], 'bad-year', '2nd')

        assert result.created_count == 0
        assert result.failed == [r.pk for r in recipients]

    def test_empty_batch(self, service):
        assert service.bulk_renew([], '2024-2025', '2nd').summary() == {'created': 0, 'failed': 0, 'missing': 0}


# =============================================================================
# REVIEW & HISTORY
# =============================================================================

class TestReview:

    @pytest.fixture
    def renewal(self, service, recipient):
        return service.create_renewal_application(recipient, '2024-2025', '2nd')

    def test_approve(self, service, renewal, django_user_model, clock):
        reviewer = django_user_model.objects.create_user(username='osa', password='x')

        reviewed = service.review_renewal(renewal, approve=True, notes='Complete', reviewer=reviewer)

        assert reviewed.renewal_status == 'Approved'
        assert reviewed.status == 'Active'
        assert reviewed.reviewed_by_id == str(reviewer.pk)
        assert reviewed.review_date == clock.now()

    def test_reject_deactivates(self, service, renewal):
        reviewed = service.review_renewal(renewal, approve=False, notes='GWA below requirement')

        assert reviewed.renewal_status == 'Rejected'
        assert reviewed.status == 'Inactive'
        assert AuditLog.objects.filter(action='scholarship_renewal_rejected').exists()

    def test_cannot_review_twice(self, service, renewal):
        service.review_renewal(renewal, approve=True)

        with pytest.raises(InvalidTransitionError):
            service.review_renewal(renewal, approve=False)

    def test_original_award_cannot_be_reviewed(self, service, recipient):
        with pytest.raises(InvalidTransitionError):
            service.review_renewal(recipient, approve=True)

    def test_history_lists_renewals_only(self, service, renewal, student):
        assert list(service.get_renewal_history(student)) == [renewal]

    def test_get_recipient(self, service, recipient):
        assert service.get_recipient(recipient.pk) == recipient

        with pytest.raises(NotFoundError):
            service.get_recipient(uuid.uuid4())
        with pytest.raises(NotFoundError):
            service.get_recipient('not-a-uuid')


# =============================================================================
# REMINDERS
# =============================================================================

class TestReminders:

    def test_renewal_reminders(self, service, recipient, notifier):
        reminded = service.send_renewal_reminders('2024-2025', '2nd')

        assert reminded == 1
        student_number, subject, message = notifier.student_messages[0]
        assert student_number == recipient.student.student_number
        assert subject == 'Scholarship Renewal Reminder'
        assert '2024-2025 2nd' in message

    def test_no_reminder_after_renewal(self, service, recipient, notifier):
        service.create_renewal_application(recipient, '2024-2025', '2nd')

        assert service.send_renewal_reminders('2024-2025', '2nd') == 0
        assert notifier.student_messages == []

    def test_expiry_reminders_use_portal_window(self, service, recipient, notifier, portal_settings):
        recipient.expiration_date = date(2025, 1, 31)
        recipient.save()
        portal_settings.renewal_reminder_days = 14
        portal_settings.save()

        assert service.send_expiry_reminders() == 0
        assert service.send_expiry_reminders(within_days=30) == 1
        assert notifier.student_messages[0][1] == 'Scholarship Expiring Soon'
        assert 'January 31, 2025' in notifier.student_messages[0][2]
