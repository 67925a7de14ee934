"""
Campus Portal - Test Configuration and Fixtures
"""
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from core.models import PortalSettings
from registrar.models import DocumentType
from registrar.services import DocumentRequestService
from scholarships.models import Scholarship, ScholarshipRecipient
from students.models import Student
from utils.clock import FixedClock

MANILA = ZoneInfo('Asia/Manila')


class RecordingNotifier:
    """Stands in for NotificationService and remembers every call."""

    def __init__(self, fail=False):
        self.fail = fail
        self.status_changes = []
        self.staff_events = []
        self.student_messages = []

    def notify_status_change(self, document_request, status=None):
        if self.fail:
            raise RuntimeError("SMS gateway down")
        self.status_changes.append((document_request.request_number, status or document_request.status))
        return {'sms': True, 'email': True}

    def notify_staff_new_request(self, document_request):
        self.staff_events.append(('new_request', document_request.request_number))
        return 1

    def notify_staff_payment_confirmed(self, document_request):
        self.staff_events.append(('payment_confirmed', document_request.request_number))
        return 1

    def notify_student(self, student, subject, message, document_request=None):
        self.student_messages.append((student.student_number, subject, message))
        return {'sms': True, 'email': True}


@pytest.fixture(autouse=True)
def portal_test_settings(settings):
    settings.EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'
    settings.SEMAPHORE_API_KEY = 'test-semaphore-key'
    settings.SEMAPHORE_API_URL = 'https://sms.test/api/v4/messages'
    settings.PAYMONGO_SECRET_KEY = 'sk_test_123'
    settings.PAYMONGO_API_URL = 'https://paymongo.test/v1'
    settings.PAYMONGO_WEBHOOK_SECRET = 'whsk_test_secret'
    settings.REGISTRAR_STAFF_EMAILS = ['registrar@campus.test']
    settings.DEBUG = False
    return settings


@pytest.fixture
def clock():
    """Monday, January 6 2025, 09:00 Manila time."""
    return FixedClock(datetime(2025, 1, 6, 9, 0, tzinfo=MANILA))


@pytest.fixture
def portal_settings(db):
    return PortalSettings.get_instance()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def student(db):
    return Student.objects.create(
        student_number='2021-00123',
        first_name='Maria',
        last_name='Santos',
        email='maria.santos@campus.test',
        phone_number='09171234567',
        course='BS Computer Science',
        year_level='3',
    )


@pytest.fixture
def other_student(db):
    return Student.objects.create(
        student_number='2022-00456',
        first_name='Jose',
        last_name='Reyes',
        email='jose.reyes@campus.test',
        phone_number='09179876543',
    )


@pytest.fixture
def request_service(clock, notifier, portal_settings):
    return DocumentRequestService(clock=clock, notifier=notifier)


@pytest.fixture
def document_request(request_service, student):
    return request_service.create_request(student, DocumentType.TOR, quantity=2)


@pytest.fixture
def scholarship(db):
    return Scholarship.objects.create(name='Dean\'s List Grant', code='DLG', amount='10000.00')


@pytest.fixture
def recipient(student, scholarship):
    return ScholarshipRecipient.objects.create(
        student=student,
        scholarship=scholarship,
        academic_year='2024-2025',
        semester='1st',
        amount='10000.00',
        status='Active',
        requirements_complete=True,
    )
