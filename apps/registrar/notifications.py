# registrar/notifications.py

"""
Student & Staff Notifications

SMS goes through the Semaphore HTTP API (httpx); email through
django.core.mail. Sending never raises: failures are logged and reported
as False / 0 so the state change that triggered them stands.
"""

from django.conf import settings
from django.core.mail import send_mail, send_mass_mail
import httpx
import logging

from core.models import PortalSettings
from registrar import lifecycle
from registrar.models import Notification
from utils.clock import get_clock

logger = logging.getLogger(__name__)

PORTAL_NAME = 'Campus DRS'

# Subject and SMS/email body per status a request moves into
STATUS_MESSAGES = {
    lifecycle.PENDING_PAYMENT: (
        'Document Request Submitted',
        "Your document request {number} has been submitted. "
        "Please complete payment of PHP {amount} before {deadline} to avoid expiry.",
    ),
    lifecycle.PAID: (
        'Payment Confirmed',
        "Payment confirmed for your document request {number}. Your request is queued for processing.",
    ),
    lifecycle.PROCESSING: (
        'Request Being Processed',
        "Your document request {number} is now being processed by the Registrar's Office.",
    ),
    lifecycle.READY_FOR_PICKUP: (
        'Document Ready for Pickup',
        "Your document request {number} is ready for pickup at the Registrar's Office. "
        "Please bring a valid ID for verification.",
    ),
    lifecycle.RELEASED: (
        'Document Released',
        "Your document request {number} has been released to {released_to}.",
    ),
    lifecycle.CANCELLED: (
        'Request Cancelled',
        "Your document request {number} has been cancelled.",
    ),
    lifecycle.PAYMENT_EXPIRED: (
        'Payment Deadline Passed',
        "The payment deadline for your document request {number} has passed and the request has expired.",
    ),
    lifecycle.REJECTED: (
        'Request Rejected',
        "Your document request {number} was rejected: {reason}",
    ),
}


# =============================================================================
# NOTIFICATION SERVICE
# =============================================================================

class NotificationService:
    """
    Outbound SMS/email for the portal.

    Pass ``http_client`` (an httpx.Client) to route SMS through a custom
    transport; by default a short-lived client is opened per message.
    """

    def __init__(self, http_client=None, clock=None):
        self.http_client = http_client
        self.clock = get_clock(clock)
        self.timeout = getattr(settings, 'INTEGRATION_HTTP_TIMEOUT', 10)

    # -------------------------------------------------------------------------
    # CHANNELS
    # -------------------------------------------------------------------------

    def send_sms(self, destination, text):
        """
        Send an SMS through Semaphore.

        Returns:
            bool: True if the gateway accepted the message
        """
        api_key = getattr(settings, 'SEMAPHORE_API_KEY', '')
        if not api_key or not destination:
            logger.warning(
                f"SMS not sent to {destination or '<none>'}: "
                f"{'missing API key' if not api_key else 'missing phone number'}"
            )
            return False

        if not PortalSettings.get_instance().enable_sms:
            logger.info(f"SMS disabled in portal settings, skipped message to {destination}")
            return False

        data = {
            'apikey': api_key,
            'number': destination,
            'message': text,
            'sendername': getattr(settings, 'SEMAPHORE_SENDER_NAME', 'CAMPUS-DRS'),
        }

        try:
            response = self._post(settings.SEMAPHORE_API_URL, data=data)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"SMS sending to {destination} failed: {e}", exc_info=True)
            return False

        # Semaphore reports validation errors as a 200 keyed by the offending field
        if isinstance(body, dict) and ('apikey' in body or 'number' in body or 'message' in body):
            logger.error(f"SMS gateway rejected message to {destination}: {body}")
            return False

        logger.info(f"SMS sent to {destination}")
        return True

    def send_email(self, destination, subject, body):
        """
        Returns:
            bool: True if the message was handed to the mail backend
        """
        if not destination:
            logger.warning(f"Email '{subject}' not sent: missing address")
            return False

        if not PortalSettings.get_instance().enable_email:
            logger.info(f"Email disabled in portal settings, skipped '{subject}' to {destination}")
            return False

        try:
            sent = send_mail(
                subject,
                body,
                settings.DEFAULT_FROM_EMAIL,
                [destination],
                fail_silently=False,
            )
        except Exception as e:
            logger.error(f"Email '{subject}' to {destination} failed: {e}", exc_info=True)
            return False

        if sent:
            logger.info(f"Email '{subject}' sent to {destination}")
        return bool(sent)

    def send_bulk_email(self, destinations, subject, body):
        """
        Send the same message to every address, one message each.

        Returns:
            int: Number of messages sent
        """
        recipients = [address for address in dict.fromkeys(destinations) if address]
        if not recipients:
            return 0

        if not PortalSettings.get_instance().enable_email:
            logger.info(f"Email disabled in portal settings, skipped bulk '{subject}'")
            return 0

        messages = [
            (subject, body, settings.DEFAULT_FROM_EMAIL, [address])
            for address in recipients
        ]

        try:
            sent = send_mass_mail(messages, fail_silently=False)
        except Exception as e:
            logger.error(f"Bulk email '{subject}' failed: {e}", exc_info=True)
            return 0

        logger.info(f"Bulk email '{subject}' sent to {sent} recipient(s)")
        return sent

    def _post(self, url, **kwargs):
        if self.http_client is not None:
            return self.http_client.post(url, **kwargs)
        with httpx.Client(timeout=self.timeout) as client:
            return client.post(url, **kwargs)

    # -------------------------------------------------------------------------
    # STUDENT MESSAGES
    # -------------------------------------------------------------------------

    def notify_student(self, student, subject, message, document_request=None):
        """
        Send ``message`` to the student by SMS and email and record both
        attempts as Notification rows.

        Returns:
            dict: {'sms': bool, 'email': bool}
        """
        full_subject = f"{subject} - {PORTAL_NAME}"
        results = {}

        for channel, destination, send in (
            ('sms', student.phone_number, lambda: self.send_sms(student.phone_number, message)),
            ('email', student.email, lambda: self.send_email(student.email, full_subject, message)),
        ):
            sent = send()
            results[channel] = sent
            try:
                Notification.objects.create(
                    document_request=document_request,
                    student=student,
                    channel=channel,
                    recipient=destination or '',
                    subject=full_subject if channel == 'email' else '',
                    message=message,
                    status='sent' if sent else 'failed',
                    sent_at=self.clock.now() if sent else None,
                )
            except Exception as e:
                logger.error(f"Could not record {channel} notification for {student}: {e}", exc_info=True)

        return results

    def notify_status_change(self, document_request, status=None):
        """
        Tell the student which status their request moved to.

        ``status`` is the status at the time of the transition; it defaults
        to the request's current status.
        """
        status = status or document_request.status
        subject, template = STATUS_MESSAGES.get(
            status,
            ('Request Updated', "Your document request {number} is now {status}."),
        )
        message = template.format(
            number=document_request.request_number,
            amount=document_request.amount,
            deadline=(
                f"{document_request.payment_deadline:%b %d, %Y %I:%M %p}"
                if document_request.payment_deadline else ''
            ),
            released_to=document_request.released_to or 'the authorized recipient',
            reason=document_request.rejection_reason or 'no reason given',
            status=dict(lifecycle.STATUS_CHOICES).get(status, status),
        )
        return self.notify_student(
            document_request.student, subject, message, document_request=document_request
        )

    # -------------------------------------------------------------------------
    # STAFF MESSAGES
    # -------------------------------------------------------------------------

    def notify_staff(self, subject, message):
        staff_emails = getattr(settings, 'REGISTRAR_STAFF_EMAILS', [])
        if not staff_emails:
            logger.info(f"No registrar staff emails configured, skipped '{subject}'")
            return 0
        return self.send_bulk_email(staff_emails, f"{subject} - {PORTAL_NAME}", message)

    def notify_staff_new_request(self, document_request):
        return self.notify_staff(
            'New Document Request',
            f"{document_request.student.get_full_name()} ({document_request.student.student_number}) "
            f"requested {document_request.quantity} x {document_request.get_document_type_display()} "
            f"({document_request.get_processing_type_display()}), request {document_request.request_number}.",
        )

    def notify_staff_payment_confirmed(self, document_request):
        return self.notify_staff(
            'Payment Confirmed',
            f"Payment of PHP {document_request.amount} for request {document_request.request_number} "
            f"was confirmed. The request is ready to be processed.",
        )
