# registrar/payments.py

"""
Payment Operations

Cash payments: a PRN- reference is issued to the student and confirmed by
the cashier. Digital payments: a PayMongo payment intent is created and the
gateway's webhook confirms it.

Confirmation is idempotent in both paths: a completed cash reference cannot
be confirmed again, and a repeated "paid" webhook for the same intent is a
no-op. Either way the request moves to ``paid`` exactly once.
"""

from dataclasses import dataclass
from django.conf import settings
from django.db import transaction
import hashlib
import hmac
import logging

from registrar import lifecycle
from registrar.gateway import PayMongoClient
from registrar.models import Payment, PaymentWebhook
from registrar.services import DocumentRequestService
from registrar.utils import create_with_unique_number, generate_payment_reference
from utils.audit import log_activity
from utils.clock import get_clock
from utils.exceptions import InvalidTransitionError, NotFoundError, PaymentGatewayError

logger = logging.getLogger(__name__)

SUCCESS_EVENT_TYPES = ('payment.paid', 'payment_intent.succeeded', 'checkout_session.payment.paid')
FAILURE_EVENT_TYPES = ('payment.failed', 'payment_intent.payment_failed', 'checkout_session.payment.failed')
SUCCESS_STATUSES = ('succeeded', 'paid')
FAILURE_STATUSES = ('failed',)


@dataclass(frozen=True)
class WebhookEvent:
    event_id: str
    event_type: str
    payment_intent_id: str
    status: str
    payment_method: str = ''
    failure_reason: str = ''

    @property
    def is_success(self):
        return self.event_type in SUCCESS_EVENT_TYPES or self.status in SUCCESS_STATUSES

    @property
    def is_failure(self):
        return self.event_type in FAILURE_EVENT_TYPES or self.status in FAILURE_STATUSES


@dataclass(frozen=True)
class WebhookResult:
    """status is one of: processed, duplicate, ignored, failed"""

    status: str
    message: str = ''
    payment: Payment = None

    @property
    def ok(self):
        return self.status != 'failed'


# =============================================================================
# PAYMENT SERVICE
# =============================================================================

class PaymentService:

    def __init__(self, clock=None, notifier=None, gateway=None, request_service=None):
        self.clock = get_clock(clock)
        self.request_service = request_service or DocumentRequestService(clock=self.clock, notifier=notifier)
        self.gateway = gateway if gateway is not None else PayMongoClient()

    # -------------------------------------------------------------------------
    # CASH
    # -------------------------------------------------------------------------

    def create_cash_payment(self, document_request):
        """
        Issue a cash payment reference for a pending request. Returns the
        existing pending cash payment if one was already issued.

        Returns:
            Payment instance

        Raises:
            InvalidTransitionError: Unless the request is pending payment
            DuplicateResourceError: If no unique reference could be generated
        """
        self.request_service.refresh_expiry(document_request)

        with transaction.atomic():
            document_request = self.request_service.get_request(document_request.pk, for_update=True)
            if document_request.status != lifecycle.PENDING_PAYMENT:
                raise InvalidTransitionError(document_request.status, 'pay for')

            existing = document_request.payments.filter(method='cash', status='pending').first()
            if existing is not None:
                return existing

            def create(reference):
                return Payment.objects.create(
                    document_request=document_request,
                    method='cash',
                    amount=document_request.amount,
                    payment_reference_number=reference,
                    status='pending',
                )

            today = self.clock.today()
            payment = create_with_unique_number(create, lambda: generate_payment_reference(today))

            document_request.payment_method = 'cash'
            document_request.save()

            log_activity(
                action='payment_created',
                target_object=payment,
                description=(
                    f"Cash payment reference {payment.payment_reference_number} issued for "
                    f"{document_request.request_number}"
                ),
                metadata={
                    'request_number': document_request.request_number,
                    'amount': payment.amount,
                    'payment_method': 'cash',
                },
            )
            logger.info(f"Issued {payment.payment_reference_number} for {document_request.request_number}")
            return payment

    def confirm_cash_payment(self, payment_reference, staff_user=None):
        """
        Cashier confirms a cash payment; the request moves to paid.

        Raises:
            NotFoundError: Unknown reference
            InvalidTransitionError: Reference already confirmed, or the
                request can no longer be paid (e.g. its deadline passed)
        """
        payment = Payment.objects.filter(payment_reference_number=payment_reference).first()
        if payment is None:
            raise NotFoundError(f"Payment reference {payment_reference} not found")

        self.request_service.refresh_expiry(payment.document_request_id)

        with transaction.atomic():
            payment = Payment.objects.select_for_update().get(pk=payment.pk)

            if payment.status == 'completed':
                logger.warning(f"Payment reference {payment_reference} confirmed twice")
                raise InvalidTransitionError(
                    payment.status, 'confirm',
                    message=f"Payment reference {payment_reference} has already been confirmed.",
                )
            if payment.status != 'pending':
                raise InvalidTransitionError(payment.status, 'confirm')

            document_request = self.request_service.mark_paid(
                payment.document_request_id, 'cash', user=staff_user
            )

            payment.status = 'completed'
            payment.confirmed_by_id = str(staff_user.pk) if staff_user else ''
            payment.paid_at = self.clock.now()
            payment.save()

            log_activity(
                action='payment_confirmed',
                target_object=payment,
                user=staff_user,
                description=f"Cash payment confirmed for document request {document_request.request_number}",
                old_values={'status': 'pending'},
                new_values={'status': 'completed'},
                metadata={
                    'request_number': document_request.request_number,
                    'amount': payment.amount,
                    'payment_reference_number': payment_reference,
                },
            )
            logger.info(f"Cash payment {payment_reference} confirmed")
            return payment

    # -------------------------------------------------------------------------
    # DIGITAL
    # -------------------------------------------------------------------------

    def create_payment_intent(self, document_request):
        """
        Start a digital payment.

        Returns:
            dict: {'payment': Payment, 'client_key': str, 'payment_intent_id': str}

        Raises:
            InvalidTransitionError: Unless the request is pending payment
            PaymentGatewayError: If PayMongo rejects the call
        """
        document_request = self.request_service.refresh_expiry(document_request)
        if document_request.status != lifecycle.PENDING_PAYMENT:
            raise InvalidTransitionError(document_request.status, 'pay for')

        intent = self.gateway.create_payment_intent(
            amount=document_request.amount,
            description=f"Document Request: {document_request.request_number}",
            metadata={
                'request_id': document_request.pk,
                'request_number': document_request.request_number,
                'student_number': document_request.student.student_number,
            },
        )

        with transaction.atomic():
            payment = Payment.objects.create(
                document_request=document_request,
                method='digital',
                amount=document_request.amount,
                payment_intent_id=intent['id'],
                status='pending',
                metadata=intent,
            )
            document_request.payment_method = 'digital'
            document_request.save()

            log_activity(
                action='payment_created',
                target_object=payment,
                description=f"Digital payment initiated for document request {document_request.request_number}",
                metadata={
                    'request_number': document_request.request_number,
                    'amount': payment.amount,
                    'payment_intent_id': payment.payment_intent_id,
                },
            )

        return {
            'payment': payment,
            'client_key': intent.get('attributes', {}).get('client_key', ''),
            'payment_intent_id': payment.payment_intent_id,
        }

    # -------------------------------------------------------------------------
    # WEBHOOKS
    # -------------------------------------------------------------------------

    @staticmethod
    def parse_webhook(payload):
        """
        Normalise a webhook payload.

        Accepts the flat form ``{eventType, paymentIntentId, status}`` or a
        PayMongo event ``{data: {id, attributes: {type, data: {...}}}}``.

        Raises:
            ValueError: If no event type or payment intent can be found
        """
        if not isinstance(payload, dict):
            raise ValueError("Webhook payload must be a JSON object")

        if 'eventType' in payload:
            event_type = payload.get('eventType') or ''
            intent_id = payload.get('paymentIntentId') or ''
            status = (payload.get('status') or '').lower()
            # Same intent and outcome means same event
            event_id = payload.get('eventId') or f"{event_type}:{intent_id}:{status}"
            payment_method = payload.get('paymentMethod') or ''
            failure_reason = payload.get('failureReason') or ''
        else:
            event = payload.get('data') or {}
            attributes = event.get('attributes') or {}
            event_type = attributes.get('type') or ''
            resource = attributes.get('data') or {}
            resource_attributes = resource.get('attributes') or {}

            intent_id = (
                resource_attributes.get('payment_intent_id')
                or (resource_attributes.get('payment_intent') or {}).get('id')
                or (resource.get('id') if str(resource.get('id', '')).startswith('pi_') else '')
                or ''
            )
            status = (resource_attributes.get('status') or '').lower()
            event_id = event.get('id') or f"{event_type}:{intent_id}:{status}"
            payment_method = (resource_attributes.get('source') or {}).get('type', '')
            failure_reason = (
                resource_attributes.get('failed_message')
                or resource_attributes.get('failure_reason')
                or ''
            )

        if not event_type or not intent_id:
            raise ValueError("Invalid webhook payload: missing event type or payment intent")

        return WebhookEvent(
            event_id=event_id,
            event_type=event_type,
            payment_intent_id=intent_id,
            status=status,
            payment_method=payment_method,
            failure_reason=failure_reason,
        )

    def handle_webhook(self, payload):
        """
        Apply a gateway event. Every delivery is logged as a PaymentWebhook;
        a delivery whose event was already processed changes nothing.

        Returns:
            WebhookResult
        """
        try:
            event = self.parse_webhook(payload)
        except ValueError as e:
            logger.warning(f"Rejected webhook: {e}")
            return WebhookResult('failed', str(e))

        with transaction.atomic():
            webhook, created = PaymentWebhook.objects.select_for_update().get_or_create(
                event_id=event.event_id,
                defaults={'event_type': event.event_type, 'payload': payload},
            )
        if not created and webhook.processed:
            logger.info(f"Duplicate webhook {event.event_id} ignored")
            return WebhookResult('duplicate', 'Event already processed')

        try:
            result = self._apply_webhook_event(event)
        except (InvalidTransitionError, NotFoundError) as e:
            message = e.messages[0] if hasattr(e, 'messages') else str(e)
            logger.error(f"Webhook {event.event_id} for {event.payment_intent_id} not applied: {message}")
            webhook.mark_as_failed(message)
            return WebhookResult('failed', message)

        webhook.mark_as_processed(self.clock.now())
        return result

    def _apply_webhook_event(self, event):
        request_id = (
            Payment.objects.filter(payment_intent_id=event.payment_intent_id)
            .values_list('document_request_id', flat=True)
            .first()
        )
        if request_id is not None and event.is_success:
            self.request_service.refresh_expiry(request_id)

        with transaction.atomic():
            payment = (
                Payment.objects.select_for_update()
                .filter(payment_intent_id=event.payment_intent_id)
                .first()
            )
            if payment is None:
                raise NotFoundError(f"Payment not found for intent {event.payment_intent_id}")

            if event.is_success:
                if payment.status == 'completed':
                    logger.info(f"Payment intent {event.payment_intent_id} already completed")
                    return WebhookResult('duplicate', 'Payment already completed', payment)

                document_request = self.request_service.mark_paid(payment.document_request_id, 'digital')

                payment.status = 'completed'
                payment.paid_at = self.clock.now()
                payment.gateway_payment_method = event.payment_method or payment.gateway_payment_method
                payment.save()

                log_activity(
                    action='payment_completed',
                    target_object=payment,
                    description=f"Digital payment completed for document request {document_request.request_number}",
                    old_values={'status': 'pending'},
                    new_values={'status': 'completed'},
                    metadata={
                        'request_number': document_request.request_number,
                        'payment_intent_id': event.payment_intent_id,
                        'event_id': event.event_id,
                    },
                )
                logger.info(f"Payment intent {event.payment_intent_id} completed")
                return WebhookResult('processed', 'Payment completed', payment)

            if event.is_failure:
                if payment.status != 'pending':
                    return WebhookResult('ignored', f"Payment is {payment.status}", payment)

                payment.status = 'failed'
                payment.failure_reason = event.failure_reason[:255]
                payment.save()

                log_activity(
                    action='payment_failed',
                    target_object=payment,
                    description=f"Digital payment failed for intent {event.payment_intent_id}",
                    old_values={'status': 'pending'},
                    new_values={'status': 'failed'},
                    metadata={'failure_reason': event.failure_reason or 'Unknown'},
                )
                logger.info(f"Payment intent {event.payment_intent_id} failed")
                return WebhookResult('processed', 'Payment failed', payment)

        logger.info(f"Unhandled webhook event type {event.event_type}")
        return WebhookResult('ignored', f"Unhandled event type {event.event_type}", payment)

    @staticmethod
    def verify_webhook_signature(raw_body, signature_header, secret=None):
        """
        Check the HMAC-SHA256 signature of a webhook body.

        Accepts PayMongo's ``t=<timestamp>,te=<sig>,li=<sig>`` header (signed
        over ``"<timestamp>.<body>"``) or a bare hex digest of the body.
        Without a configured secret, deliveries are only accepted in DEBUG.
        """
        if secret is None:
            secret = getattr(settings, 'PAYMONGO_WEBHOOK_SECRET', '')
        if not secret:
            if settings.DEBUG:
                logger.warning("Webhook secret not configured - skipping signature verification")
                return True
            logger.error("Webhook secret not configured - rejecting delivery")
            return False

        if not signature_header:
            return False

        if isinstance(raw_body, str):
            raw_body = raw_body.encode('utf-8')
        key = secret.encode('utf-8')

        if '=' in signature_header:
            fields = dict(
                part.split('=', 1) for part in signature_header.split(',') if '=' in part
            )
            timestamp = fields.get('t', '')
            expected = hmac.new(key, timestamp.encode('utf-8') + b'.' + raw_body, hashlib.sha256).hexdigest()
            candidates = [fields.get('te', ''), fields.get('li', '')]
        else:
            expected = hmac.new(key, raw_body, hashlib.sha256).hexdigest()
            candidates = [signature_header.strip()]

        valid = any(candidate and hmac.compare_digest(expected, candidate) for candidate in candidates)
        if not valid:
            logger.warning("Webhook signature verification failed")
        return valid
