# registrar/services.py

"""
Document Request Operations

Creation, editing and every status change of a document request. Each
public method:

1. Expires the request first if its payment deadline has passed (lazy
   expiry, committed on its own)
2. Locks the request row
3. Checks the action against registrar.lifecycle
4. Saves, audits, and queues exactly one student notification for after commit

Notifications run after the transaction commits and never undo a
transition; see registrar.notifications.
"""

from datetime import timedelta
from django.core.exceptions import ValidationError
from django.db import transaction
import logging

from core.models import PortalSettings
from registrar import lifecycle
from registrar.models import DocumentRequest
from registrar.notifications import NotificationService
from registrar.utils import create_with_unique_number, generate_request_number
from utils.audit import log_activity
from utils.clock import get_clock
from utils.exceptions import DailyLimitExceededError, NotFoundError

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('document_type', 'quantity', 'purpose', 'processing_type', 'notes')


# =============================================================================
# DOCUMENT REQUEST SERVICE
# =============================================================================

class DocumentRequestService:
    """
    Lifecycle operations on DocumentRequest.

    Args:
        clock: utils.clock clock; defaults to SystemClock
        notifier: NotificationService-compatible sender
    """

    def __init__(self, clock=None, notifier=None):
        self.clock = get_clock(clock)
        self.notifier = notifier if notifier is not None else NotificationService(clock=self.clock)

    # -------------------------------------------------------------------------
    # LOOKUPS
    # -------------------------------------------------------------------------

    @staticmethod
    def get_request(request_id, for_update=False):
        queryset = DocumentRequest.objects.select_related('student')
        if for_update:
            queryset = queryset.select_for_update()
        try:
            return queryset.get(pk=request_id)
        except (DocumentRequest.DoesNotExist, ValidationError, ValueError):
            raise NotFoundError(f"Document request {request_id} not found")

    def _lock(self, document_request):
        """Re-read the row under lock; accepts an instance or a primary key."""
        request_id = getattr(document_request, 'pk', document_request)
        return self.get_request(request_id, for_update=True)

    def get_today_request_count(self, student):
        start = self.clock.now().replace(hour=0, minute=0, second=0, microsecond=0)
        return DocumentRequest.objects.filter(
            student=student,
            created_at__gte=start,
            created_at__lt=start + timedelta(days=1),
        ).count()

    @staticmethod
    def _compute_amount(portal_settings, processing_type, quantity):
        try:
            return lifecycle.compute_amount(portal_settings.get_unit_price(processing_type), int(quantity))
        except (TypeError, ValueError):
            raise ValidationError({'quantity': "Quantity must be a whole number of at least 1"})

    def get_remaining_daily_requests(self, student):
        """Requests the student may still submit today; None when unlimited."""
        limit = PortalSettings.get_instance().daily_request_limit
        if not limit:
            return None
        return max(0, limit - self.get_today_request_count(student))

    # -------------------------------------------------------------------------
    # CREATE / EDIT / DELETE
    # -------------------------------------------------------------------------

    @transaction.atomic
    def create_request(self, student, document_type, quantity=1, processing_type='regular',
                       purpose='', notes=''):
        """
        Submit a new document request.

        The request starts in pending_payment with
        payment_deadline = now + payment window (48h by default) and
        amount = unit price(processing_type) x quantity.

        Returns:
            DocumentRequest instance

        Raises:
            DailyLimitExceededError: If the student already hit today's limit
            ValidationError: If the fields are invalid

        Example:
            document_request = DocumentRequestService().create_request(
                student, DocumentType.TOR, quantity=2, processing_type='rush',
            )
        """
        portal_settings = PortalSettings.get_instance()

        limit = portal_settings.daily_request_limit
        if limit and self.get_today_request_count(student) >= limit:
            logger.warning(f"Daily request limit reached for {student.student_number}")
            raise DailyLimitExceededError(limit)

        now = self.clock.now()
        amount = self._compute_amount(portal_settings, processing_type, quantity)

        def create(number):
            document_request = DocumentRequest(
                request_number=number,
                student=student,
                document_type=document_type,
                quantity=quantity,
                processing_type=processing_type,
                purpose=purpose,
                notes=notes,
                amount=amount,
                status=lifecycle.PENDING_PAYMENT,
                payment_deadline=now + timedelta(hours=portal_settings.payment_window_hours),
                created_at=now,
                updated_at=now,
            )
            document_request.full_clean(exclude=['request_number'])
            document_request.save()
            return document_request

        document_request = create_with_unique_number(
            create, lambda: generate_request_number(now.date())
        )

        log_activity(
            action='document_request_created',
            target_object=document_request,
            description=f"Document request {document_request.request_number} submitted",
            new_values={
                'status': document_request.status,
                'amount': document_request.amount,
                'payment_deadline': document_request.payment_deadline,
            },
            metadata={'document_type': document_type, 'processing_type': processing_type},
        )
        logger.info(
            f"Created document request {document_request.request_number} "
            f"for {student.student_number} (PHP {amount})"
        )

        self._notify_after_commit(document_request, staff_event='new_request')
        return document_request

    def update_request(self, document_request, changes):
        """
        Edit a pending_payment request; the amount is recomputed.

        Raises:
            InvalidTransitionError: If the request is no longer pending payment
        """
        self.refresh_expiry(document_request)
        with transaction.atomic():
            return self._apply_edit(document_request, changes)

    def _apply_edit(self, document_request, changes):
        document_request = self._lock(document_request)
        lifecycle.next_status(document_request.status, lifecycle.EDIT)

        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        old_values = {field: getattr(document_request, field) for field in EDITABLE_FIELDS}
        old_values['amount'] = document_request.amount

        for field, value in changes.items():
            setattr(document_request, field, value)

        document_request.amount = self._compute_amount(
            PortalSettings.get_instance(), document_request.processing_type, document_request.quantity
        )
        document_request.full_clean()
        document_request.save()

        new_values = {field: getattr(document_request, field) for field in EDITABLE_FIELDS}
        new_values['amount'] = document_request.amount
        log_activity(
            action='document_request_updated',
            target_object=document_request,
            description=f"Document request {document_request.request_number} edited",
            old_values=old_values,
            new_values=new_values,
        )
        return document_request

    def delete_request(self, document_request):
        """
        Remove a request that is pending payment, expired or cancelled.

        Raises:
            InvalidTransitionError: From any other status
        """
        self.refresh_expiry(document_request)
        with transaction.atomic():
            self._apply_delete(document_request)

    def _apply_delete(self, document_request):
        document_request = self._lock(document_request)
        lifecycle.next_status(document_request.status, lifecycle.DELETE)

        request_number = document_request.request_number
        log_activity(
            action='document_request_deleted',
            target_object=document_request,
            description=f"Document request {request_number} deleted",
            old_values={'status': document_request.status},
        )
        document_request.delete()
        logger.info(f"Deleted document request {request_number}")

    # -------------------------------------------------------------------------
    # STATUS TRANSITIONS
    # -------------------------------------------------------------------------

    def cancel_request(self, document_request, reason=''):
        """Student (or staff) cancels an unpaid request."""
        return self._transition(document_request, lifecycle.CANCEL, cancellation_reason=reason)

    def staff_cancel(self, document_request, reason, staff_user=None):
        """Registrar override: cancel from any pre-release status."""
        if not (reason or '').strip():
            raise ValidationError("A reason is required to cancel a request on the student's behalf")
        return self._transition(
            document_request, lifecycle.STAFF_CANCEL,
            user=staff_user, cancellation_reason=reason,
        )

    def begin_processing(self, document_request, staff_user=None):
        return self._transition(
            document_request, lifecycle.BEGIN_PROCESSING,
            user=staff_user, processed_by_id=str(staff_user.pk) if staff_user else '',
        )

    def mark_ready(self, document_request, staff_user=None):
        return self._transition(document_request, lifecycle.MARK_READY, user=staff_user)

    def reject(self, document_request, reason, staff_user=None):
        if not (reason or '').strip():
            raise ValidationError("A rejection reason is required")
        return self._transition(
            document_request, lifecycle.REJECT, user=staff_user, rejection_reason=reason,
        )

    def release(self, document_request, released_to, id_type, id_number, staff_user=None):
        """
        Hand the document over, capturing who received it and which ID they showed.

        Raises:
            ValidationError: If any of the recipient details are missing
            InvalidTransitionError: Unless the request is ready for pickup
        """
        missing = [
            label for label, value in (
                ('recipient name', released_to),
                ('ID type', id_type),
                ('ID number', id_number),
            ) if not (value or '').strip()
        ]
        if missing:
            raise ValidationError(f"Release requires {', '.join(missing)}")

        return self._transition(
            document_request, lifecycle.RELEASE,
            user=staff_user,
            released_to=released_to.strip(),
            released_id_type=id_type,
            released_id_number=id_number.strip(),
            released_by_id=str(staff_user.pk) if staff_user else '',
            released_at=self.clock.now(),
        )

    def mark_paid(self, document_request, payment_method, user=None):
        """
        pending_payment -> paid. Called by registrar.payments once a payment
        resolves to this request; must run inside the caller's transaction.
        """
        return self._transition(
            document_request, lifecycle.CONFIRM_PAYMENT,
            user=user, payment_method=payment_method,
        )

    def _transition(self, document_request, action, user=None, **field_values):
        # Expiry commits on its own so a rejected action cannot roll it back
        self.refresh_expiry(document_request)
        with transaction.atomic():
            return self._apply_transition(document_request, action, user, field_values)

    def _apply_transition(self, document_request, action, user, field_values):
        document_request = self._lock(document_request)

        result = lifecycle.evaluate_transition(document_request.status, action)
        if not result.allowed:
            logger.warning(
                f"Rejected {action} on {document_request.request_number} "
                f"(status {document_request.status})"
            )
            raise result.error

        old_status = document_request.status
        document_request.status = result.next_status
        for field, value in field_values.items():
            setattr(document_request, field, value)
        reason = field_values.get('cancellation_reason') or field_values.get('rejection_reason')
        if reason:
            document_request.set_change_reason(reason)
        document_request.save()

        log_activity(
            action=f"document_request_{action}",
            target_object=document_request,
            user=user,
            description=(
                f"Document request {document_request.request_number}: "
                f"{old_status} -> {document_request.status}"
            ),
            old_values={'status': old_status},
            new_values={'status': document_request.status},
        )
        logger.info(
            f"{document_request.request_number}: {old_status} -> {document_request.status} ({action})"
        )

        self._notify_after_commit(
            document_request,
            staff_event='payment_confirmed' if action == lifecycle.CONFIRM_PAYMENT else None,
        )
        return document_request

    # -------------------------------------------------------------------------
    # PAYMENT DEADLINE
    # -------------------------------------------------------------------------

    def _expire_if_overdue(self, document_request):
        """
        Flip an overdue pending_payment request (already locked) to
        payment_expired. Returns True if it expired now.
        """
        if not document_request.is_payment_overdue(self.clock.now()):
            return False

        document_request.status = lifecycle.next_status(document_request.status, lifecycle.EXPIRE)
        document_request.save()

        log_activity(
            action='document_request_expire',
            target_object=document_request,
            description=f"Payment deadline passed for {document_request.request_number}",
            old_values={'status': lifecycle.PENDING_PAYMENT},
            new_values={'status': lifecycle.PAYMENT_EXPIRED},
        )
        logger.info(f"{document_request.request_number}: payment deadline passed, expired")
        self._notify_after_commit(document_request)
        return True

    @transaction.atomic
    def refresh_expiry(self, document_request):
        """Apply the lazy deadline check and return the current request."""
        document_request = self._lock(document_request)
        self._expire_if_overdue(document_request)
        return document_request

    def expire_overdue_requests(self):
        """
        Sweep every overdue pending_payment request to payment_expired.

        Returns:
            int: Number of requests expired
        """
        overdue_ids = list(
            DocumentRequest.objects.filter(
                status=lifecycle.PENDING_PAYMENT,
                payment_deadline__lt=self.clock.now(),
            ).values_list('pk', flat=True)
        )

        expired = 0
        for request_id in overdue_ids:
            with transaction.atomic():
                document_request = self.get_request(request_id, for_update=True)
                if self._expire_if_overdue(document_request):
                    expired += 1

        logger.info(f"Expired {expired} overdue document request(s)")
        return expired

    # -------------------------------------------------------------------------
    # NOTIFICATIONS
    # -------------------------------------------------------------------------

    def _notify_after_commit(self, document_request, staff_event=None):
        # Status is captured now; the row may move again before commit.
        request_id = document_request.pk
        status = document_request.status
        transaction.on_commit(lambda: self._send_notifications(request_id, status, staff_event))

    def _send_notifications(self, request_id, status, staff_event=None):
        try:
            document_request = DocumentRequest.objects.select_related('student').filter(pk=request_id).first()
            if document_request is None:
                logger.debug(f"Document request {request_id} removed before notification")
                return
            self.notifier.notify_status_change(document_request, status=status)
            if staff_event == 'new_request':
                self.notifier.notify_staff_new_request(document_request)
            elif staff_event == 'payment_confirmed':
                self.notifier.notify_staff_payment_confirmed(document_request)
        except Exception as e:
            logger.error(f"Notification for document request {request_id} failed: {e}", exc_info=True)
