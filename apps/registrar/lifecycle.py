# registrar/lifecycle.py

"""
Document Request Lifecycle

Pure transition table for document requests. Nothing here touches the
database; registrar.services applies the decisions and persists them.

    pending_payment -> paid -> processing -> ready_for_pickup -> released
          |                        |
          |-> payment_expired      |-> rejected
          |-> cancelled

Staff may cancel from any state before release except cancelled itself
(staff_cancel, enumerated per state below).
"""

from dataclasses import dataclass
from decimal import Decimal

from utils.exceptions import InvalidTransitionError

# =============================================================================
# STATUSES
# =============================================================================

PENDING_PAYMENT = 'pending_payment'
PAYMENT_EXPIRED = 'payment_expired'
PAID = 'paid'
PROCESSING = 'processing'
READY_FOR_PICKUP = 'ready_for_pickup'
RELEASED = 'released'
CANCELLED = 'cancelled'
REJECTED = 'rejected'

# Pseudo-status for a removed record
DELETED = 'deleted'

STATUS_CHOICES = (
    (PENDING_PAYMENT, 'Pending Payment'),
    (PAYMENT_EXPIRED, 'Payment Expired'),
    (PAID, 'Paid'),
    (PROCESSING, 'Processing'),
    (READY_FOR_PICKUP, 'Ready for Pickup'),
    (RELEASED, 'Released'),
    (CANCELLED, 'Cancelled'),
    (REJECTED, 'Rejected'),
)

FINAL_STATUSES = (RELEASED, CANCELLED, REJECTED)
ACTIVE_STATUSES = (PENDING_PAYMENT, PAID, PROCESSING, READY_FOR_PICKUP)
DELETABLE_STATUSES = (PENDING_PAYMENT, PAYMENT_EXPIRED, CANCELLED)

# =============================================================================
# ACTIONS
# =============================================================================

CONFIRM_PAYMENT = 'confirm_payment'
BEGIN_PROCESSING = 'begin_processing'
MARK_READY = 'mark_ready'
RELEASE = 'release'
EDIT = 'edit'
CANCEL = 'cancel'
EXPIRE = 'expire'
STAFF_CANCEL = 'staff_cancel'
REJECT = 'reject'
DELETE = 'delete'

TRANSITIONS = {
    (PENDING_PAYMENT, CONFIRM_PAYMENT): PAID,
    (PAID, BEGIN_PROCESSING): PROCESSING,
    (PROCESSING, MARK_READY): READY_FOR_PICKUP,
    (READY_FOR_PICKUP, RELEASE): RELEASED,
    (PENDING_PAYMENT, EDIT): PENDING_PAYMENT,
    (PENDING_PAYMENT, CANCEL): CANCELLED,
    (PENDING_PAYMENT, EXPIRE): PAYMENT_EXPIRED,
    (PROCESSING, REJECT): REJECTED,
}

for _status in (PENDING_PAYMENT, PAYMENT_EXPIRED, PAID, PROCESSING, READY_FOR_PICKUP):
    TRANSITIONS[(_status, STAFF_CANCEL)] = CANCELLED

for _status in DELETABLE_STATUSES:
    TRANSITIONS[(_status, DELETE)] = DELETED

# Actions that count as a status change and notify the student
NOTIFYING_ACTIONS = (
    CONFIRM_PAYMENT, BEGIN_PROCESSING, MARK_READY, RELEASE,
    CANCEL, EXPIRE, STAFF_CANCEL, REJECT,
)


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of evaluating ``action`` against ``current_status``."""

    allowed: bool
    current_status: str
    action: str
    next_status: str = None

    @property
    def error(self):
        if self.allowed:
            return None
        return InvalidTransitionError(self.current_status, self.action)

    def raise_if_denied(self):
        if not self.allowed:
            raise self.error
        return self.next_status


def evaluate_transition(current_status, action):
    """
    Look up ``action`` from ``current_status`` without raising.

    Returns:
        TransitionResult
    """
    next_status = TRANSITIONS.get((current_status, action))
    return TransitionResult(
        allowed=next_status is not None,
        current_status=current_status,
        action=action,
        next_status=next_status,
    )


def next_status(current_status, action):
    """
    Next status for ``action``.

    Raises:
        InvalidTransitionError: If the action is not legal from the current status
    """
    return evaluate_transition(current_status, action).raise_if_denied()


def allowed_actions(current_status):
    return [action for (status, action) in TRANSITIONS if status == current_status]


def is_payment_overdue(status, payment_deadline, now):
    """A pending request whose deadline has passed must expire before anything else."""
    return (
        status == PENDING_PAYMENT
        and payment_deadline is not None
        and now > payment_deadline
    )


def compute_amount(unit_price, quantity):
    if quantity < 1:
        raise ValueError("Quantity must be at least 1")
    return Decimal(unit_price) * quantity
