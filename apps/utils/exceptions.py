# utils/exceptions.py

"""
Typed errors shared by the portal services.

Lifecycle and duplicate errors subclass Django's ValidationError so views and
forms surface them the same way as any other rejected input.
"""

from django.core.exceptions import ObjectDoesNotExist, ValidationError


class RuleParseError(ValueError):
    """A recurrence rule could not be parsed."""

    def __init__(self, message, rule=None):
        super().__init__(message)
        self.rule = rule


class InvalidTransitionError(ValidationError):
    """The requested action is not legal from the record's current status."""

    def __init__(self, current_status, action, message=None):
        self.current_status = current_status
        self.action = action
        super().__init__(
            message or f"Cannot {action.replace('_', ' ')} a request that is {current_status.replace('_', ' ')}.",
            code='invalid_transition',
        )


class DuplicateResourceError(ValidationError):
    """A record that must be unique already exists."""

    def __init__(self, message):
        super().__init__(message, code='duplicate')


class DailyLimitExceededError(ValidationError):

    def __init__(self, limit):
        self.limit = limit
        super().__init__(
            f"Daily request limit of {limit} reached. Please try again tomorrow.",
            code='daily_limit',
        )


class NotFoundError(ObjectDoesNotExist):
    """Referenced request, payment or recipient does not exist."""


class UnsupportedDocumentTypeError(ValueError):

    def __init__(self, document_type):
        self.document_type = document_type
        super().__init__(f"Unknown document type: {document_type}")


class PaymentGatewayError(Exception):
    """The payment gateway rejected a call or could not be reached."""
