# registrar/utils.py

"""
Registrar Utility Functions

Contains:
- Request number generation (REQ-YYYYMMDD-NNNN)
- Payment reference generation (PRN-YYYYMMDD-NNNN)
- Bounded create-with-unique-number retry
"""

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models.functions import Length
import logging

from utils.exceptions import DuplicateResourceError

logger = logging.getLogger(__name__)


# =============================================================================
# REFERENCE NUMBER GENERATION
# =============================================================================

def _next_daily_number(queryset, field_name, prefix):
    """
    Next sequential number for ``prefix`` (e.g. "REQ-20250106-").

    Numbers restart at 0001 every day. The suffix is zero-padded to four
    digits and grows past 9999, so the latest number is the longest one,
    then the greatest of that length.
    """
    latest = (
        queryset.filter(**{f"{field_name}__startswith": prefix})
        .order_by(Length(field_name).desc(), f"-{field_name}")
        .values_list(field_name, flat=True)
        .first()
    )

    last_number = 0
    if latest:
        try:
            last_number = int(latest.split('-')[-1])
        except (ValueError, IndexError):
            logger.warning(f"Unparseable {field_name} {latest}, restarting sequence")

    return f"{prefix}{last_number + 1:04d}"


def generate_request_number(day):
    """
    Generate the next request number for ``day``.

    Returns:
        str: e.g. REQ-20250106-0007
    """
    from registrar.models import DocumentRequest

    return _next_daily_number(
        DocumentRequest.objects.all(), 'request_number', f"REQ-{day:%Y%m%d}-"
    )


def generate_payment_reference(day):
    """
    Generate the next cash payment reference for ``day``.

    Returns:
        str: e.g. PRN-20250106-0003
    """
    from registrar.models import Payment

    return _next_daily_number(
        Payment.objects.all(), 'payment_reference_number', f"PRN-{day:%Y%m%d}-"
    )


def create_with_unique_number(create, generate, max_attempts=None):
    """
    Call ``create(number)`` with freshly generated numbers until the insert
    does not collide with the unique column.

    Each attempt runs in its own savepoint so a collision does not poison
    the surrounding transaction.

    Args:
        create: callable(number) -> model instance
        generate: callable() -> candidate number
        max_attempts: defaults to settings.REFERENCE_NUMBER_MAX_ATTEMPTS

    Raises:
        DuplicateResourceError: If every attempt collided
    """
    if max_attempts is None:
        max_attempts = getattr(settings, 'REFERENCE_NUMBER_MAX_ATTEMPTS', 10)

    for attempt in range(1, max_attempts + 1):
        number = generate()
        try:
            with transaction.atomic():
                return create(number)
        except IntegrityError:
            logger.warning(f"Reference number {number} collided (attempt {attempt}/{max_attempts})")

    raise DuplicateResourceError(
        f"Could not generate a unique reference number after {max_attempts} attempts"
    )
