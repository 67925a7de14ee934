# core/models.py

from decimal import Decimal
from django.db import models
from django.core.validators import MinValueValidator
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# PORTAL SETTINGS
# =============================================================================

class PortalSettings(models.Model):
    """
    Operational policy for the registrar and student affairs offices.
    Singleton pattern - always stored at pk=1.

    Secrets (gateway keys, SMS credentials) stay in Django settings; this
    model holds the values registrar staff are allowed to change at runtime.
    """

    # -------------------------------------------------------------------------
    # DOCUMENT REQUESTS
    # -------------------------------------------------------------------------

    payment_window_hours = models.PositiveIntegerField(
        "Payment Window (hours)",
        default=48,
        validators=[MinValueValidator(1)],
        help_text="Hours a student has to pay before the request expires"
    )
    daily_request_limit = models.PositiveIntegerField(
        "Daily Request Limit",
        default=5,
        help_text="Maximum document requests a student may submit per day (0 = unlimited)"
    )
    regular_price = models.DecimalField(
        "Regular Processing Price",
        max_digits=10,
        decimal_places=2,
        default=Decimal('50.00'),
        validators=[MinValueValidator(Decimal('0'))]
    )
    rush_price = models.DecimalField(
        "Rush Processing Price",
        max_digits=10,
        decimal_places=2,
        default=Decimal('150.00'),
        validators=[MinValueValidator(Decimal('0'))]
    )

    # -------------------------------------------------------------------------
    # SCHOLARSHIPS
    # -------------------------------------------------------------------------

    renewal_reminder_days = models.PositiveIntegerField(
        "Renewal Reminder Window (days)",
        default=30,
        help_text="Remind scholars whose grant expires within this many days"
    )

    # -------------------------------------------------------------------------
    # NOTIFICATIONS
    # -------------------------------------------------------------------------

    enable_sms = models.BooleanField("Enable SMS Notifications", default=True)
    enable_email = models.BooleanField("Enable Email Notifications", default=True)

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Portal Settings"
        verbose_name_plural = "Portal Settings"

    def __str__(self):
        return "Portal Settings"

    def save(self, *args, **kwargs):
        self.pk = 1
        super().save(*args, **kwargs)

    @classmethod
    def get_instance(cls):
        """Get or create the singleton instance of PortalSettings."""
        instance, created = cls.objects.get_or_create(pk=1)
        if created:
            logger.info("Created default portal settings")
        return instance

    def get_unit_price(self, processing_type):
        """Unit price for 'regular' or 'rush' processing."""
        if processing_type == 'rush':
            return self.rush_price
        return self.regular_price
