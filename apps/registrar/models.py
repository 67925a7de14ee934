# registrar/models.py

from django.db import models
from django.core.validators import MinValueValidator
from django.core.serializers.json import DjangoJSONEncoder
from utils.models import BaseModel
from registrar import lifecycle

import logging

logger = logging.getLogger(__name__)


# =============================================================================
# DOCUMENT TYPES
# =============================================================================

class DocumentType(models.TextChoices):
    COE = 'coe', 'Certificate of Enrollment'
    TOR = 'tor', 'Transcript of Records'
    GOOD_MORAL = 'certificate_good_moral', 'Certificate of Good Moral Character'
    HONORABLE_DISMISSAL = 'honorable_dismissal', 'Honorable Dismissal'
    CAV = 'cav', 'Certification, Authentication and Verification'
    DIPLOMA = 'diploma', 'Diploma'
    GRADES = 'grades', 'Certificate of Grades'
    STANDING_ORDER = 'so', 'Special Order'
    FORM_137 = 'form_137', 'Form 137'


# =============================================================================
# DOCUMENT REQUEST MODEL
# =============================================================================

class DocumentRequest(BaseModel):
    """
    A student's request for a registrar document.

    Status changes go through registrar.services.DocumentRequestService,
    which consults registrar.lifecycle; ``amount`` is always derived from
    the processing type and quantity.
    """

    PROCESSING_TYPE_CHOICES = (
        ('regular', 'Regular'),
        ('rush', 'Rush'),
    )

    PAYMENT_METHOD_CHOICES = (
        ('cash', 'Cash'),
        ('digital', 'Digital'),
    )

    ID_TYPE_CHOICES = (
        ('student_id', 'Student ID'),
        ('national_id', 'National ID'),
        ('drivers_license', "Driver's License"),
        ('passport', 'Passport'),
        ('authorization_letter', 'Authorization Letter'),
        ('other', 'Other Government ID'),
    )

    request_number = models.CharField("Request Number", max_length=20, unique=True)
    student = models.ForeignKey(
        'students.Student',
        on_delete=models.PROTECT,
        related_name='document_requests'
    )

    document_type = models.CharField("Document Type", max_length=40, choices=DocumentType.choices)
    quantity = models.PositiveIntegerField("Copies", default=1, validators=[MinValueValidator(1)])
    purpose = models.CharField("Purpose", max_length=255, blank=True)
    processing_type = models.CharField(
        "Processing Type", max_length=10, choices=PROCESSING_TYPE_CHOICES, default='regular'
    )
    amount = models.DecimalField("Amount", max_digits=10, decimal_places=2)
    payment_method = models.CharField(
        "Payment Method", max_length=10, choices=PAYMENT_METHOD_CHOICES, blank=True
    )

    status = models.CharField(
        "Status",
        max_length=20,
        choices=lifecycle.STATUS_CHOICES,
        default=lifecycle.PENDING_PAYMENT,
        db_index=True
    )
    payment_deadline = models.DateTimeField("Payment Deadline", db_index=True)

    # -------------------------------------------------------------------------
    # PROCESSING & RELEASE
    # -------------------------------------------------------------------------

    processed_by_id = models.CharField("Processed By ID", max_length=50, blank=True)
    released_by_id = models.CharField("Released By ID", max_length=50, blank=True)
    released_to = models.CharField("Released To", max_length=255, blank=True)
    released_id_type = models.CharField("ID Type", max_length=30, choices=ID_TYPE_CHOICES, blank=True)
    released_id_number = models.CharField("ID Number", max_length=100, blank=True)
    released_at = models.DateTimeField("Released At", null=True, blank=True)

    rejection_reason = models.TextField("Rejection Reason", blank=True)
    cancellation_reason = models.TextField("Cancellation Reason", blank=True)
    notes = models.TextField("Notes", blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['student', 'status']),
            models.Index(fields=['status', 'payment_deadline']),
        ]

    def __str__(self):
        return f"{self.request_number} - {self.get_document_type_display()}"

    # -------------------------------------------------------------------------
    # HELPER METHODS
    # -------------------------------------------------------------------------

    def is_deletable(self):
        return self.status in lifecycle.DELETABLE_STATUSES

    def is_final(self):
        return self.status in lifecycle.FINAL_STATUSES

    def is_payment_overdue(self, now):
        return lifecycle.is_payment_overdue(self.status, self.payment_deadline, now)

    def get_latest_payment(self):
        return self.payments.order_by('-created_at').first()


# =============================================================================
# PAYMENT MODEL
# =============================================================================

class Payment(BaseModel):
    """
    Payment against a document request.

    Cash payments carry a PRN- reference the cashier confirms; digital
    payments carry the gateway's payment intent id and are confirmed by
    webhook.
    """

    METHOD_CHOICES = (
        ('cash', 'Cash'),
        ('digital', 'Digital'),
    )

    STATUS_CHOICES = (
        ('pending', 'Pending'),
        ('completed', 'Completed'),
        ('failed', 'Failed'),
    )

    document_request = models.ForeignKey(
        DocumentRequest,
        on_delete=models.CASCADE,
        related_name='payments'
    )
    method = models.CharField("Method", max_length=10, choices=METHOD_CHOICES)
    amount = models.DecimalField("Amount", max_digits=10, decimal_places=2)
    status = models.CharField("Status", max_length=10, choices=STATUS_CHOICES, default='pending', db_index=True)

    payment_reference_number = models.CharField(
        "Payment Reference Number", max_length=20, unique=True, null=True, blank=True
    )
    payment_intent_id = models.CharField(
        "Payment Intent ID", max_length=100, unique=True, null=True, blank=True
    )
    gateway_payment_method = models.CharField("Gateway Payment Method", max_length=30, blank=True)

    confirmed_by_id = models.CharField("Confirmed By ID", max_length=50, blank=True)
    paid_at = models.DateTimeField("Paid At", null=True, blank=True)
    failure_reason = models.CharField("Failure Reason", max_length=255, blank=True)
    metadata = models.JSONField("Gateway Metadata", default=dict, blank=True, encoder=DjangoJSONEncoder)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        reference = self.payment_reference_number or self.payment_intent_id or self.pk
        return f"{self.get_method_display()} payment {reference} ({self.get_status_display()})"

    def is_completed(self):
        return self.status == 'completed'


# =============================================================================
# PAYMENT WEBHOOK LOG
# =============================================================================

class PaymentWebhook(BaseModel):
    """Every gateway delivery, processed or not; ``event_id`` makes redelivery a no-op."""

    event_id = models.CharField("Event ID", max_length=100, unique=True)
    event_type = models.CharField("Event Type", max_length=100)
    payload = models.JSONField("Payload", default=dict, encoder=DjangoJSONEncoder)
    processed = models.BooleanField("Processed", default=False)
    processed_at = models.DateTimeField("Processed At", null=True, blank=True)
    error_message = models.TextField("Error", blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.event_type} ({self.event_id})"

    def mark_as_processed(self, when):
        self.processed = True
        self.processed_at = when
        self.error_message = ''
        self.save()

    def mark_as_failed(self, message):
        self.processed = False
        self.error_message = message
        self.save()


# =============================================================================
# NOTIFICATION MODEL
# =============================================================================

class Notification(BaseModel):
    """Record of a message sent (or attempted) to a student."""

    CHANNEL_CHOICES = (
        ('sms', 'SMS'),
        ('email', 'Email'),
    )

    STATUS_CHOICES = (
        ('pending', 'Pending'),
        ('sent', 'Sent'),
        ('failed', 'Failed'),
    )

    document_request = models.ForeignKey(
        DocumentRequest,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='notifications'
    )
    student = models.ForeignKey(
        'students.Student',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='notifications'
    )
    channel = models.CharField("Channel", max_length=10, choices=CHANNEL_CHOICES)
    recipient = models.CharField("Recipient", max_length=255, blank=True)
    subject = models.CharField("Subject", max_length=255, blank=True)
    message = models.TextField("Message")
    status = models.CharField("Status", max_length=10, choices=STATUS_CHOICES, default='pending')
    sent_at = models.DateTimeField("Sent At", null=True, blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.get_channel_display()} to {self.recipient or 'unknown'} ({self.status})"
