# scholarships/models.py

from django.core.validators import MinValueValidator, RegexValidator
from django.db import models
from utils.models import BaseModel

import logging

logger = logging.getLogger(__name__)

academic_year_validator = RegexValidator(
    regex=r'^\d{4}-\d{4}$',
    message="Academic year must look like 2024-2025"
)


# =============================================================================
# SCHOLARSHIP MODEL
# =============================================================================

class Scholarship(BaseModel):
    """Scholarship program offered through Student Affairs"""

    TYPE_CHOICES = (
        ('ACADEMIC', 'Academic'),
        ('ATHLETIC', 'Athletic'),
        ('NEED_BASED', 'Need-Based'),
        ('GOVERNMENT', 'Government'),
        ('PRIVATE', 'Private / Sponsored'),
    )

    name = models.CharField("Scholarship Name", max_length=200)
    code = models.CharField("Code", max_length=30, unique=True)
    scholarship_type = models.CharField("Type", max_length=20, choices=TYPE_CHOICES, default='ACADEMIC')
    provider = models.CharField("Provider", max_length=200, blank=True)
    description = models.TextField("Description", blank=True)
    amount = models.DecimalField(
        "Default Grant Amount",
        max_digits=12,
        decimal_places=2,
        default=0,
        validators=[MinValueValidator(0)]
    )
    is_active = models.BooleanField("Active", default=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


# =============================================================================
# SCHOLARSHIP RECIPIENT MODEL
# =============================================================================

class ScholarshipRecipient(BaseModel):
    """
    A student's grant for one (academic year, semester).

    A renewal is a new row for the next period pointing back at the record it
    was created from through ``previous_recipient``. The unique constraint
    keeps one row per student, scholarship and period.
    """

    SEMESTER_CHOICES = (
        ('1st', '1st Semester'),
        ('2nd', '2nd Semester'),
    )

    STATUS_CHOICES = (
        ('Active', 'Active'),
        ('Inactive', 'Inactive'),
        ('Suspended', 'Suspended'),
        ('Expired', 'Expired'),
        ('Cancelled', 'Cancelled'),
    )

    RENEWAL_STATUS_CHOICES = (
        ('', 'None'),
        ('Pending', 'Pending'),
        ('Approved', 'Approved'),
        ('Rejected', 'Rejected'),
    )

    student = models.ForeignKey(
        'students.Student',
        on_delete=models.CASCADE,
        related_name='scholarships'
    )
    scholarship = models.ForeignKey(
        Scholarship,
        on_delete=models.PROTECT,
        related_name='recipients'
    )

    academic_year = models.CharField("Academic Year", max_length=9, validators=[academic_year_validator])
    semester = models.CharField("Semester", max_length=3, choices=SEMESTER_CHOICES)

    amount = models.DecimalField(
        "Grant Amount",
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(0)]
    )
    status = models.CharField("Status", max_length=10, choices=STATUS_CHOICES, default='Active', db_index=True)
    date_awarded = models.DateField("Date Awarded", null=True, blank=True)
    expiration_date = models.DateField("Expiration Date", null=True, blank=True, db_index=True)

    renewal_status = models.CharField(
        "Renewal Status", max_length=10, choices=RENEWAL_STATUS_CHOICES, blank=True, default=''
    )
    previous_recipient = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='renewals'
    )
    requirements_complete = models.BooleanField("Requirements Complete", default=False)
    remarks = models.TextField("Remarks", blank=True)

    reviewed_by_id = models.CharField("Reviewed By ID", max_length=50, blank=True)
    review_notes = models.TextField("Review Notes", blank=True)
    review_date = models.DateTimeField("Review Date", null=True, blank=True)

    class Meta:
        ordering = ['-academic_year', '-semester', 'student__last_name']
        constraints = [
            models.UniqueConstraint(
                fields=['student', 'scholarship', 'academic_year', 'semester'],
                name='unique_recipient_per_period'
            ),
        ]
        indexes = [
            models.Index(fields=['academic_year', 'semester', 'status']),
        ]

    def __str__(self):
        return f"{self.student} - {self.scholarship} ({self.academic_year} {self.semester})"

    @property
    def period(self):
        return (self.academic_year, self.semester)

    def is_active(self):
        return self.status == 'Active'

    def is_renewal(self):
        return self.previous_recipient_id is not None
