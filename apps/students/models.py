# students/models.py

from django.conf import settings
from django.db import models
from utils.models import BaseModel

import logging

logger = logging.getLogger(__name__)


# =============================================================================
# STUDENT MODEL
# =============================================================================

class Student(BaseModel):
    """Student record referenced by document requests and scholarships"""

    YEAR_LEVEL_CHOICES = (
        ('1', '1st Year'),
        ('2', '2nd Year'),
        ('3', '3rd Year'),
        ('4', '4th Year'),
        ('5', '5th Year'),
    )

    STATUS_CHOICES = (
        ('ACTIVE', 'Active'),
        ('GRADUATED', 'Graduated'),
        ('TRANSFERRED', 'Transferred'),
        ('WITHDRAWN', 'Withdrawn'),
    )

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='student_profile'
    )

    student_number = models.CharField("Student Number", max_length=30, unique=True)
    first_name = models.CharField("First Name", max_length=100)
    middle_name = models.CharField("Middle Name", max_length=100, blank=True)
    last_name = models.CharField("Last Name", max_length=100)

    email = models.EmailField("Email", blank=True)
    phone_number = models.CharField("Mobile Number", max_length=20, blank=True)

    course = models.CharField("Course / Program", max_length=150, blank=True)
    year_level = models.CharField("Year Level", max_length=2, choices=YEAR_LEVEL_CHOICES, blank=True)
    enrollment_status = models.CharField(
        "Enrollment Status", max_length=20, choices=STATUS_CHOICES, default='ACTIVE'
    )

    class Meta:
        ordering = ['last_name', 'first_name']

    def __str__(self):
        return f"{self.get_full_name()} ({self.student_number})"

    @property
    def full_name(self):
        return self.get_full_name()

    def get_full_name(self):
        """Get student's full name"""
        if self.middle_name:
            return f"{self.first_name} {self.middle_name} {self.last_name}"
        return f"{self.first_name} {self.last_name}"
