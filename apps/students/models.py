# students/models.py

from django.db import models
from utils.models import BaseModel

import logging

logger = logging.getLogger(__name__)


# =============================================================================
# PUPIL MODEL
# =============================================================================

class Pupil(BaseModel):
    """A pupil: the beneficiary that fees, uniforms and requirements are assigned to"""

    # -------------------------------------------------------------------------
    # CHOICE FIELDS
    # -------------------------------------------------------------------------

    GENDER_CHOICES = (
        ('M', 'Male'),
        ('F', 'Female'),
    )

    SECTION_CHOICES = (
        ('DAY', 'Day'),
        ('BOARDING', 'Boarding'),
    )

    STATUS_CHOICES = (
        ('ACTIVE', 'Active'),
        ('INACTIVE', 'Inactive'),
        ('GRADUATED', 'Graduated'),
        ('TRANSFERRED', 'Transferred'),
    )

    # -------------------------------------------------------------------------
    # IDENTIFICATION
    # -------------------------------------------------------------------------

    admission_number = models.CharField("Admission Number", max_length=30, unique=True, db_index=True)
    first_name = models.CharField("First Name", max_length=50)
    middle_name = models.CharField("Other Names", max_length=50, blank=True)
    last_name = models.CharField("Last Name", max_length=50)

    gender = models.CharField("Gender", max_length=1, choices=GENDER_CHOICES)
    section = models.CharField("Section", max_length=10, choices=SECTION_CHOICES, default='DAY')

    # -------------------------------------------------------------------------
    # PLACEMENT
    # -------------------------------------------------------------------------

    current_class = models.ForeignKey(
        'academics.SchoolClass',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='pupils',
        verbose_name="Current Class"
    )

    status = models.CharField("Status", max_length=15, choices=STATUS_CHOICES, default='ACTIVE', db_index=True)

    class Meta:
        verbose_name = "Pupil"
        verbose_name_plural = "Pupils"
        ordering = ['last_name', 'first_name']

    def __str__(self):
        return f"{self.get_full_name()} ({self.admission_number})"

    def get_full_name(self):
        """Get pupil's full name"""
        if self.middle_name:
            return f"{self.first_name} {self.middle_name} {self.last_name}"
        return f"{self.first_name} {self.last_name}"
