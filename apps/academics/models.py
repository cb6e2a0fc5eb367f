# academics/models.py

from django.db import models
from django.core.exceptions import ValidationError
from utils.models import BaseModel
import re
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# ACADEMIC YEAR MODEL
# =============================================================================

class AcademicYear(BaseModel):
    """
    Academic year grouping the terms a school operates in.

    Years are ordered by start date. Assignment validity ranges
    ("2024 to 2026") are resolved against that ordering, never by
    comparing names.
    """

    name = models.CharField(
        "Academic Year",
        max_length=20,
        unique=True,
        help_text="E.g., '2024', '2024-2025', '2024/2025'"
    )

    start_date = models.DateField("Start Date", db_index=True)
    end_date = models.DateField("End Date", db_index=True)

    is_current = models.BooleanField(
        "Is Current Year",
        default=False,
        db_index=True,
        help_text="Whether this is the year currently in session"
    )
    is_active = models.BooleanField("Is Active", default=True, db_index=True)

    class Meta:
        verbose_name = "Academic Year"
        verbose_name_plural = "Academic Years"
        ordering = ['start_date']

    def __str__(self):
        return self.name

    def clean(self):
        super().clean()
        errors = {}

        if self.start_date and self.end_date and self.start_date >= self.end_date:
            errors['end_date'] = 'End date must be after start date'

        if self.name and not re.match(r'^(20\d{2})([\/-](20\d{2}))?$', self.name):
            errors['name'] = 'Year name must be in format "YYYY", "YYYY-YYYY" or "YYYY/YYYY"'

        if errors:
            raise ValidationError(errors)

    def save(self, *args, **kwargs):
        # Ensure only one current year
        if self.is_current:
            AcademicYear.objects.filter(is_current=True).exclude(pk=self.pk).update(is_current=False)
        super().save(*args, **kwargs)


# =============================================================================
# TERM MODEL
# =============================================================================

class Term(BaseModel):
    """A term within an academic year (Term 1, Term 2, ...)."""

    academic_year = models.ForeignKey(
        AcademicYear,
        on_delete=models.CASCADE,
        related_name='terms',
        verbose_name="Academic Year"
    )

    term_number = models.PositiveSmallIntegerField(
        "Term Number",
        help_text="Position of this term within the year (1, 2, 3)",
        db_index=True
    )
    name = models.CharField(
        "Term Name",
        max_length=50,
        blank=True,
        help_text="Leave blank to auto-generate (e.g. 'Term 1')"
    )

    start_date = models.DateField("Start Date", db_index=True)
    end_date = models.DateField("End Date", db_index=True)

    is_current = models.BooleanField(
        "Is Current Term",
        default=False,
        db_index=True
    )

    class Meta:
        verbose_name = "Term"
        verbose_name_plural = "Terms"
        ordering = ['academic_year__start_date', 'term_number']
        constraints = [
            models.UniqueConstraint(
                fields=['academic_year', 'term_number'],
                name='unique_term_number_per_year'
            )
        ]

    def __str__(self):
        return f"{self.name} ({self.academic_year.name})"

    def clean(self):
        super().clean()
        errors = {}

        if self.start_date and self.end_date and self.start_date >= self.end_date:
            errors['end_date'] = 'End date must be after start date'

        if self.academic_year_id and self.start_date and self.end_date:
            year = self.academic_year
            if self.start_date < year.start_date or self.end_date > year.end_date:
                errors['start_date'] = 'Term dates must fall within the academic year'

        if errors:
            raise ValidationError(errors)

    def save(self, *args, **kwargs):
        if not self.name:
            self.name = f"Term {self.term_number}"

        if self.is_current:
            Term.objects.filter(is_current=True).exclude(pk=self.pk).update(is_current=False)

        super().save(*args, **kwargs)


# =============================================================================
# CLASS MODEL
# =============================================================================

class SchoolClass(BaseModel):
    """A class (stream) pupils are enrolled in, used for catalog targeting."""

    name = models.CharField("Class Name", max_length=50)
    code = models.CharField("Class Code", max_length=20, unique=True, db_index=True)
    level = models.PositiveSmallIntegerField("Level", default=1, db_index=True)
    is_active = models.BooleanField("Is Active", default=True, db_index=True)

    class Meta:
        verbose_name = "Class"
        verbose_name_plural = "Classes"
        ordering = ['level', 'name']

    def __str__(self):
        return f"{self.name} ({self.code})"
