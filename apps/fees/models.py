# fees/models.py

"""
Fee Catalog and Payment Models

- Fee structures that can be assigned to individual pupils
- Discounts applied when a benefit is assigned
- Payments recorded against assigned uniforms and requirements

All user tracking handled automatically by BaseModel
"""

from django.db import models
from django.contrib.contenttypes.fields import GenericForeignKey
from django.contrib.contenttypes.models import ContentType
from django.core.validators import MinValueValidator
from django.core.exceptions import ValidationError
from django.utils import timezone
from decimal import Decimal
import logging

from utils.models import BaseModel, TargetedCatalogItem

logger = logging.getLogger(__name__)


# =============================================================================
# FEE STRUCTURE MODELS
# =============================================================================

class FeesStructure(TargetedCatalogItem):
    """A fee definition that can be assigned to pupils"""

    CATEGORY_CHOICES = [
        ('TUITION', 'Tuition'),
        ('BOARDING', 'Boarding'),
        ('TRANSPORT', 'Transport'),
        ('MEALS', 'Meals'),
        ('ACTIVITY', 'Activity'),
        ('DISCOUNT', 'Discount'),
        ('OTHER', 'Other'),
    ]

    # -------------------------------------------------------------------------
    # BASIC INFORMATION
    # -------------------------------------------------------------------------

    name = models.CharField("Fee Name", max_length=100)
    code = models.CharField("Fee Code", max_length=30, unique=True, db_index=True)
    description = models.TextField("Description", blank=True)

    category = models.CharField(
        "Category",
        max_length=15,
        choices=CATEGORY_CHOICES,
        default='OTHER',
        db_index=True
    )

    amount = models.DecimalField(
        "Amount",
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )

    # -------------------------------------------------------------------------
    # ASSIGNMENT BEHAVIOUR
    # -------------------------------------------------------------------------

    is_assignment_fee = models.BooleanField(
        "Is Assignment Fee",
        default=True,
        help_text="Assignment fees are charged only to pupils they are explicitly assigned to"
    )
    is_recurring = models.BooleanField("Is Recurring", default=True)

    # -------------------------------------------------------------------------
    # META CLASS
    # -------------------------------------------------------------------------

    class Meta:
        verbose_name = "Fee Structure"
        verbose_name_plural = "Fee Structures"
        ordering = ['category', 'name']
        indexes = [
            models.Index(fields=['category', 'is_active']),
        ]

    def __str__(self):
        return f"{self.name} ({self.code})"

    @property
    def is_assignable(self):
        return self.is_active and (self.is_assignment_fee or self.category == 'DISCOUNT')


# =============================================================================
# DISCOUNT MODELS
# =============================================================================

class FeesDiscount(BaseModel):
    """Discount that can be applied when a uniform set is assigned"""

    DISCOUNT_TYPES = (
        ('PERCENTAGE', 'Percentage'),
        ('FIXED', 'Fixed Amount'),
        ('WAIVER', 'Complete Waiver'),
    )

    # -------------------------------------------------------------------------
    # BASIC INFORMATION
    # -------------------------------------------------------------------------

    name = models.CharField("Discount Name", max_length=50)
    code = models.CharField("Discount Code", max_length=20, unique=True, db_index=True)
    discount_type = models.CharField("Discount Type", max_length=10, choices=DISCOUNT_TYPES)
    discount_value = models.DecimalField(
        "Discount Value",
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    description = models.TextField("Description", blank=True)

    # -------------------------------------------------------------------------
    # STATUS
    # -------------------------------------------------------------------------

    is_active = models.BooleanField("Active", default=True, db_index=True)

    class Meta:
        verbose_name = "Fee Discount"
        verbose_name_plural = "Fee Discounts"
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.code})"

    def clean(self):
        super().clean()
        if self.discount_type == 'PERCENTAGE' and not (0 <= self.discount_value <= 100):
            raise ValidationError({'discount_value': "Discount percentage must be between 0 and 100"})


# =============================================================================
# PAYMENT MODEL
# =============================================================================

class Payment(BaseModel):
    """
    Payment received against an assigned uniform or requirement.

    ``tracking_record`` points back at the assignment the money was
    applied to, so receipts can always be traced to what they paid for.
    """

    PAYMENT_STATUS_CHOICES = [
        ('COMPLETED', 'Completed'),
        ('REVERSED', 'Reversed'),
    ]

    # -------------------------------------------------------------------------
    # IDENTIFICATION
    # -------------------------------------------------------------------------

    payment_number = models.CharField("Payment Number", max_length=50, unique=True, db_index=True)
    pupil = models.ForeignKey(
        'students.Pupil',
        verbose_name="Pupil",
        on_delete=models.CASCADE,
        related_name='payments'
    )

    # -------------------------------------------------------------------------
    # PAYMENT DETAILS
    # -------------------------------------------------------------------------

    amount = models.DecimalField(
        "Amount",
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    payment_date = models.DateField("Payment Date", default=timezone.localdate, db_index=True)
    reference_number = models.CharField("Reference Number", max_length=100, blank=True, db_index=True)

    # -------------------------------------------------------------------------
    # ACADEMIC CONTEXT
    # -------------------------------------------------------------------------

    academic_year = models.ForeignKey(
        'academics.AcademicYear',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='payments'
    )
    term = models.ForeignKey(
        'academics.Term',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='payments'
    )

    # -------------------------------------------------------------------------
    # SOURCE TRACKING RECORD
    # -------------------------------------------------------------------------

    tracking_content_type = models.ForeignKey(
        ContentType,
        on_delete=models.PROTECT,
        related_name='+'
    )
    tracking_object_id = models.UUIDField("Tracking Record ID", db_index=True)
    tracking_record = GenericForeignKey('tracking_content_type', 'tracking_object_id')

    fee_reference = models.CharField(
        "Fee Reference",
        max_length=60,
        db_index=True,
        help_text="Identifier of the fee line this payment was made against"
    )

    # -------------------------------------------------------------------------
    # PROCESSING
    # -------------------------------------------------------------------------

    received_by = models.CharField("Received By", max_length=100, blank=True)
    status = models.CharField(
        "Status",
        max_length=10,
        choices=PAYMENT_STATUS_CHOICES,
        default='COMPLETED',
        db_index=True
    )
    notes = models.TextField("Notes", blank=True)

    # -------------------------------------------------------------------------
    # REVERSAL
    # -------------------------------------------------------------------------

    reversed_at = models.DateTimeField("Reversed At", null=True, blank=True)
    reversed_by = models.CharField("Reversed By", max_length=100, blank=True)
    reversal_reason = models.TextField("Reversal Reason", blank=True)

    class Meta:
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        ordering = ['-payment_date', '-created_at']
        indexes = [
            models.Index(fields=['tracking_content_type', 'tracking_object_id']),
            models.Index(fields=['pupil', 'payment_date']),
        ]

    def __str__(self):
        return f"{self.payment_number} - {self.amount}"

    @property
    def is_reversed(self):
        return self.status == 'REVERSED'
