# assignments/models.py

"""
Assignment Ledger Models

One record per pupil and benefit item, in three variants:
- FeeAssignment: an assignment fee structure
- UniformAssignment: a uniform item, a partial set or the full set
- RequirementAssignment: requirement items delivered in kind or paid for

Every variant shares status, validity and term applicability rules
(AssignmentBase) and an append-only history (AssignmentHistory).

Rows are written through ``commit_changes`` which compares and bumps
``version`` so a stale copy can never overwrite a newer one.
"""

from django.db import models
from django.contrib.contenttypes.fields import GenericForeignKey, GenericRelation
from django.contrib.contenttypes.models import ContentType
from django.core.validators import MinValueValidator
from django.utils import timezone
from decimal import Decimal
import logging

from utils.models import BaseModel
from .exceptions import ConcurrentModificationError, ImmutableHistoryError

logger = logging.getLogger(__name__)


# =============================================================================
# CHOICES
# =============================================================================

STATUS_CHOICES = (
    ('active', 'Active'),
    ('disabled', 'Disabled'),
)

VALIDITY_CHOICES = (
    ('indefinite', 'Indefinite'),
    ('current_term', 'Current Term Only'),
    ('current_year', 'Current Academic Year'),
    ('specific_year', 'Specific Academic Year'),
    ('year_range', 'Academic Year Range'),
    ('specific_terms', 'Specific Terms'),
)

TERM_APPLICABILITY_CHOICES = (
    ('all_terms', 'All Terms'),
    ('specific_terms', 'Specific Terms'),
)

DISABLE_EFFECT_CHOICES = (
    ('from_current_term', 'From Current Term'),
    ('from_next_term', 'From Next Term'),
)

SELECTION_MODE_CHOICES = (
    ('item', 'Single Item'),
    ('partial', 'Partial Set'),
    ('full', 'Full Set'),
)

PAYMENT_STATUS_CHOICES = (
    ('pending', 'Pending'),
    ('partial', 'Partially Paid'),
    ('paid', 'Paid'),
)


# =============================================================================
# ASSIGNMENT BASE
# =============================================================================

class AssignmentBase(BaseModel):
    """
    Common lifecycle fields of every assignment variant.

    ``disabled_in_term`` and ``disable_effect`` together give the cut-off
    after which a disabled assignment stops counting.
    """

    KIND = None

    # -------------------------------------------------------------------------
    # BENEFICIARY
    # -------------------------------------------------------------------------

    pupil = models.ForeignKey(
        'students.Pupil',
        on_delete=models.CASCADE,
        related_name='%(class)ss',
        verbose_name="Pupil"
    )

    # -------------------------------------------------------------------------
    # STATUS
    # -------------------------------------------------------------------------

    status = models.CharField(
        "Status",
        max_length=10,
        choices=STATUS_CHOICES,
        default='active',
        db_index=True
    )
    disable_effect = models.CharField(
        "Disable Effect",
        max_length=20,
        choices=DISABLE_EFFECT_CHOICES,
        blank=True
    )
    disabled_in_term = models.ForeignKey(
        'academics.Term',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name="Disabled In Term"
    )
    disabled_at = models.DateTimeField("Disabled At", null=True, blank=True)

    # -------------------------------------------------------------------------
    # VALIDITY
    # -------------------------------------------------------------------------

    validity_type = models.CharField(
        "Validity",
        max_length=20,
        choices=VALIDITY_CHOICES,
        default='indefinite'
    )
    start_academic_year = models.ForeignKey(
        'academics.AcademicYear',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name="Start Academic Year",
        help_text="The year for 'specific year', the first year of a range"
    )
    end_academic_year = models.ForeignKey(
        'academics.AcademicYear',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name="End Academic Year"
    )
    term_applicability = models.CharField(
        "Term Applicability",
        max_length=20,
        choices=TERM_APPLICABILITY_CHOICES,
        default='all_terms'
    )
    applicable_terms = models.ManyToManyField(
        'academics.Term',
        blank=True,
        related_name='%(class)s_applicable',
        verbose_name="Applicable Terms"
    )

    # -------------------------------------------------------------------------
    # ASSIGNMENT DETAILS
    # -------------------------------------------------------------------------

    assigned_at = models.DateTimeField("Assigned At", default=timezone.now)
    assigned_by = models.CharField("Assigned By", max_length=100, blank=True)
    notes = models.TextField("Notes", blank=True)

    version = models.PositiveIntegerField("Version", default=1)

    history = GenericRelation(
        'assignments.AssignmentHistory',
        content_type_field='content_type',
        object_id_field='object_id',
    )

    class Meta:
        abstract = True

    # -------------------------------------------------------------------------
    # STATE
    # -------------------------------------------------------------------------

    @property
    def is_active(self):
        return self.status == 'active'

    @property
    def reference(self):
        return f"{self.KIND}-{self.pk}"

    def applicable_term_ids(self):
        return {str(term.pk) for term in self.applicable_terms.all()}

    def time_settings_snapshot(self):
        """JSON-ready copy of the validity and term applicability fields."""
        return {
            'validity_type': self.validity_type,
            'start_academic_year': str(self.start_academic_year_id) if self.start_academic_year_id else None,
            'end_academic_year': str(self.end_academic_year_id) if self.end_academic_year_id else None,
            'term_applicability': self.term_applicability,
            'applicable_terms': sorted(self.applicable_term_ids()),
        }

    def has_ledger_activity(self):
        """True once anything has been paid or received against this record."""
        return False

    def get_ordered_history(self):
        return self.history.order_by('sequence')

    # -------------------------------------------------------------------------
    # PERSISTENCE
    # -------------------------------------------------------------------------

    def commit_changes(self, *field_names):
        """
        Write ``field_names`` if the row still carries the version this
        instance was read at, bumping the version.

        Raises:
            ConcurrentModificationError: the row changed since it was read
        """
        expected = self.version
        self.updated_at = timezone.now()
        self.apply_audit_context()

        names = set(field_names) | set(self.AUDIT_UPDATE_FIELDS)
        values = {}
        for name in names:
            field = self._meta.get_field(name)
            values[field.attname] = getattr(self, field.attname)
        values['version'] = expected + 1

        updated = type(self)._default_manager.filter(
            pk=self.pk, version=expected
        ).update(**values)

        if not updated:
            logger.warning(
                f"Concurrent modification of {self.reference}: expected version {expected}"
            )
            raise ConcurrentModificationError(
                f"{self} was changed by someone else. Reload it and try again."
            )

        self.version = expected + 1

    def append_history(self, action, **fields):
        """Append one history entry, numbered with the record's current version."""
        return AssignmentHistory.objects.create(
            content_object=self,
            sequence=self.version,
            action=action,
            **fields
        )


# =============================================================================
# FEE ASSIGNMENT
# =============================================================================

class FeeAssignment(AssignmentBase):
    """An assignment fee structure charged to one pupil"""

    KIND = 'fee'

    fee_structure = models.ForeignKey(
        'fees.FeesStructure',
        on_delete=models.PROTECT,
        related_name='assignments',
        verbose_name="Fee Structure"
    )

    class Meta:
        verbose_name = "Fee Assignment"
        verbose_name_plural = "Fee Assignments"
        ordering = ['-assigned_at']
        constraints = [
            models.UniqueConstraint(
                fields=['pupil', 'fee_structure'],
                name='unique_fee_assignment_per_pupil'
            ),
        ]
        indexes = [
            models.Index(fields=['pupil', 'status']),
        ]

    def __str__(self):
        return f"{self.fee_structure.name} - {self.pupil.get_full_name()}"


# =============================================================================
# UNIFORM ASSIGNMENT
# =============================================================================

class UniformAssignment(AssignmentBase):
    """
    Uniform items assigned to a pupil, with payment and collection tracking.

    Amounts are copied from the catalog at assignment time.
    """

    KIND = 'uniform'

    COLLECTION_STATUS_CHOICES = (
        ('pending', 'Pending'),
        ('partial', 'Partially Collected'),
        ('collected', 'Collected'),
    )

    uniform_items = models.ManyToManyField(
        'uniforms.UniformItem',
        related_name='assignments',
        verbose_name="Uniform Items"
    )
    selection_mode = models.CharField(
        "Selection Mode",
        max_length=10,
        choices=SELECTION_MODE_CHOICES,
        default='item'
    )

    # -------------------------------------------------------------------------
    # AMOUNTS
    # -------------------------------------------------------------------------

    original_amount = models.DecimalField(
        "Original Amount",
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00')
    )
    discount = models.ForeignKey(
        'fees.FeesDiscount',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='uniform_assignments',
        verbose_name="Discount"
    )
    discount_amount = models.DecimalField(
        "Discount Amount",
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00')
    )
    final_amount = models.DecimalField(
        "Final Amount",
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00')
    )
    paid_amount = models.DecimalField(
        "Paid Amount",
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    payment_status = models.CharField(
        "Payment Status",
        max_length=10,
        choices=PAYMENT_STATUS_CHOICES,
        default='pending',
        db_index=True
    )

    collection_status = models.CharField(
        "Collection Status",
        max_length=10,
        choices=COLLECTION_STATUS_CHOICES,
        default='pending'
    )
    collected_items = models.ManyToManyField(
        'uniforms.UniformItem',
        related_name='+',
        blank=True,
        verbose_name="Collected Items"
    )
    collected_at = models.DateTimeField("Collected At", null=True, blank=True)

    class Meta:
        verbose_name = "Uniform Assignment"
        verbose_name_plural = "Uniform Assignments"
        ordering = ['-assigned_at']
        indexes = [
            models.Index(fields=['pupil', 'status']),
            models.Index(fields=['payment_status']),
        ]

    def __str__(self):
        return f"Uniform ({self.get_selection_mode_display()}) - {self.pupil.get_full_name()}"

    @property
    def amount_due(self):
        return self.final_amount

    @property
    def balance(self):
        return max(Decimal('0.00'), self.final_amount - self.paid_amount)

    def has_ledger_activity(self):
        return self.paid_amount > 0 or self.collection_status != 'pending'

    def outstanding_items(self):
        """Assigned uniform items not yet handed over."""
        collected = set(self.collected_items.values_list('pk', flat=True))
        return [item for item in self.uniform_items.all() if item.pk not in collected]


# =============================================================================
# REQUIREMENT ASSIGNMENT
# =============================================================================

class RequirementAssignment(AssignmentBase):
    """
    Requirement items a pupil owes, tracked by quantity and by cash.

    Items handed in by a parent count as payment as well as receipt.
    Items released by the office were paid for there, so they only
    count as receipt.
    """

    KIND = 'requirement'

    requirement_items = models.ManyToManyField(
        'requirements.RequirementItem',
        related_name='assignments',
        verbose_name="Requirement Items"
    )
    selection_mode = models.CharField(
        "Selection Mode",
        max_length=10,
        choices=SELECTION_MODE_CHOICES,
        default='item'
    )

    # -------------------------------------------------------------------------
    # REQUIRED TOTALS
    # -------------------------------------------------------------------------

    total_quantity_required = models.PositiveIntegerField("Total Quantity Required", default=0)
    total_price = models.DecimalField(
        "Total Price",
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00')
    )

    # -------------------------------------------------------------------------
    # RECEIVED
    # -------------------------------------------------------------------------

    quantity_received = models.PositiveIntegerField("Quantity Received", default=0)
    quantity_received_from_parent = models.PositiveIntegerField("Received From Parent", default=0)
    quantity_received_from_office = models.PositiveIntegerField("Received From Office", default=0)
    last_received_at = models.DateTimeField("Last Received At", null=True, blank=True)
    last_received_by = models.CharField("Last Received By", max_length=100, blank=True)

    # -------------------------------------------------------------------------
    # PAID
    # -------------------------------------------------------------------------

    paid_amount = models.DecimalField(
        "Paid Amount",
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    payment_status = models.CharField(
        "Payment Status",
        max_length=10,
        choices=PAYMENT_STATUS_CHOICES,
        default='pending',
        db_index=True
    )

    class Meta:
        verbose_name = "Requirement Assignment"
        verbose_name_plural = "Requirement Assignments"
        ordering = ['-assigned_at']
        indexes = [
            models.Index(fields=['pupil', 'status']),
            models.Index(fields=['payment_status']),
        ]

    def __str__(self):
        return f"Requirements ({self.get_selection_mode_display()}) - {self.pupil.get_full_name()}"

    @property
    def remaining_quantity(self):
        return max(0, self.total_quantity_required - self.quantity_received)

    @property
    def amount_due(self):
        return self.total_price

    @property
    def balance(self):
        return max(Decimal('0.00'), self.total_price - self.paid_amount)

    def has_ledger_activity(self):
        return self.paid_amount > 0 or self.quantity_received > 0


ASSIGNMENT_MODELS = {
    model.KIND: model
    for model in (FeeAssignment, UniformAssignment, RequirementAssignment)
}


# =============================================================================
# ASSIGNMENT HISTORY
# =============================================================================

class AssignmentHistoryQuerySet(models.QuerySet):

    def update(self, **kwargs):
        raise ImmutableHistoryError("Assignment history entries cannot be updated")

    def delete(self):
        raise ImmutableHistoryError("Assignment history entries cannot be deleted")

    def for_record(self, record):
        return self.filter(
            content_type=ContentType.objects.get_for_model(record),
            object_id=record.pk,
        )


class AssignmentHistory(BaseModel):
    """
    Append-only lifecycle log of an assignment.

    ``sequence`` equals the record version the entry was written at, so
    entries of one record are totally ordered and never share a number.
    """

    ACTION_CHOICES = (
        ('assigned', 'Assigned'),
        ('enabled', 'Enabled'),
        ('disabled', 'Disabled'),
        ('time_adjusted', 'Time Settings Adjusted'),
        ('payment', 'Payment'),
        ('payment_and_receipt', 'Payment and Receipt'),
        ('receipt_only', 'Receipt Only'),
        ('payment_reversed', 'Payment Reversed'),
        ('collected', 'Items Collected'),
    )

    # -------------------------------------------------------------------------
    # OWNER
    # -------------------------------------------------------------------------

    content_type = models.ForeignKey(ContentType, on_delete=models.CASCADE, related_name='+')
    object_id = models.UUIDField("Assignment ID", db_index=True)
    content_object = GenericForeignKey('content_type', 'object_id')

    sequence = models.PositiveIntegerField("Sequence")

    # -------------------------------------------------------------------------
    # EVENT
    # -------------------------------------------------------------------------

    occurred_at = models.DateTimeField("Occurred At", default=timezone.now, db_index=True)
    action = models.CharField("Action", max_length=25, choices=ACTION_CHOICES)
    previous_status = models.CharField("Previous Status", max_length=10, blank=True)
    new_status = models.CharField("New Status", max_length=10, blank=True)
    disable_effect = models.CharField(
        "Disable Effect",
        max_length=20,
        choices=DISABLE_EFFECT_CHOICES,
        blank=True
    )
    reason = models.TextField("Reason", blank=True)
    processed_by = models.CharField("Processed By", max_length=100)
    previous_time_settings = models.JSONField("Previous Time Settings", null=True, blank=True)

    # -------------------------------------------------------------------------
    # AMOUNTS AND QUANTITIES
    # -------------------------------------------------------------------------

    amount = models.DecimalField("Amount", max_digits=12, decimal_places=2, null=True, blank=True)
    quantity = models.PositiveIntegerField("Quantity", null=True, blank=True)
    paid_amount_after = models.DecimalField(
        "Paid Amount After",
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True
    )
    quantity_received_after = models.PositiveIntegerField("Quantity Received After", null=True, blank=True)
    payment_status_after = models.CharField("Payment Status After", max_length=10, blank=True)

    # -------------------------------------------------------------------------
    # PERIOD
    # -------------------------------------------------------------------------

    academic_year = models.ForeignKey(
        'academics.AcademicYear',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    term = models.ForeignKey(
        'academics.Term',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )

    objects = AssignmentHistoryQuerySet.as_manager()

    class Meta:
        verbose_name = "Assignment History"
        verbose_name_plural = "Assignment History"
        ordering = ['content_type', 'object_id', 'sequence']
        constraints = [
            models.UniqueConstraint(
                fields=['content_type', 'object_id', 'sequence'],
                name='unique_assignment_history_sequence'
            ),
        ]
        indexes = [
            models.Index(fields=['content_type', 'object_id']),
        ]

    def __str__(self):
        return f"#{self.sequence} {self.get_action_display()} by {self.processed_by}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableHistoryError("Assignment history entries cannot be changed")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableHistoryError("Assignment history entries cannot be deleted")
