# utils/models.py

"""
Base model for the assignment ledger with an audit trail.

Key Features:
- UUID primary keys
- Automatic created/updated timestamps
- User and IP tracking from the thread-local request context
"""

from django.db import models
from django.utils import timezone
import uuid
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# BASE MODEL
# =============================================================================

class BaseModel(models.Model):
    """
    Abstract base model with audit trail fields.

    Features:
    - Automatic user tracking (who created/updated)
    - Real IP address tracking (where operations came from)
    - Thread-local context integration

    The request context is populated by ``utils.middleware.AuditContextMiddleware``
    or explicitly with ``utils.context.RequestContext`` outside of requests.
    """

    # Core identification
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Timestamps
    created_at = models.DateTimeField(
        "Created At",
        db_index=True,
        help_text="When this record was created"
    )
    updated_at = models.DateTimeField(
        "Updated At",
        db_index=True,
        help_text="When this record was last updated"
    )

    # User tracking - CharField so records survive user deletion
    created_by_id = models.CharField(
        "Created By ID",
        max_length=50,
        null=True,
        blank=True,
        db_index=True,
        help_text="ID of user who created this record"
    )
    updated_by_id = models.CharField(
        "Updated By ID",
        max_length=50,
        null=True,
        blank=True,
        db_index=True,
        help_text="ID of user who last updated this record"
    )

    # IP tracking
    created_from_ip = models.GenericIPAddressField(
        "Created From IP",
        null=True,
        blank=True,
        help_text="IP address from which this record was created"
    )
    updated_from_ip = models.GenericIPAddressField(
        "Updated From IP",
        null=True,
        blank=True,
        help_text="IP address from which this record was last updated"
    )

    AUDIT_UPDATE_FIELDS = ('updated_at', 'updated_by_id', 'updated_from_ip')

    class Meta:
        abstract = True
        indexes = [
            models.Index(fields=['created_at']),
            models.Index(fields=['updated_at']),
        ]

    def save(self, *args, **kwargs):
        """
        Override save to:
        1. Set timestamps
        2. Populate audit trail fields (created_by, updated_by, IPs)
        """
        is_new = self._state.adding
        now = timezone.now()

        # =========================================================================
        # STEP 1: SET TIMESTAMPS
        # =========================================================================
        if is_new:
            if not self.created_at:
                self.created_at = now
            if not self.updated_at:
                self.updated_at = now
        else:
            self.updated_at = now

        # =========================================================================
        # STEP 2: POPULATE AUDIT FIELDS FROM REQUEST CONTEXT
        # =========================================================================
        self.apply_audit_context(is_new)

        # update_fields saves must also persist the refreshed audit columns
        update_fields = kwargs.get('update_fields')
        if update_fields is not None:
            kwargs['update_fields'] = set(update_fields) | set(self.AUDIT_UPDATE_FIELDS)

        return super().save(*args, **kwargs)

    def apply_audit_context(self, is_new=False):
        """Copy user and IP from the request context onto the audit fields."""
        from utils.context import get_request_context

        context = get_request_context()

        if context:
            user = context.get('user')
            ip_address = context.get('ip_address')

            if is_new:
                if user and not self.created_by_id:
                    self.created_by_id = str(user.pk)
                if ip_address and not self.created_from_ip:
                    self.created_from_ip = ip_address

            if user:
                self.updated_by_id = str(user.pk)
            if ip_address:
                self.updated_from_ip = ip_address
        elif is_new:
            logger.debug(
                f"No request context available when creating {self.__class__.__name__}. "
                f"Audit fields will not be populated."
            )


# =============================================================================
# CATALOG ITEM BASE - TARGETING RULES
# =============================================================================

class TargetedCatalogItem(BaseModel):
    """
    Abstract catalog entry (fee structure, uniform item, requirement item)
    with the targeting rules deciding which pupils it may be assigned to.
    """

    TARGETING_CHOICES = [
        ('ALL', 'All Classes'),
        ('SPECIFIC', 'Specific Classes'),
    ]

    GENDER_TARGETING_CHOICES = [
        ('ALL', 'All Pupils'),
        ('M', 'Male Only'),
        ('F', 'Female Only'),
    ]

    SECTION_TARGETING_CHOICES = [
        ('ALL', 'All Sections'),
        ('DAY', 'Day Only'),
        ('BOARDING', 'Boarding Only'),
    ]

    class_targeting = models.CharField(
        "Class Targeting",
        max_length=10,
        choices=TARGETING_CHOICES,
        default='ALL'
    )
    applicable_classes = models.ManyToManyField(
        'academics.SchoolClass',
        blank=True,
        related_name='%(app_label)s_%(class)s_items',
        verbose_name="Applicable Classes",
        help_text="Required when class targeting is 'Specific Classes'"
    )
    gender_targeting = models.CharField(
        "Gender Targeting",
        max_length=3,
        choices=GENDER_TARGETING_CHOICES,
        default='ALL'
    )
    section_targeting = models.CharField(
        "Section Targeting",
        max_length=10,
        choices=SECTION_TARGETING_CHOICES,
        default='ALL'
    )

    is_active = models.BooleanField("Is Active", default=True, db_index=True)

    class Meta:
        abstract = True

    def missing_targeting_fields(self):
        """Targeting fields that the chosen rules require but are empty."""
        missing = []
        if self.class_targeting == 'SPECIFIC':
            if not self.pk or not self.applicable_classes.exists():
                missing.append('applicable_classes')
        return missing

    def applies_to_pupil(self, pupil):
        """Check class, gender and section targeting against a pupil."""
        if self.gender_targeting != 'ALL' and pupil.gender != self.gender_targeting:
            return False

        if self.section_targeting != 'ALL' and pupil.section != self.section_targeting:
            return False

        if self.class_targeting == 'SPECIFIC':
            if not pupil.current_class_id:
                return False
            return self.applicable_classes.filter(pk=pupil.current_class_id).exists()

        return True
