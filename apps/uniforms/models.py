# uniforms/models.py

"""
Uniform Catalog Models

Uniform items that can be assigned to pupils, individually, as a
partial selection or as a full set. Assignment, payment and collection
tracking live in the assignments app.

All user tracking handled automatically by BaseModel
"""

from django.db import models
from django.core.validators import MinValueValidator
from decimal import Decimal
import logging

from utils.models import TargetedCatalogItem

logger = logging.getLogger(__name__)


# =============================================================================
# UNIFORM ITEM MODEL
# =============================================================================

class UniformItem(TargetedCatalogItem):
    """Uniform item available for assignment"""

    ITEM_TYPE_CHOICES = [
        ('UNIFORM', 'School Uniform'),
        ('SPORTS', 'Sports Uniform'),
        ('PE', 'PE Kit'),
        ('ACCESSORY', 'Accessory'),
        ('SHOES', 'Shoes'),
        ('BAG', 'School Bag'),
        ('OTHER', 'Other'),
    ]

    # -------------------------------------------------------------------------
    # BASIC INFORMATION
    # -------------------------------------------------------------------------

    name = models.CharField("Item Name", max_length=100)
    code = models.CharField("Item Code", max_length=50, unique=True, db_index=True)
    description = models.TextField("Description", blank=True)

    item_type = models.CharField(
        "Item Type",
        max_length=20,
        choices=ITEM_TYPE_CHOICES,
        default='UNIFORM',
        db_index=True
    )

    # -------------------------------------------------------------------------
    # PRICING
    # -------------------------------------------------------------------------

    price = models.DecimalField(
        "Price",
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Selling price per item"
    )

    class Meta:
        verbose_name = "Uniform Item"
        verbose_name_plural = "Uniform Items"
        ordering = ['item_type', 'name']
        indexes = [
            models.Index(fields=['item_type', 'is_active']),
        ]

    def __str__(self):
        return f"{self.name} ({self.code})"
