# requirements/models.py

"""
Requirement Catalog Models

Scholastic requirements (reams of paper, brooms, toilet rolls...) that
pupils bring in kind or pay for in cash.
"""

from django.db import models
from django.core.validators import MinValueValidator
from decimal import Decimal

from utils.models import TargetedCatalogItem


class RequirementItem(TargetedCatalogItem):
    """A requirement with a unit price and the quantity each pupil owes"""

    # -------------------------------------------------------------------------
    # BASIC INFORMATION
    # -------------------------------------------------------------------------

    name = models.CharField("Requirement Name", max_length=100)
    code = models.CharField("Code", max_length=50, unique=True, db_index=True)
    description = models.TextField("Description", blank=True)
    unit = models.CharField("Unit", max_length=30, default='pcs')

    # -------------------------------------------------------------------------
    # QUANTITY AND PRICE
    # -------------------------------------------------------------------------

    price = models.DecimalField(
        "Price",
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Cash price covering the full required quantity"
    )
    quantity_required = models.PositiveIntegerField(
        "Quantity Required",
        default=1,
        validators=[MinValueValidator(1)]
    )

    class Meta:
        verbose_name = "Requirement Item"
        verbose_name_plural = "Requirement Items"
        ordering = ['name']

    def __str__(self):
        return f"{self.name} x{self.quantity_required}"

    @property
    def unit_price(self):
        return self.price / self.quantity_required
