# fees/utils.py

"""
Fee utility helpers:
- Reference number generation
- Discount arithmetic
"""

from django.db import transaction
from django.db.models import Max
from django.utils import timezone
from decimal import Decimal
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# REFERENCE NUMBER GENERATION
# =============================================================================

def generate_payment_number():
    """
    Generate unique payment number.
    Format: PMT-YYYY-NNNNN (e.g., PMT-2024-00001)

    Returns:
        str: Unique payment number
    """
    from fees.models import Payment

    current_year = timezone.now().year
    prefix = f"PMT-{current_year}-"

    with transaction.atomic():
        queryset = Payment.objects.filter(
            payment_number__startswith=prefix
        ).select_for_update()

        result = queryset.aggregate(max_number=Max('payment_number'))

        if result['max_number']:
            try:
                last_number = int(result['max_number'].split('-')[-1])
                new_number = last_number + 1
            except (ValueError, IndexError):
                new_number = queryset.count() + 1
        else:
            new_number = 1

        return f"{prefix}{new_number:05d}"


# =============================================================================
# DISCOUNT ARITHMETIC
# =============================================================================

def apply_discount_to_amount(amount, discount=None):
    """
    Apply a FeesDiscount to an amount.

    Args:
        amount: Original amount
        discount: FeesDiscount instance or None

    Returns:
        dict: {
            'original_amount': Decimal,
            'discount_amount': Decimal,
            'final_amount': Decimal
        }
    """
    original_amount = Decimal(str(amount))

    if discount is None:
        discount_amt = Decimal('0.00')
    elif discount.discount_type == 'WAIVER':
        discount_amt = original_amount
    elif discount.discount_type == 'PERCENTAGE':
        discount_amt = (original_amount * Decimal(str(discount.discount_value)) / 100).quantize(Decimal('0.01'))
    else:
        discount_amt = Decimal(str(discount.discount_value))

    final_amount = original_amount - discount_amt

    # Ensure final amount is not negative
    if final_amount < 0:
        final_amount = Decimal('0.00')
        discount_amt = original_amount

    return {
        'original_amount': original_amount,
        'discount_amount': discount_amt,
        'final_amount': final_amount
    }
