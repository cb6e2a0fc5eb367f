# assignments/utils.py

"""
Assignment helpers:
- Money rounding
- Actor attribution
- Payment status derivation
"""

from decimal import Decimal, ROUND_HALF_UP

from utils.context import get_current_user
from .conf import get_setting


def to_money(value):
    """Round an amount to the configured number of decimal places."""
    places = get_setting('AMOUNT_DECIMAL_PLACES')
    exponent = Decimal(1).scaleb(-places)
    return Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP)


def format_amount(value):
    return f"{get_setting('CURRENCY')} {to_money(value):,}"


def resolve_actor(actor=None):
    """
    Name to record as having performed an action.

    Accepts a user, a plain name or nothing; without either the request
    user is used, then the configured default actor.
    """
    if isinstance(actor, str) and actor.strip():
        return actor.strip()

    user = actor if actor is not None else get_current_user()
    if user is not None and getattr(user, 'is_authenticated', False):
        return user.get_full_name() or user.get_username()

    return get_setting('DEFAULT_ACTOR')


def derive_payment_status(paid, amount):
    if paid >= amount:
        return 'paid'
    if paid <= 0:
        return 'pending'
    return 'partial'
