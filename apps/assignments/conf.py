# assignments/conf.py

"""
Settings for the assignments app, read from ``settings.ASSIGNMENTS``:

    ASSIGNMENTS = {
        'CURRENCY': 'UGX',
        'AMOUNT_DECIMAL_PLACES': 2,
        'DEFAULT_ACTOR': 'System Admin',
    }
"""

from django.conf import settings

DEFAULTS = {
    'CURRENCY': 'UGX',
    'AMOUNT_DECIMAL_PLACES': 2,
    'DEFAULT_ACTOR': 'System Admin',
}


def get_setting(name):
    overrides = getattr(settings, 'ASSIGNMENTS', None) or {}
    if name in overrides:
        return overrides[name]
    return DEFAULTS[name]
