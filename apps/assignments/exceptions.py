# assignments/exceptions.py

from django.core.exceptions import ObjectDoesNotExist


class AssignmentNotFound(ObjectDoesNotExist):
    """The referenced assignment (or bridged fee) does not exist."""


class ConcurrentModificationError(Exception):
    """
    The assignment was written by someone else after it was read.

    Raised instead of overwriting the other change. Re-read the record
    and submit again.
    """


class ImmutableHistoryError(Exception):
    """History entries are append-only."""
