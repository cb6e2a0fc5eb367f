# assignments/validity.py

"""
Assignment Validity

Decides whether an assignment counts toward an academic period:
- Validity descriptor (which years)
- Term applicability (which terms within those years)
- Status window (a disabled assignment keeps counting up to its cut-off)

The current year and term come in through a ``PeriodContext``; ids that
no longer resolve in the calendar make an assignment not apply instead
of raising.
"""

from dataclasses import dataclass, field
from django.core.exceptions import ValidationError
import logging

from academics.services import AcademicCalendar, period_key

logger = logging.getLogger(__name__)

VALIDITY_TYPES = (
    'indefinite', 'current_term', 'current_year',
    'specific_year', 'year_range', 'specific_terms',
)
TERM_APPLICABILITY_TYPES = ('all_terms', 'specific_terms')


# =============================================================================
# TIME SETTINGS
# =============================================================================

@dataclass(frozen=True)
class TimeSettings:
    """Validity descriptor plus term applicability, as chosen by the user."""

    validity_type: str = 'indefinite'
    start_academic_year: object = None
    end_academic_year: object = None
    term_applicability: str = 'all_terms'
    applicable_terms: tuple = field(default_factory=tuple)

    @classmethod
    def coerce(cls, value):
        """Accept ``None``, a mapping or an existing ``TimeSettings``."""
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        return cls(
            validity_type=value.get('validity_type') or 'indefinite',
            start_academic_year=value.get('start_academic_year'),
            end_academic_year=value.get('end_academic_year'),
            term_applicability=value.get('term_applicability') or 'all_terms',
            applicable_terms=tuple(value.get('applicable_terms') or ()),
        )

    @property
    def needs_terms(self):
        return 'specific_terms' in (self.validity_type, self.term_applicability)

    def validate(self):
        """
        Check that each descriptor carries the ids it needs.

        Raises:
            ValidationError: with one message per offending field
        """
        errors = {}

        if self.validity_type not in VALIDITY_TYPES:
            errors['validity_type'] = f"Unknown validity type '{self.validity_type}'"
        if self.term_applicability not in TERM_APPLICABILITY_TYPES:
            errors['term_applicability'] = f"Unknown term applicability '{self.term_applicability}'"

        if self.validity_type in ('specific_year', 'year_range') and not self.start_academic_year:
            errors['start_academic_year'] = "Select an academic year"
        if self.validity_type == 'year_range' and not self.end_academic_year:
            errors['end_academic_year'] = "Select the last academic year of the range"
        if self.needs_terms and not self.applicable_terms:
            errors['applicable_terms'] = "Select at least one term"

        if errors:
            raise ValidationError(errors)


# =============================================================================
# EVALUATION
# =============================================================================

def _resolve_period(year_id, term_id, calendar, context):
    if year_id is None and term_id is None and context is not None:
        year_id, term_id = context.current_year_id, context.current_term_id

    if year_id is None and term_id is not None:
        year = calendar.year_of_term(term_id)
        year_id = year.pk if year else None

    return period_key(year_id), period_key(term_id)


def _query_terms(year_id, term_id, calendar):
    """Terms a query covers: the one asked for, or every term of the year."""
    if term_id is not None:
        return [term_id]
    return [period_key(t) for t in calendar.terms_for_year(year_id)]


def validity_applies(record, year_id, term_id, calendar, context):
    validity = record.validity_type

    if calendar.get_year(year_id) is None:
        return False

    if validity == 'indefinite':
        return True

    if validity == 'current_term':
        current = context.current_term_id
        if current is None:
            return False
        if term_id is not None:
            return term_id == current
        return current in _query_terms(year_id, None, calendar)

    if validity == 'current_year':
        return context.current_year_id is not None and year_id == context.current_year_id

    if validity == 'specific_year':
        return year_id == period_key(record.start_academic_year_id)

    if validity == 'year_range':
        position = calendar.year_position(year_id)
        start = calendar.year_position(record.start_academic_year_id)
        end = calendar.year_position(record.end_academic_year_id)
        if start is None or end is None:
            return False
        return start <= position <= end

    if validity == 'specific_terms':
        chosen = record.applicable_term_ids()
        return any(t in chosen for t in _query_terms(year_id, term_id, calendar))

    logger.warning(f"Unknown validity type '{validity}' on {record.reference}")
    return False


def term_applies(record, year_id, term_id, calendar):
    if record.term_applicability != 'specific_terms':
        return True
    chosen = record.applicable_term_ids()
    return any(t in chosen for t in _query_terms(year_id, term_id, calendar))


def cutoff_position(record, calendar):
    """
    Calendar position of the first term a disabled record no longer counts in.

    ``None`` means it never stops counting (active), ``-1`` that it
    counts nowhere (cut-off term no longer resolves).
    """
    if record.is_active:
        return None

    position = calendar.term_position(record.disabled_in_term_id)
    if position is None:
        return -1
    if record.disable_effect == 'from_next_term':
        return position + 1
    return position


def status_applies(record, year_id, term_id, calendar):
    cutoff = cutoff_position(record, calendar)
    if cutoff is None:
        return True

    for query_term in _query_terms(year_id, term_id, calendar):
        position = calendar.term_position(query_term)
        if position is not None and position < cutoff:
            return True
    return False


def applies_to_period(record, year_id=None, term_id=None, calendar=None, context=None):
    """
    Whether ``record`` counts toward the given year and term.

    Without a year or term the period in ``context`` is used. A term that
    does not belong to the given year never matches.
    """
    if calendar is None:
        calendar = AcademicCalendar.from_database()
    if context is None:
        context = calendar.current_context()

    year_id, term_id = _resolve_period(year_id, term_id, calendar, context)
    if year_id is None:
        return False

    if term_id is not None:
        term_year = calendar.year_of_term(term_id)
        if term_year is None or period_key(term_year) != year_id:
            return False

    return (
        validity_applies(record, year_id, term_id, calendar, context)
        and term_applies(record, year_id, term_id, calendar)
        and status_applies(record, year_id, term_id, calendar)
    )


# =============================================================================
# DESCRIPTIONS
# =============================================================================

def describe_validity(record, calendar):
    """Human readable summary of validity, term applicability and status."""
    validity = record.validity_type

    if validity == 'current_term':
        validity_label = 'Current term only'
    elif validity == 'current_year':
        validity_label = 'Current academic year'
    elif validity == 'specific_year':
        validity_label = f"{calendar.year_label(record.start_academic_year_id)} only"
    elif validity == 'year_range':
        start = calendar.year_label(record.start_academic_year_id, default='Unknown')
        end = calendar.year_label(record.end_academic_year_id, default='Unknown')
        validity_label = f"{start} to {end}"
    elif validity == 'specific_terms':
        validity_label = 'Specific terms'
    else:
        validity_label = 'Indefinite'

    if record.term_applicability == 'specific_terms' or validity == 'specific_terms':
        names = sorted(
            record.applicable_term_ids(),
            key=lambda t: (calendar.term_position(t) is None, calendar.term_position(t) or 0),
        )
        terms_label = ', '.join(calendar.term_label(t) for t in names) or 'No terms selected'
    else:
        terms_label = 'All terms'

    if record.is_active:
        status_label = 'Active'
    else:
        when = calendar.term_label(record.disabled_in_term_id)
        if record.disable_effect == 'from_next_term':
            status_label = f"Disabled after {when}"
        else:
            status_label = f"Disabled from {when}"

    return {
        'validity': validity_label,
        'terms': terms_label,
        'status': status_label,
    }


