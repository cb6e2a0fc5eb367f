# academics/services.py

"""
Academic Calendar Services

Resolves academic year and term ids into ordered, labelled periods:
- Ordering of years and terms (for range checks)
- Human labels for validity descriptions
- The period currently in session

Callers build an ``AcademicCalendar`` once per request and pass it,
together with a ``PeriodContext``, into the assignment services. Nothing
here reads a global "current term" at evaluation time.
"""

from dataclasses import dataclass
import logging

from .models import AcademicYear, Term

logger = logging.getLogger(__name__)


def period_key(value):
    """Normalise model instances, UUIDs and strings to a lookup key."""
    if value is None:
        return None
    return str(getattr(value, 'pk', value))


# =============================================================================
# PERIOD CONTEXT
# =============================================================================

@dataclass(frozen=True)
class PeriodContext:
    """The academic year and term that are current when an operation runs."""

    current_year_id: str = None
    current_term_id: str = None

    def __post_init__(self):
        # Ids are compared as strings everywhere; accept instances, UUIDs or strings
        for name in ('current_year_id', 'current_term_id'):
            object.__setattr__(self, name, period_key(getattr(self, name)))

    @classmethod
    def of(cls, year=None, term=None):
        return cls(current_year_id=period_key(year), current_term_id=period_key(term))


# =============================================================================
# ACADEMIC CALENDAR
# =============================================================================

class AcademicCalendar:
    """
    Ordered, read-only view of academic years and their terms.

    Unknown ids never raise: positions and labels come back as ``None``
    so billing code can treat dangling references as "not applicable".
    """

    def __init__(self, years, terms):
        self._years = sorted(years, key=lambda y: (y.start_date, y.name))
        self._year_by_id = {period_key(y): y for y in self._years}
        self._year_position = {period_key(y): index for index, y in enumerate(self._years)}

        self._terms = sorted(
            (t for t in terms if period_key(t.academic_year_id) in self._year_by_id),
            key=lambda t: (
                self._year_position[period_key(t.academic_year_id)],
                t.start_date,
                t.term_number,
            ),
        )
        self._term_by_id = {period_key(t): t for t in self._terms}
        self._term_position = {period_key(t): index for index, t in enumerate(self._terms)}

    @classmethod
    def from_database(cls):
        """Load every academic year and term from the store."""
        years = list(AcademicYear.objects.all())
        terms = list(Term.objects.all())
        logger.debug(f"Loaded academic calendar: {len(years)} years, {len(terms)} terms")
        return cls(years, terms)

    # -------------------------------------------------------------------------
    # LOOKUPS
    # -------------------------------------------------------------------------

    def get_year(self, year_id):
        return self._year_by_id.get(period_key(year_id))

    def get_term(self, term_id):
        return self._term_by_id.get(period_key(term_id))

    def year_position(self, year_id):
        return self._year_position.get(period_key(year_id))

    def term_position(self, term_id):
        return self._term_position.get(period_key(term_id))

    def year_of_term(self, term_id):
        term = self.get_term(term_id)
        if term is None:
            return None
        return self.get_year(term.academic_year_id)

    def next_term(self, term_id):
        """The term that follows ``term_id`` in calendar order, if any."""
        position = self.term_position(term_id)
        if position is None or position + 1 >= len(self._terms):
            return None
        return self._terms[position + 1]

    def terms_for_year(self, year_id):
        key = period_key(year_id)
        return [t for t in self._terms if period_key(t.academic_year_id) == key]

    # -------------------------------------------------------------------------
    # LABELS
    # -------------------------------------------------------------------------

    def year_label(self, year_id, default='Unknown year'):
        year = self.get_year(year_id)
        return year.name if year else default

    def term_label(self, term_id, default='Unknown term'):
        term = self.get_term(term_id)
        if term is None:
            return default
        return f"{term.name} ({self.year_label(term.academic_year_id)})"

    # -------------------------------------------------------------------------
    # CURRENT PERIOD
    # -------------------------------------------------------------------------

    def current_context(self):
        """
        Build a ``PeriodContext`` from the years and terms flagged current.

        A current term implies its year when no year carries the flag.
        """
        current_term = next((t for t in self._terms if t.is_current), None)
        current_year = next((y for y in self._years if y.is_current), None)

        if current_year is None and current_term is not None:
            current_year = self.get_year(current_term.academic_year_id)

        return PeriodContext.of(current_year, current_term)
