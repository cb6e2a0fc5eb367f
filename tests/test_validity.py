# tests/test_validity.py

from datetime import date
from decimal import Decimal
import pytest
from django.core.exceptions import ValidationError

from academics.models import AcademicYear
from academics.services import AcademicCalendar, PeriodContext
from fees.models import FeesStructure
from assignments.services import AssignmentService, StatusMachine
from assignments.validity import TimeSettings, applies_to_period, describe_validity


def assign_fee(pupil, code, **time_settings):
    fee = FeesStructure.objects.create(name=f"Fee {code}", code=code, amount=Decimal('1000.00'))
    return AssignmentService.create_fee_assignment(pupil, fee, time_settings or None)


def applies(record, cal, year=None, term=None):
    return applies_to_period(
        record,
        year.pk if year is not None else None,
        term.pk if term is not None else None,
        cal.calendar,
        cal.context,
    )


# =============================================================================
# VALIDITY DESCRIPTORS
# =============================================================================

@pytest.mark.django_db
class TestValidityDescriptors:

    def test_indefinite_applies_to_every_term(self, pupil, school_calendar):
        record = assign_fee(pupil, 'F1')
        for (name, number), term in school_calendar.terms.items():
            assert applies(record, school_calendar, school_calendar.years[name], term)

    def test_current_term_only_matches_the_context_term(self, pupil, school_calendar):
        cal = school_calendar
        record = assign_fee(pupil, 'F1', validity_type='current_term')

        assert applies(record, cal, cal.years['2025'], cal.terms[('2025', 2)])
        assert not applies(record, cal, cal.years['2025'], cal.terms[('2025', 1)])
        assert not applies(record, cal, cal.years['2026'], cal.terms[('2026', 2)])

    def test_current_term_follows_the_context_passed_in(self, pupil, school_calendar):
        cal = school_calendar
        record = assign_fee(pupil, 'F1', validity_type='current_term')
        later = PeriodContext.of(cal.years['2026'], cal.terms[('2026', 1)])

        assert applies_to_period(record, cal.years['2026'].pk, cal.terms[('2026', 1)].pk, cal.calendar, later)
        assert not applies_to_period(record, cal.years['2025'].pk, cal.terms[('2025', 2)].pk, cal.calendar, later)

    def test_current_year(self, pupil, school_calendar):
        cal = school_calendar
        record = assign_fee(pupil, 'F1', validity_type='current_year')

        assert applies(record, cal, cal.years['2025'], cal.terms[('2025', 1)])
        assert applies(record, cal, cal.years['2025'])
        assert not applies(record, cal, cal.years['2024'])
        assert not applies(record, cal, cal.years['2026'], cal.terms[('2026', 3)])

    def test_context_built_from_raw_primary_keys(self, pupil, school_calendar):
        cal = school_calendar
        this_year = assign_fee(pupil, 'F1', validity_type='current_year')
        this_term = assign_fee(pupil, 'F2', validity_type='current_term')
        year, term = cal.years['2025'], cal.terms[('2025', 2)]
        context = PeriodContext(current_year_id=year.pk, current_term_id=term.pk)

        assert context == PeriodContext.of(year, term)
        assert applies_to_period(this_year, year.pk, term.pk, cal.calendar, context)
        assert applies_to_period(this_term, year.pk, term.pk, cal.calendar, context)

    def test_specific_year_only_matches_that_year(self, pupil, school_calendar):
        cal = school_calendar
        record = assign_fee(
            pupil, 'F1',
            validity_type='specific_year',
            start_academic_year=cal.years['2024'].pk,
        )

        assert applies(record, cal, cal.years['2024'])
        assert not applies(record, cal, cal.years['2025'])
        assert not applies(record, cal, cal.years['2026'])

    def test_year_range_is_inclusive_and_ordered_by_calendar(self, pupil, school_calendar):
        cal = school_calendar
        before = AcademicYear.objects.create(name='2023', start_date=date(2023, 2, 1), end_date=date(2023, 12, 31))
        after = AcademicYear.objects.create(name='2027', start_date=date(2027, 2, 1), end_date=date(2027, 12, 31))
        # Sorts between 2024 and 2026 by name, but starts after 2027
        misnamed = AcademicYear.objects.create(
            name='2025-2026', start_date=date(2028, 2, 1), end_date=date(2028, 12, 31)
        )
        cal.calendar = AcademicCalendar.from_database()

        record = assign_fee(
            pupil, 'F1',
            validity_type='year_range',
            start_academic_year=cal.years['2024'].pk,
            end_academic_year=cal.years['2026'].pk,
        )

        assert applies(record, cal, cal.years['2024'])
        assert applies(record, cal, cal.years['2025'])
        assert applies(record, cal, cal.years['2026'])
        assert not applies(record, cal, before)
        assert not applies(record, cal, after)
        assert not applies(record, cal, misnamed)

    def test_specific_terms(self, pupil, school_calendar):
        cal = school_calendar
        chosen = [cal.terms[('2025', 1)], cal.terms[('2026', 3)]]
        record = assign_fee(
            pupil, 'F1',
            validity_type='specific_terms',
            applicable_terms=[t.pk for t in chosen],
        )

        for (name, number), term in cal.terms.items():
            expected = term in chosen
            assert applies(record, cal, cal.years[name], term) is expected

    def test_term_applicability_narrows_a_valid_year(self, pupil, school_calendar):
        cal = school_calendar
        record = assign_fee(
            pupil, 'F1',
            validity_type='current_year',
            term_applicability='specific_terms',
            applicable_terms=[cal.terms[('2025', 3)].pk],
        )

        assert applies(record, cal, cal.years['2025'], cal.terms[('2025', 3)])
        assert not applies(record, cal, cal.years['2025'], cal.terms[('2025', 1)])
        assert applies(record, cal, cal.years['2025'])
        assert not applies(record, cal, cal.years['2026'], cal.terms[('2026', 3)])


# =============================================================================
# DANGLING REFERENCES
# =============================================================================

@pytest.mark.django_db
class TestDanglingReferences:

    def test_deleted_range_year_does_not_apply(self, pupil, school_calendar):
        cal = school_calendar
        record = assign_fee(
            pupil, 'F1',
            validity_type='year_range',
            start_academic_year=cal.years['2024'].pk,
            end_academic_year=cal.years['2026'].pk,
        )
        cal.years['2026'].delete()
        record.refresh_from_db()
        cal.calendar = AcademicCalendar.from_database()

        assert not applies(record, cal, cal.years['2025'])

    def test_unknown_period_ids_do_not_apply(self, pupil, school_calendar):
        cal = school_calendar
        record = assign_fee(pupil, 'F1')

        assert not applies_to_period(
            record, 'f6f7b4a0-0000-0000-0000-000000000000', None, cal.calendar, cal.context
        )
        assert not applies_to_period(
            record, None, 'f6f7b4a0-0000-0000-0000-000000000000', cal.calendar, cal.context
        )

    def test_term_from_another_year_does_not_apply(self, pupil, school_calendar):
        cal = school_calendar
        record = assign_fee(pupil, 'F1')

        assert not applies(record, cal, cal.years['2024'], cal.terms[('2025', 1)])

    def test_without_a_period_the_context_period_is_used(self, pupil, school_calendar):
        cal = school_calendar
        record = assign_fee(pupil, 'F1', validity_type='current_term')

        assert applies_to_period(record, calendar=cal.calendar, context=cal.context)


# =============================================================================
# STATUS WINDOW
# =============================================================================

@pytest.mark.django_db
class TestDisabledCutoff:

    def test_from_current_term_stops_in_the_disabling_term(self, pupil, school_calendar):
        cal = school_calendar
        record = assign_fee(pupil, 'F1')
        StatusMachine.disable(record, 'from_current_term', context=cal.context)

        assert applies(record, cal, cal.years['2025'], cal.terms[('2025', 1)])
        assert not applies(record, cal, cal.years['2025'], cal.terms[('2025', 2)])
        assert not applies(record, cal, cal.years['2025'], cal.terms[('2025', 3)])
        assert not applies(record, cal, cal.years['2026'], cal.terms[('2026', 1)])

    def test_from_next_term_still_counts_in_the_disabling_term(self, pupil, school_calendar):
        cal = school_calendar
        record = assign_fee(pupil, 'F1')
        StatusMachine.disable(record, 'from_next_term', context=cal.context)

        assert applies(record, cal, cal.years['2024'], cal.terms[('2024', 3)])
        assert applies(record, cal, cal.years['2025'], cal.terms[('2025', 2)])
        assert not applies(record, cal, cal.years['2025'], cal.terms[('2025', 3)])

    def test_year_query_counts_a_record_disabled_mid_year(self, pupil, school_calendar):
        cal = school_calendar
        record = assign_fee(pupil, 'F1')
        StatusMachine.disable(record, 'from_current_term', context=cal.context)

        assert applies(record, cal, cal.years['2025'])
        assert not applies(record, cal, cal.years['2026'])

    def test_disable_with_raw_key_context_keeps_earlier_terms(self, pupil, school_calendar):
        cal = school_calendar
        record = assign_fee(pupil, 'F1')
        context = PeriodContext(cal.years['2025'].pk, cal.terms[('2025', 2)].pk)
        StatusMachine.disable(record, 'from_next_term', context=context)

        assert applies(record, cal, cal.years['2025'], cal.terms[('2025', 2)])
        assert not applies(record, cal, cal.years['2025'], cal.terms[('2025', 3)])

    def test_disable_without_a_current_term_is_rejected(self, pupil, school_calendar):
        cal = school_calendar
        record = assign_fee(pupil, 'F1')

        with pytest.raises(ValidationError):
            StatusMachine.disable(record, 'from_next_term', context=PeriodContext())

        record.refresh_from_db()
        assert record.status == 'active'
        assert record.history.count() == 1
        assert applies(record, cal, cal.years['2025'], cal.terms[('2025', 1)])

    def test_enabling_restores_every_period(self, pupil, school_calendar):
        cal = school_calendar
        record = assign_fee(pupil, 'F1')
        StatusMachine.disable(record, 'from_current_term', context=cal.context)
        StatusMachine.enable(record, context=cal.context)

        assert applies(record, cal, cal.years['2026'], cal.terms[('2026', 3)])


# =============================================================================
# DESCRIPTIONS AND TIME SETTINGS
# =============================================================================

@pytest.mark.django_db
class TestDescriptions:

    def test_year_range_description(self, pupil, school_calendar):
        cal = school_calendar
        record = assign_fee(
            pupil, 'F1',
            validity_type='year_range',
            start_academic_year=cal.years['2024'].pk,
            end_academic_year=cal.years['2026'].pk,
        )

        assert describe_validity(record, cal.calendar) == {
            'validity': '2024 to 2026',
            'terms': 'All terms',
            'status': 'Active',
        }

    def test_specific_terms_and_disabled_description(self, pupil, school_calendar):
        cal = school_calendar
        record = assign_fee(
            pupil, 'F1',
            validity_type='specific_year',
            start_academic_year=cal.years['2025'].pk,
            term_applicability='specific_terms',
            applicable_terms=[cal.terms[('2025', 3)].pk, cal.terms[('2025', 1)].pk],
        )
        StatusMachine.disable(record, 'from_next_term', context=cal.context)

        description = describe_validity(record, cal.calendar)
        assert description['validity'] == '2025 only'
        assert description['terms'] == 'Term 1 (2025), Term 3 (2025)'
        assert description['status'] == 'Disabled after Term 2 (2025)'


class TestTimeSettings:

    def test_defaults_are_indefinite_all_terms(self):
        settings = TimeSettings.coerce(None)
        assert settings.validity_type == 'indefinite'
        assert settings.term_applicability == 'all_terms'
        settings.validate()

    @pytest.mark.parametrize('values, field', [
        ({'validity_type': 'specific_year'}, 'start_academic_year'),
        ({'validity_type': 'year_range', 'start_academic_year': 'x'}, 'end_academic_year'),
        ({'validity_type': 'specific_terms'}, 'applicable_terms'),
        ({'term_applicability': 'specific_terms'}, 'applicable_terms'),
        ({'validity_type': 'forever'}, 'validity_type'),
    ])
    def test_missing_ids_are_rejected(self, values, field):
        with pytest.raises(ValidationError) as excinfo:
            TimeSettings.coerce(values).validate()
        assert field in excinfo.value.message_dict
