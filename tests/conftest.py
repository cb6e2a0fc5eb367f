# tests/conftest.py

from datetime import date
from decimal import Decimal
from types import SimpleNamespace
import pytest

from academics.models import AcademicYear, Term, SchoolClass
from academics.services import AcademicCalendar, PeriodContext
from students.models import Pupil
from fees.models import FeesStructure, FeesDiscount
from uniforms.models import UniformItem
from requirements.models import RequirementItem


# =============================================================================
# ACADEMIC CALENDAR
# =============================================================================

@pytest.fixture
def school_calendar(db):
    """
    Three academic years (2024, 2025, 2026) of three terms each.
    2025 Term 2 is the current term.
    """
    years, terms = {}, {}
    for offset, name in enumerate(['2024', '2025', '2026']):
        start_year = 2024 + offset
        year = AcademicYear.objects.create(
            name=name,
            start_date=date(start_year, 2, 1),
            end_date=date(start_year, 12, 31),
            is_current=(name == '2025'),
        )
        years[name] = year

        for number in (1, 2, 3):
            month = 4 * number - 2
            terms[(name, number)] = Term.objects.create(
                academic_year=year,
                term_number=number,
                start_date=date(start_year, month, 1),
                end_date=date(start_year, month + 2, 28),
                is_current=(name == '2025' and number == 2),
            )

    return SimpleNamespace(
        years=years,
        terms=terms,
        calendar=AcademicCalendar.from_database(),
        context=PeriodContext.of(years['2025'], terms[('2025', 2)]),
    )


@pytest.fixture
def calendar(school_calendar):
    return school_calendar.calendar


@pytest.fixture
def context(school_calendar):
    return school_calendar.context


# =============================================================================
# PUPILS
# =============================================================================

@pytest.fixture
def primary_one(db):
    return SchoolClass.objects.create(name='Primary One', code='P1', level=1)


@pytest.fixture
def primary_seven(db):
    return SchoolClass.objects.create(name='Primary Seven', code='P7', level=7)


@pytest.fixture
def pupil(primary_one):
    return Pupil.objects.create(
        admission_number='ADM/2025/001',
        first_name='Amina',
        last_name='Nakato',
        gender='F',
        section='DAY',
        current_class=primary_one,
    )


@pytest.fixture
def boarding_pupil(primary_seven):
    return Pupil.objects.create(
        admission_number='ADM/2025/002',
        first_name='Brian',
        last_name='Okello',
        gender='M',
        section='BOARDING',
        current_class=primary_seven,
    )


# =============================================================================
# CATALOG
# =============================================================================

@pytest.fixture
def bus_fee(db):
    return FeesStructure.objects.create(
        name='School Bus',
        code='BUS',
        category='TRANSPORT',
        amount=Decimal('150000.00'),
    )


@pytest.fixture
def uniform_items(db):
    return {
        'shirt': UniformItem.objects.create(name='Shirt', code='UNI-SHIRT', price=Decimal('25000.00')),
        'shorts': UniformItem.objects.create(name='Shorts', code='UNI-SHORTS', price=Decimal('20000.00')),
        'sweater': UniformItem.objects.create(name='Sweater', code='UNI-SWEATER', price=Decimal('35000.00')),
    }


@pytest.fixture
def percentage_discount(db):
    return FeesDiscount.objects.create(
        name='Staff Child',
        code='STAFF10',
        discount_type='PERCENTAGE',
        discount_value=Decimal('10.00'),
    )


@pytest.fixture
def reams(db):
    """Three reams of paper, 9000 in total."""
    return RequirementItem.objects.create(
        name='Ream of Paper',
        code='REQ-REAM',
        price=Decimal('9000.00'),
        quantity_required=3,
    )


@pytest.fixture
def brooms(db):
    return RequirementItem.objects.create(
        name='Broom',
        code='REQ-BROOM',
        price=Decimal('4000.00'),
        quantity_required=2,
    )
