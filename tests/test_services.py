# tests/test_services.py

from decimal import Decimal
import pytest
from django.core.exceptions import ValidationError, ObjectDoesNotExist

from academics.models import Term
from fees.models import FeesStructure
from uniforms.models import UniformItem
from requirements.models import RequirementItem
from assignments.bridge import FeeBridge
from assignments.exceptions import AssignmentNotFound
from assignments.models import AssignmentHistory, FeeAssignment, UniformAssignment, RequirementAssignment
from assignments.reconciliation import ReconciliationEngine
from assignments.services import AssignmentService


# =============================================================================
# CREATION
# =============================================================================

@pytest.mark.django_db
class TestCreation:

    def test_fee_assignment_with_time_settings(self, pupil, bus_fee, school_calendar):
        cal = school_calendar
        record = AssignmentService.create_fee_assignment(
            pupil, bus_fee,
            {
                'validity_type': 'year_range',
                'start_academic_year': cal.years['2025'].pk,
                'end_academic_year': cal.years['2026'].pk,
                'term_applicability': 'specific_terms',
                'applicable_terms': [cal.terms[('2025', 1)].pk, cal.terms[('2026', 1)].pk],
            },
            actor='Bursar',
            notes='Uses the Ntinda route',
        )

        record.refresh_from_db()
        assert record.start_academic_year == cal.years['2025']
        assert record.end_academic_year == cal.years['2026']
        assert record.applicable_terms.count() == 2
        assert record.assigned_by == 'Bursar'
        assert record.version == 1

    def test_missing_fee_structure_is_rejected(self, pupil):
        with pytest.raises(ValidationError):
            AssignmentService.create_fee_assignment(pupil, None)

    def test_same_fee_twice_is_rejected(self, pupil, bus_fee):
        AssignmentService.create_fee_assignment(pupil, bus_fee)

        with pytest.raises(ValidationError):
            AssignmentService.create_fee_assignment(pupil, bus_fee)
        assert FeeAssignment.objects.count() == 1

    def test_duplicate_insert_after_check_is_rejected(self, pupil, bus_fee, monkeypatch):
        # Two requests that both pass the existence check race to insert the same pair
        AssignmentService.create_fee_assignment(pupil, bus_fee)
        monkeypatch.setattr(AssignmentService, 'fee_already_assigned', staticmethod(lambda p, f: False))

        with pytest.raises(ValidationError) as excinfo:
            AssignmentService.create_fee_assignment(pupil, bus_fee)

        assert 'already assigned' in excinfo.value.messages[0]
        assert FeeAssignment.objects.count() == 1
        assert AssignmentHistory.objects.filter(action='assigned').count() == 1

    def test_non_assignment_fee_is_rejected(self, pupil):
        tuition = FeesStructure.objects.create(
            name='Tuition', code='TUI', category='TUITION',
            amount=Decimal('500000.00'), is_assignment_fee=False,
        )
        with pytest.raises(ValidationError):
            AssignmentService.create_fee_assignment(pupil, tuition)

    def test_no_items_selected_is_rejected(self, pupil):
        with pytest.raises(ValidationError) as excinfo:
            AssignmentService.create_requirement_assignment(pupil, [], selection_mode='partial')
        assert 'Select at least one requirement item' in excinfo.value.messages

        with pytest.raises(ValidationError):
            AssignmentService.create_uniform_assignment(pupil, [])

    def test_single_item_mode_takes_one_item(self, pupil, uniform_items):
        with pytest.raises(ValidationError):
            AssignmentService.create_uniform_assignment(
                pupil, [uniform_items['shirt'], uniform_items['shorts']], selection_mode='item'
            )

    def test_missing_year_is_rejected_before_writing(self, pupil, bus_fee):
        with pytest.raises(ValidationError):
            AssignmentService.create_fee_assignment(pupil, bus_fee, {'validity_type': 'specific_year'})
        assert not FeeAssignment.objects.exists()
        assert not AssignmentHistory.objects.exists()

    def test_unknown_term_is_not_found(self, pupil, bus_fee):
        with pytest.raises(Term.DoesNotExist):
            AssignmentService.create_fee_assignment(pupil, bus_fee, {
                'term_applicability': 'specific_terms',
                'applicable_terms': ['4a1f0000-0000-0000-0000-000000000000'],
            })

    def test_catalog_price_is_snapshotted(self, pupil, reams):
        record = AssignmentService.create_requirement_assignment(pupil, [reams])

        reams.price = Decimal('12000.00')
        reams.quantity_required = 4
        reams.save()

        record.refresh_from_db()
        assert record.total_price == Decimal('9000.00')
        assert record.total_quantity_required == 3


# =============================================================================
# TARGETING
# =============================================================================

@pytest.mark.django_db
class TestTargeting:

    def test_gender_targeting(self, pupil, boarding_pupil):
        blouse = UniformItem.objects.create(
            name='Blouse', code='UNI-BLOUSE', price=Decimal('18000.00'), gender_targeting='F'
        )

        AssignmentService.create_uniform_assignment(pupil, [blouse])
        with pytest.raises(ValidationError):
            AssignmentService.create_uniform_assignment(boarding_pupil, [blouse])

    def test_section_targeting(self, pupil, boarding_pupil):
        mattress = RequirementItem.objects.create(
            name='Mattress', code='REQ-MATTRESS', price=Decimal('80000.00'),
            quantity_required=1, section_targeting='BOARDING',
        )

        AssignmentService.create_requirement_assignment(boarding_pupil, [mattress])
        with pytest.raises(ValidationError):
            AssignmentService.create_requirement_assignment(pupil, [mattress])

    def test_class_targeting(self, pupil, boarding_pupil, primary_seven):
        revision = FeesStructure.objects.create(
            name='Revision Classes', code='REV', amount=Decimal('60000.00'),
            class_targeting='SPECIFIC',
        )
        with pytest.raises(ValidationError) as excinfo:
            AssignmentService.create_fee_assignment(boarding_pupil, revision)
        assert 'applicable_classes' in excinfo.value.messages[0]

        revision.applicable_classes.add(primary_seven)
        AssignmentService.create_fee_assignment(boarding_pupil, revision)
        with pytest.raises(ValidationError):
            AssignmentService.create_fee_assignment(pupil, revision)

    def test_inactive_items_are_rejected(self, pupil, uniform_items):
        shirt = uniform_items['shirt']
        shirt.is_active = False
        shirt.save()

        with pytest.raises(ValidationError):
            AssignmentService.create_uniform_assignment(pupil, [shirt])

    def test_full_set_skips_items_for_other_pupils(self, boarding_pupil, uniform_items):
        UniformItem.objects.create(
            name='Blouse', code='UNI-BLOUSE', price=Decimal('18000.00'), gender_targeting='F'
        )
        record = AssignmentService.create_uniform_assignment(boarding_pupil, [], selection_mode='full')

        assert record.uniform_items.count() == 3
        assert record.original_amount == Decimal('80000.00')


# =============================================================================
# REMOVAL AND LOOKUP
# =============================================================================

@pytest.mark.django_db
class TestRemovalAndLookup:

    def test_unpaid_assignment_can_be_removed(self, pupil, uniform_items):
        record = AssignmentService.create_uniform_assignment(pupil, [uniform_items['shirt']])

        AssignmentService.remove_assignment(record)

        assert not UniformAssignment.objects.exists()
        assert not AssignmentHistory.objects.exists()

    def test_paid_assignment_must_be_disabled_instead(self, pupil, uniform_items, context):
        record = AssignmentService.create_uniform_assignment(pupil, [uniform_items['shirt']])
        FeeBridge.record_payment(record, '5000', context=context)

        with pytest.raises(ValidationError) as excinfo:
            AssignmentService.remove_assignment(record)
        assert 'Disable it instead' in excinfo.value.messages[0]
        assert UniformAssignment.objects.filter(pk=record.pk).exists()

    def test_received_items_block_removal(self, pupil, reams, context):
        record = AssignmentService.create_requirement_assignment(pupil, [reams])
        ReconciliationEngine.record_reception(record, 'office', 1, context=context)

        with pytest.raises(ValidationError):
            AssignmentService.remove_assignment(record)
        assert RequirementAssignment.objects.filter(pk=record.pk).exists()

    def test_get_assignment(self, pupil, bus_fee):
        record = AssignmentService.create_fee_assignment(pupil, bus_fee)
        assert AssignmentService.get_assignment('fee', record.pk) == record
        assert AssignmentService.get_assignment('fee', str(record.pk)) == record

    @pytest.mark.parametrize('kind, assignment_id', [
        ('fee', '0b7e1f2c-0000-0000-0000-000000000000'),
        ('uniform', 'nope'),
        ('transport', '0b7e1f2c-0000-0000-0000-000000000000'),
    ])
    def test_get_assignment_not_found(self, db, kind, assignment_id):
        with pytest.raises(AssignmentNotFound) as excinfo:
            AssignmentService.get_assignment(kind, assignment_id)
        assert isinstance(excinfo.value, ObjectDoesNotExist)

    def test_assignments_for_pupil(self, pupil, bus_fee, uniform_items, reams):
        AssignmentService.create_fee_assignment(pupil, bus_fee)
        AssignmentService.create_uniform_assignment(pupil, [uniform_items['shirt']])
        AssignmentService.create_requirement_assignment(pupil, [reams])

        assert len(AssignmentService.assignments_for_pupil(pupil)) == 3
        assert [r.KIND for r in AssignmentService.assignments_for_pupil(pupil, kinds=['uniform'])] == ['uniform']
