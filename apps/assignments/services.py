# assignments/services.py

"""
Assignment Lifecycle Operations

Creates, removes and transitions assignments:
- AssignmentService: create fee/uniform/requirement assignments, remove, look up
- StatusMachine: disable, enable and adjust time settings

Every operation runs in one transaction, writes the record through its
version check and appends exactly one history entry.

For receptions see assignments/reconciliation.py, for payments
assignments/bridge.py.
"""

from decimal import Decimal
from django.db import transaction, IntegrityError
from django.utils import timezone
from django.core.exceptions import ValidationError
import logging

from academics.models import AcademicYear, Term
from academics.services import AcademicCalendar
from fees.utils import apply_discount_to_amount
from uniforms.models import UniformItem
from requirements.models import RequirementItem

from .exceptions import AssignmentNotFound, ConcurrentModificationError
from .models import (
    ASSIGNMENT_MODELS, FeeAssignment, UniformAssignment, RequirementAssignment,
    DISABLE_EFFECT_CHOICES, SELECTION_MODE_CHOICES,
)
from .utils import resolve_actor, derive_payment_status, to_money
from .validity import TimeSettings

logger = logging.getLogger(__name__)


def current_period(context=None, calendar=None):
    """Return ``context`` or, without one, the period flagged current."""
    if context is not None:
        return context
    if calendar is None:
        calendar = AcademicCalendar.from_database()
    return calendar.current_context()


# =============================================================================
# ASSIGNMENT SERVICE
# =============================================================================

class AssignmentService:
    """
    Creation, removal and lookup of pupil assignments.
    """

    # -------------------------------------------------------------------------
    # VALIDATION HELPERS
    # -------------------------------------------------------------------------

    @staticmethod
    def resolve_time_settings(time_settings):
        """
        Validate time settings and resolve their ids.

        Returns:
            tuple: (field values for the record, list of Term instances)

        Raises:
            ValidationError: a descriptor is missing the ids it needs
            AcademicYear.DoesNotExist / Term.DoesNotExist: an id does not resolve
        """
        settings = TimeSettings.coerce(time_settings)
        settings.validate()

        start_year = end_year = None
        if settings.validity_type in ('specific_year', 'year_range'):
            start_year = AcademicYear.objects.get(pk=settings.start_academic_year)
        if settings.validity_type == 'year_range':
            end_year = AcademicYear.objects.get(pk=settings.end_academic_year)
            if end_year.start_date < start_year.start_date:
                raise ValidationError({
                    'end_academic_year': f"{end_year.name} comes before {start_year.name}"
                })

        terms = []
        if settings.needs_terms:
            wanted = {str(t) for t in settings.applicable_terms}
            terms = list(Term.objects.filter(pk__in=wanted))
            if len(terms) != len(wanted):
                raise Term.DoesNotExist("One or more selected terms do not exist")

        values = {
            'validity_type': settings.validity_type,
            'start_academic_year': start_year,
            'end_academic_year': end_year,
            'term_applicability': settings.term_applicability,
        }
        return values, terms

    @staticmethod
    def check_catalog_items(pupil, items, label):
        """
        Ensure every selected catalog item is active and targets the pupil.
        """
        if not items:
            raise ValidationError(f"Select at least one {label}")

        for item in items:
            if not item.is_active:
                raise ValidationError(f"{item.name} is not active")

            missing = item.missing_targeting_fields()
            if missing:
                raise ValidationError(
                    f"{item.name} is missing targeting details: {', '.join(missing)}"
                )

            if not item.applies_to_pupil(pupil):
                raise ValidationError(
                    f"{item.name} does not apply to {pupil.get_full_name()}"
                )

    @staticmethod
    def select_items(pupil, items, selection_mode, catalog_model, label):
        """
        Resolve the selected catalog items for a bundle.

        A full set with nothing selected takes every active item that
        targets the pupil.
        """
        if selection_mode not in dict(SELECTION_MODE_CHOICES):
            raise ValidationError({'selection_mode': f"Unknown selection mode '{selection_mode}'"})

        items = list(items or [])

        if selection_mode == 'full' and not items:
            items = [
                item for item in catalog_model.objects.filter(is_active=True)
                if item.applies_to_pupil(pupil)
            ]

        if selection_mode == 'item' and len(items) > 1:
            raise ValidationError({'selection_mode': f"Single item selection takes exactly one {label}"})

        AssignmentService.check_catalog_items(pupil, items, label)
        return items

    @staticmethod
    def _finish_creation(record, terms, actor_name, items_field=None, items=None):
        record.save()
        if items_field:
            getattr(record, items_field).set(items)
        record.applicable_terms.set(terms)

        record.append_history(
            'assigned',
            new_status=record.status,
            processed_by=actor_name,
            reason=record.notes,
        )

        logger.info(
            f"Assigned {record.reference} to {record.pupil.get_full_name()} by {actor_name}"
        )
        return record

    # -------------------------------------------------------------------------
    # CREATION
    # -------------------------------------------------------------------------

    @staticmethod
    def fee_already_assigned(pupil, fee_structure):
        return FeeAssignment.objects.filter(pupil=pupil, fee_structure=fee_structure).exists()

    @staticmethod
    def duplicate_fee_error(pupil, fee_structure):
        return ValidationError(
            f"{fee_structure.name} is already assigned to {pupil.get_full_name()}. "
            f"Enable the existing assignment instead."
        )

    @staticmethod
    @transaction.atomic
    def create_fee_assignment(pupil, fee_structure, time_settings=None, actor=None, notes=''):
        """
        Assign a fee structure to a pupil.

        Args:
            pupil: Pupil instance
            fee_structure: FeesStructure instance
            time_settings: TimeSettings or dict (see assignments.validity)
            actor: User or name performing the assignment
            notes: str

        Returns:
            FeeAssignment instance

        Example:
            assignment = AssignmentService.create_fee_assignment(
                pupil, bus_fee,
                {'validity_type': 'current_year', 'term_applicability': 'all_terms'},
            )
        """
        if fee_structure is None:
            raise ValidationError("Select at least one fee structure")

        if not fee_structure.is_assignable:
            raise ValidationError(f"{fee_structure.name} cannot be assigned to individual pupils")

        AssignmentService.check_catalog_items(pupil, [fee_structure], 'fee structure')

        if AssignmentService.fee_already_assigned(pupil, fee_structure):
            raise AssignmentService.duplicate_fee_error(pupil, fee_structure)

        values, terms = AssignmentService.resolve_time_settings(time_settings)
        actor_name = resolve_actor(actor)

        record = FeeAssignment(
            pupil=pupil,
            fee_structure=fee_structure,
            assigned_by=actor_name,
            notes=notes or '',
            **values
        )
        try:
            with transaction.atomic():
                return AssignmentService._finish_creation(record, terms, actor_name)
        except IntegrityError:
            # A concurrent request inserted the same pair after the check above
            logger.warning(f"Duplicate fee assignment of {fee_structure.name} to pupil {pupil.pk} rejected")
            raise AssignmentService.duplicate_fee_error(pupil, fee_structure)

    @staticmethod
    @transaction.atomic
    def create_uniform_assignment(pupil, uniform_items, selection_mode='item', time_settings=None,
                                  discount=None, actor=None, notes=''):
        """
        Assign uniform items to a pupil, pricing them from the catalog.

        Args:
            pupil: Pupil instance
            uniform_items: iterable of UniformItem (may be empty for a full set)
            selection_mode: 'item', 'partial' or 'full'
            time_settings: TimeSettings or dict
            discount: FeesDiscount instance or None
            actor: User or name

        Returns:
            UniformAssignment instance
        """
        items = AssignmentService.select_items(
            pupil, uniform_items, selection_mode, UniformItem, 'uniform item'
        )

        if discount is not None and not discount.is_active:
            raise ValidationError({'discount': f"Discount {discount.name} is not active"})

        values, terms = AssignmentService.resolve_time_settings(time_settings)
        actor_name = resolve_actor(actor)

        original = sum((item.price for item in items), Decimal('0.00'))
        amounts = apply_discount_to_amount(original, discount)
        final_amount = to_money(amounts['final_amount'])

        record = UniformAssignment(
            pupil=pupil,
            selection_mode=selection_mode,
            original_amount=to_money(amounts['original_amount']),
            discount=discount,
            discount_amount=to_money(amounts['discount_amount']),
            final_amount=final_amount,
            payment_status=derive_payment_status(Decimal('0.00'), final_amount),
            assigned_by=actor_name,
            notes=notes or '',
            **values
        )
        return AssignmentService._finish_creation(
            record, terms, actor_name, items_field='uniform_items', items=items
        )

    @staticmethod
    @transaction.atomic
    def create_requirement_assignment(pupil, requirement_items, selection_mode='item',
                                      time_settings=None, actor=None, notes=''):
        """
        Assign requirement items to a pupil.

        Required quantity and price are the sums over the selected items.

        Returns:
            RequirementAssignment instance
        """
        items = AssignmentService.select_items(
            pupil, requirement_items, selection_mode, RequirementItem, 'requirement item'
        )

        values, terms = AssignmentService.resolve_time_settings(time_settings)
        actor_name = resolve_actor(actor)

        total_price = to_money(sum((item.price for item in items), Decimal('0.00')))

        record = RequirementAssignment(
            pupil=pupil,
            selection_mode=selection_mode,
            total_quantity_required=sum(item.quantity_required for item in items),
            total_price=total_price,
            payment_status=derive_payment_status(Decimal('0.00'), total_price),
            assigned_by=actor_name,
            notes=notes or '',
            **values
        )
        return AssignmentService._finish_creation(
            record, terms, actor_name, items_field='requirement_items', items=items
        )

    # -------------------------------------------------------------------------
    # REMOVAL
    # -------------------------------------------------------------------------

    @staticmethod
    @transaction.atomic
    def remove_assignment(record, actor=None):
        """
        Delete an assignment that nothing has been paid or received against.

        Raises:
            ValidationError: the assignment has ledger activity
            ConcurrentModificationError: the record changed since it was read
        """
        if record.has_ledger_activity():
            logger.warning(f"Refused to remove {record.reference}: payments or receipts recorded")
            raise ValidationError(
                "This assignment has payments or receipts recorded. Disable it instead."
            )

        reference = record.reference
        deleted, _ = type(record).objects.filter(pk=record.pk, version=record.version).delete()
        if not deleted:
            raise ConcurrentModificationError(
                f"{record} was changed by someone else. Reload it and try again."
            )

        logger.info(f"Removed {reference} by {resolve_actor(actor)}")

    # -------------------------------------------------------------------------
    # LOOKUP
    # -------------------------------------------------------------------------

    @staticmethod
    def get_assignment(kind, assignment_id):
        """
        Fetch an assignment by kind ('fee', 'uniform', 'requirement') and id.

        Raises:
            AssignmentNotFound
        """
        model = ASSIGNMENT_MODELS.get(kind)
        if model is None:
            raise AssignmentNotFound(f"Unknown assignment type '{kind}'")

        try:
            return model.objects.select_related('pupil').get(pk=assignment_id)
        except (model.DoesNotExist, ValidationError, ValueError):
            raise AssignmentNotFound(f"No {kind} assignment with id {assignment_id}")

    @staticmethod
    def assignments_for_pupil(pupil, kinds=None):
        """All assignments of a pupil, oldest first, optionally limited to some kinds."""
        records = []
        for kind, model in ASSIGNMENT_MODELS.items():
            if kinds is not None and kind not in kinds:
                continue
            records.extend(
                model.objects.filter(pupil=pupil).prefetch_related('applicable_terms')
            )
        return sorted(records, key=lambda r: r.assigned_at)


# =============================================================================
# STATUS MACHINE
# =============================================================================

class StatusMachine:
    """
    Active/disabled transitions of an assignment.

    A disabled assignment stops counting from the term it was disabled in
    (``from_current_term``) or from the term after it (``from_next_term``).
    History and payments are never removed by a transition.
    """

    @staticmethod
    @transaction.atomic
    def disable(record, effect='from_next_term', reason='', actor=None, context=None):
        """
        Disable an active assignment.

        Args:
            record: any assignment variant
            effect: 'from_current_term' or 'from_next_term'
            reason: optional free text
            actor: User or name
            context: PeriodContext; the period flagged current when omitted

        Returns:
            The updated record
        """
        if effect not in dict(DISABLE_EFFECT_CHOICES):
            raise ValidationError({'effect': f"Unknown disable effect '{effect}'"})

        if not record.is_active:
            logger.warning(f"Refused to disable {record.reference}: already disabled")
            raise ValidationError("This assignment is already disabled")

        context = current_period(context)
        if context.current_term_id is None:
            logger.warning(f"Refused to disable {record.reference}: no current term is set")
            raise ValidationError("No current term is set")

        actor_name = resolve_actor(actor)
        previous_status = record.status

        record.status = 'disabled'
        record.disable_effect = effect
        record.disabled_in_term_id = context.current_term_id
        record.disabled_at = timezone.now()
        record.commit_changes('status', 'disable_effect', 'disabled_in_term', 'disabled_at')

        record.append_history(
            'disabled',
            previous_status=previous_status,
            new_status=record.status,
            disable_effect=effect,
            reason=reason or '',
            processed_by=actor_name,
            academic_year_id=context.current_year_id,
            term_id=context.current_term_id,
        )

        logger.info(f"Disabled {record.reference} ({effect}) by {actor_name}")
        return record

    @staticmethod
    @transaction.atomic
    def enable(record, actor=None, reason='', context=None):
        """Re-activate a disabled assignment, however it was disabled."""
        if record.is_active:
            logger.warning(f"Refused to enable {record.reference}: already active")
            raise ValidationError("This assignment is already active")

        context = current_period(context)
        actor_name = resolve_actor(actor)
        previous_status = record.status

        record.status = 'active'
        record.disable_effect = ''
        record.disabled_in_term = None
        record.disabled_at = None
        record.commit_changes('status', 'disable_effect', 'disabled_in_term', 'disabled_at')

        record.append_history(
            'enabled',
            previous_status=previous_status,
            new_status=record.status,
            reason=reason or '',
            processed_by=actor_name,
            academic_year_id=context.current_year_id,
            term_id=context.current_term_id,
        )

        logger.info(f"Enabled {record.reference} by {actor_name}")
        return record

    @staticmethod
    @transaction.atomic
    def adjust_time_settings(record, time_settings, actor=None, reason=''):
        """
        Replace validity and term applicability, keeping the previous
        settings in the history entry.
        """
        values, terms = AssignmentService.resolve_time_settings(time_settings)
        actor_name = resolve_actor(actor)
        previous_settings = record.time_settings_snapshot()

        for name, value in values.items():
            setattr(record, name, value)
        record.commit_changes(*values.keys())
        record.applicable_terms.set(terms)

        record.append_history(
            'time_adjusted',
            previous_status=record.status,
            new_status=record.status,
            previous_time_settings=previous_settings,
            reason=reason or '',
            processed_by=actor_name,
        )

        logger.info(
            f"Adjusted time settings of {record.reference} by {actor_name}: "
            f"{previous_settings['validity_type']} -> {record.validity_type}"
        )
        return record
