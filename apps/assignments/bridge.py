# assignments/bridge.py

"""
Fee Bridge

Presents uniform and requirement assignments as fee lines, so the amount
a pupil owes for them can be listed and paid next to ordinary fees.
Payments made against a bridged fee are written back to the assignment
it came from.

Bridged fee ids have the form ``<kind>-<assignment uuid>``, for example
``uniform-3f0c...``.
"""

from dataclasses import dataclass, field, asdict
from decimal import Decimal, InvalidOperation
from django.db import transaction
from django.utils import timezone
from django.core.exceptions import ValidationError
import logging

from academics.services import AcademicCalendar
from fees.models import Payment
from fees.utils import generate_payment_number

from .exceptions import AssignmentNotFound
from .models import UniformAssignment, RequirementAssignment
from .services import AssignmentService, current_period
from .utils import resolve_actor, derive_payment_status, to_money, format_amount
from .validity import applies_to_period, describe_validity

logger = logging.getLogger(__name__)

BRIDGED_MODELS = {
    UniformAssignment.KIND: UniformAssignment,
    RequirementAssignment.KIND: RequirementAssignment,
}

ITEMS_FIELDS = {
    UniformAssignment.KIND: ('uniform_items', 'Uniform'),
    RequirementAssignment.KIND: ('requirement_items', 'Requirement'),
}


# =============================================================================
# BRIDGED FEE
# =============================================================================

@dataclass
class BridgedFee:
    """A fee line synthesised from a uniform or requirement assignment."""

    id: str
    kind: str
    source_id: str
    pupil_id: str
    name: str
    amount: Decimal
    original_amount: Decimal
    paid: Decimal
    balance: Decimal
    payment_status: str
    status: str
    discount: dict = None
    validity: dict = None
    quantity_required: int = None
    quantity_received: int = None
    remaining_quantity: int = None
    collection_status: str = None
    item_names: list = field(default_factory=list)

    @property
    def is_settled(self):
        return self.balance <= 0

    def as_dict(self):
        data = asdict(self)
        for key in ('amount', 'original_amount', 'paid', 'balance'):
            data[key] = str(data[key])
        if data['discount']:
            data['discount'] = {
                key: str(value) if isinstance(value, Decimal) else value
                for key, value in data['discount'].items()
            }
        return data


def bundle_name(label, selection_mode, item_names):
    """
    Fee name for a bundle of catalog items:
    'Full Uniform Set', 'Uniform Items (Shirt, Shorts...)' or 'Uniform - Shirt'.
    """
    if selection_mode == 'full':
        return f"Full {label} Set"
    if selection_mode == 'partial':
        shown = ', '.join(item_names[:2])
        more = '...' if len(item_names) > 2 else ''
        return f"{label} Items ({shown}{more})"
    if selection_mode == 'item':
        return f"{label} - {item_names[0] if item_names else 'Unknown Item'}"
    return f"{label} Items"


# =============================================================================
# FEE BRIDGE
# =============================================================================

class FeeBridge:
    """
    Two-way projection between assignments and fee lines.
    """

    @staticmethod
    def synthesize(record, calendar=None):
        """
        Build the fee line for a uniform or requirement assignment.

        Args:
            record: UniformAssignment or RequirementAssignment
            calendar: AcademicCalendar used for the validity description

        Returns:
            BridgedFee
        """
        if record.KIND not in BRIDGED_MODELS:
            raise ValidationError(f"{record.KIND} assignments are not collected through the fee bridge")

        items_field, label = ITEMS_FIELDS[record.KIND]
        item_names = sorted(item.name for item in getattr(record, items_field).all())

        bridged = BridgedFee(
            id=record.reference,
            kind=record.KIND,
            source_id=str(record.pk),
            pupil_id=str(record.pupil_id),
            name=bundle_name(label, record.selection_mode, item_names),
            amount=record.amount_due,
            original_amount=record.amount_due,
            paid=record.paid_amount,
            balance=record.balance,
            payment_status=record.payment_status,
            status=record.status,
            item_names=item_names,
        )

        if isinstance(record, UniformAssignment):
            bridged.original_amount = record.original_amount
            bridged.collection_status = record.collection_status
            if record.discount_amount > 0:
                discount = record.discount
                bridged.discount = {
                    'name': discount.name if discount else 'Uniform Discount',
                    'type': discount.discount_type.lower() if discount else 'fixed',
                    'value': discount.discount_value if discount else record.discount_amount,
                    'amount': record.discount_amount,
                }
        else:
            bridged.quantity_required = record.total_quantity_required
            bridged.quantity_received = record.quantity_received
            bridged.remaining_quantity = record.remaining_quantity

        if calendar is not None:
            bridged.validity = describe_validity(record, calendar)

        return bridged

    @staticmethod
    def fees_for_pupil(pupil, year_id=None, term_id=None, calendar=None, context=None):
        """
        Fee lines for every uniform and requirement assignment of a pupil.

        With a year or term only the assignments counting toward that
        period are returned; without one every assignment is, which is
        the carry-forward view of everything ever owed.
        """
        if calendar is None:
            calendar = AcademicCalendar.from_database()

        records = AssignmentService.assignments_for_pupil(pupil, kinds=BRIDGED_MODELS.keys())

        if year_id is not None or term_id is not None:
            context = current_period(context, calendar)
            records = [
                r for r in records
                if applies_to_period(r, year_id, term_id, calendar, context)
            ]

        return [FeeBridge.synthesize(r, calendar) for r in records]

    @staticmethod
    def carry_forward(pupil, calendar=None):
        """Unsettled fee lines of a pupil across all periods."""
        return [
            fee for fee in FeeBridge.fees_for_pupil(pupil, calendar=calendar)
            if not fee.is_settled
        ]

    @staticmethod
    def resolve(bridged_fee_id):
        """
        Map a bridged fee id back to its assignment.

        Raises:
            AssignmentNotFound
        """
        kind, _, assignment_id = str(bridged_fee_id).partition('-')
        if kind not in BRIDGED_MODELS or not assignment_id:
            raise AssignmentNotFound(f"'{bridged_fee_id}' is not a bridged fee id")
        return AssignmentService.get_assignment(kind, assignment_id)

    @staticmethod
    def clean_amount(amount):
        """
        Parse a payment amount into a positive, finite Decimal with at most
        the configured number of decimal places.

        Raises:
            ValidationError
        """
        try:
            value = Decimal(str(amount))
        except InvalidOperation:
            raise ValidationError({'amount': f"'{amount}' is not a valid amount"})

        if not value.is_finite():
            raise ValidationError({'amount': f"'{amount}' is not a valid amount"})

        if value <= 0:
            raise ValidationError({'amount': "Payment amount must be positive"})

        try:
            rounded = to_money(value)
        except InvalidOperation:
            raise ValidationError({'amount': f"'{amount}' is too large"})

        if value != rounded:
            raise ValidationError({'amount': f"'{amount}' has too many decimal places"})

        return value

    @staticmethod
    @transaction.atomic
    def record_payment(target, amount, actor=None, payment_date=None, reference='',
                       context=None, notes=''):
        """
        Pay against a bridged fee and write the payment back to its assignment.

        Args:
            target: bridged fee id or the assignment itself
            amount: Decimal (or str/int) amount paid
            actor: User or name receiving the payment
            payment_date: date, today when omitted
            reference: receipt or transaction reference
            context: PeriodContext; the period flagged current when omitted
            notes: optional free text

        Returns:
            fees.Payment instance

        Example:
            payment = FeeBridge.record_payment('uniform-3f0c...', '25000', actor=bursar)
        """
        record = FeeBridge.resolve(target) if isinstance(target, str) else target

        if record.KIND not in BRIDGED_MODELS:
            raise ValidationError(f"{record.KIND} assignments are not collected through the fee bridge")

        amount = FeeBridge.clean_amount(amount)

        remaining = record.balance
        if amount > remaining:
            logger.warning(
                f"Rejected payment of {amount} on {record.reference}: balance is {remaining}"
            )
            raise ValidationError(
                {'amount': f"Payment amount ({amount}) exceeds remaining balance ({remaining})"}
            )

        context = current_period(context)
        actor_name = resolve_actor(actor)

        record.paid_amount = record.paid_amount + amount
        record.payment_status = derive_payment_status(record.paid_amount, record.amount_due)
        record.commit_changes('paid_amount', 'payment_status')

        payment = Payment.objects.create(
            payment_number=generate_payment_number(),
            pupil=record.pupil,
            amount=amount,
            payment_date=payment_date or timezone.localdate(),
            reference_number=reference or '',
            academic_year_id=context.current_year_id,
            term_id=context.current_term_id,
            tracking_record=record,
            fee_reference=record.reference,
            received_by=actor_name,
            notes=notes or '',
        )

        record.append_history(
            'payment',
            previous_status=record.status,
            new_status=record.status,
            reason=notes or '',
            processed_by=actor_name,
            amount=amount,
            paid_amount_after=record.paid_amount,
            quantity_received_after=getattr(record, 'quantity_received', None),
            payment_status_after=record.payment_status,
            academic_year_id=context.current_year_id,
            term_id=context.current_term_id,
        )

        logger.info(
            f"Processed payment {payment.payment_number} on {record.reference}: {format_amount(amount)} "
            f"(balance {format_amount(record.balance)})"
        )
        return payment

    @staticmethod
    @transaction.atomic
    def reverse_payment(payment, reason, actor=None, context=None):
        """
        Reverse a bridged payment and take it back off its assignment.

        The payment row is kept and marked REVERSED; the assignment's paid
        amount and payment status are recomputed without it.

        Args:
            payment: fees.Payment instance
            reason: why the payment is reversed (required)
            actor: User or name reversing the payment
            context: PeriodContext; the period flagged current when omitted

        Returns:
            the reversed fees.Payment

        Raises:
            ValidationError: no reason, already reversed or the assignment is gone
            ConcurrentModificationError: the assignment changed since it was read
        """
        reason = (reason or '').strip()
        if not reason:
            raise ValidationError({'reason': "A reason is required to reverse a payment"})

        if payment.is_reversed:
            raise ValidationError(f"Payment {payment.payment_number} has already been reversed")

        record = payment.tracking_record
        if record is None or record.KIND not in BRIDGED_MODELS:
            raise ValidationError(
                f"The assignment paid by {payment.payment_number} no longer exists"
            )

        if payment.amount > record.paid_amount:
            raise ValidationError(
                f"Payment {payment.payment_number} ({payment.amount}) is more than "
                f"{record.reference} has been paid ({record.paid_amount})"
            )

        context = current_period(context)
        actor_name = resolve_actor(actor)
        now = timezone.now()

        # Only one reversal may win for a given payment
        reversed_rows = Payment.objects.filter(pk=payment.pk, status='COMPLETED').update(
            status='REVERSED',
            reversed_at=now,
            reversed_by=actor_name,
            reversal_reason=reason,
            updated_at=now,
        )
        if not reversed_rows:
            raise ValidationError(f"Payment {payment.payment_number} has already been reversed")

        payment.status = 'REVERSED'
        payment.reversed_at = now
        payment.reversed_by = actor_name
        payment.reversal_reason = reason

        record.paid_amount = record.paid_amount - payment.amount
        record.payment_status = derive_payment_status(record.paid_amount, record.amount_due)
        record.commit_changes('paid_amount', 'payment_status')

        record.append_history(
            'payment_reversed',
            previous_status=record.status,
            new_status=record.status,
            reason=reason,
            processed_by=actor_name,
            amount=payment.amount,
            paid_amount_after=record.paid_amount,
            quantity_received_after=getattr(record, 'quantity_received', None),
            payment_status_after=record.payment_status,
            academic_year_id=context.current_year_id,
            term_id=context.current_term_id,
        )

        logger.warning(
            f"Reversed payment {payment.payment_number} of {format_amount(payment.amount)} "
            f"on {record.reference} by {actor_name}: {reason}"
        )
        return payment
