# assignments/reconciliation.py

"""
Requirement Reception and Uniform Collection

Receives requirement items from two channels into one received total:
- parent: handed in at class, counted as payment as well as receipt
- office: released by the office after being paid for there, receipt only

A reception may never take the received total past what is required.

Uniform items go the other way: the office hands them to the pupil,
one or more at a time, until every assigned item is collected.
"""

from decimal import Decimal, InvalidOperation
from django.db import transaction
from django.utils import timezone
from django.core.exceptions import ValidationError
import logging

from .models import RequirementAssignment, UniformAssignment
from .services import current_period
from .utils import resolve_actor, derive_payment_status, to_money

logger = logging.getLogger(__name__)

CHANNEL_CHOICES = (
    ('parent', 'From Parent'),
    ('office', 'From Office'),
)

CHANNEL_ACTIONS = {
    'parent': 'payment_and_receipt',
    'office': 'receipt_only',
}


class ReconciliationEngine:
    """
    Reception of requirement items and their cash equivalent.
    """

    @staticmethod
    def cash_equivalent(price, total_required, quantity):
        """
        Money value of ``quantity`` items out of ``total_required`` priced
        ``price`` in total.

        Not rounded, so that the value of two deliveries adds up to the
        value of their combined quantity.
        """
        if total_required <= 0:
            return Decimal('0')
        try:
            return Decimal(str(price)) * Decimal(quantity) / Decimal(total_required)
        except InvalidOperation:
            raise ValidationError(f"Cannot value quantity {quantity!r} at price {price!r}")

    @staticmethod
    @transaction.atomic
    def record_reception(record, channel, quantity, actor=None, context=None, notes=''):
        """
        Record items received against a requirement assignment.

        Args:
            record: RequirementAssignment
            channel: 'parent' or 'office'
            quantity: number of items received (positive int)
            actor: User or name receiving the items
            context: PeriodContext; the period flagged current when omitted
            notes: optional free text

        Returns:
            AssignmentHistory entry written for the reception

        Raises:
            ValidationError: wrong record type, unknown channel, bad quantity
                or more items than remain outstanding
            ConcurrentModificationError: the record changed since it was read
        """
        if not isinstance(record, RequirementAssignment):
            raise ValidationError("Items can only be received against requirement assignments")

        if channel not in CHANNEL_ACTIONS:
            raise ValidationError({'channel': f"Unknown reception channel '{channel}'"})

        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError({'quantity': "Quantity must be a positive whole number"})

        remaining = record.remaining_quantity
        if quantity > remaining:
            logger.warning(
                f"Rejected reception of {quantity} on {record.reference}: only {remaining} remaining"
            )
            raise ValidationError(
                {'quantity': f"Quantity ({quantity}) exceeds remaining quantity ({remaining})"}
            )

        context = current_period(context)
        actor_name = resolve_actor(actor)
        fields = ['quantity_received', 'last_received_at', 'last_received_by']
        cash = None

        if channel == 'parent':
            before = record.quantity_received_from_parent
            after = before + quantity
            cash = (
                to_money(ReconciliationEngine.cash_equivalent(
                    record.total_price, record.total_quantity_required, after))
                - to_money(ReconciliationEngine.cash_equivalent(
                    record.total_price, record.total_quantity_required, before))
            )
            cash = min(cash, record.balance)

            record.quantity_received_from_parent = after
            record.paid_amount = record.paid_amount + cash
            record.payment_status = derive_payment_status(record.paid_amount, record.total_price)
            fields += ['quantity_received_from_parent', 'paid_amount', 'payment_status']
        else:
            record.quantity_received_from_office += quantity
            fields.append('quantity_received_from_office')

        record.quantity_received += quantity
        record.last_received_at = timezone.now()
        record.last_received_by = actor_name
        record.commit_changes(*fields)

        entry = record.append_history(
            CHANNEL_ACTIONS[channel],
            previous_status=record.status,
            new_status=record.status,
            reason=notes or '',
            processed_by=actor_name,
            quantity=quantity,
            amount=cash,
            paid_amount_after=record.paid_amount,
            quantity_received_after=record.quantity_received,
            payment_status_after=record.payment_status,
            academic_year_id=context.current_year_id,
            term_id=context.current_term_id,
        )

        logger.info(
            f"Received {quantity} item(s) on {record.reference} from {channel} by {actor_name}; "
            f"{record.remaining_quantity} remaining"
        )
        return entry

    @staticmethod
    @transaction.atomic
    def record_collection(record, items, actor=None, context=None, notes=''):
        """
        Record uniform items handed over to the pupil.

        Args:
            record: UniformAssignment
            items: iterable of UniformItem (or their ids) being collected now
            actor: User or name handing the items over
            context: PeriodContext; the period flagged current when omitted
            notes: optional free text

        Returns:
            AssignmentHistory entry written for the collection

        Raises:
            ValidationError: wrong record type, no items, items not assigned
                or already collected
            ConcurrentModificationError: the record changed since it was read
        """
        if not isinstance(record, UniformAssignment):
            raise ValidationError("Items can only be collected against uniform assignments")

        assigned = {str(item.pk): item for item in record.uniform_items.all()}
        outstanding = {str(item.pk) for item in record.outstanding_items()}

        keys = []
        for item in items or []:
            key = str(getattr(item, 'pk', item))
            if key not in keys:
                keys.append(key)

        if not keys:
            raise ValidationError({'items': "Select at least one uniform item to collect"})

        unknown = [key for key in keys if key not in assigned]
        if unknown:
            raise ValidationError({'items': "Only items on this assignment can be collected"})

        repeated = [assigned[key].name for key in keys if key not in outstanding]
        if repeated:
            logger.warning(f"Rejected collection on {record.reference}: already collected {repeated}")
            raise ValidationError(
                {'items': f"Already collected: {', '.join(sorted(repeated))}"}
            )

        collecting = [assigned[key] for key in keys]
        complete = len(collecting) == len(outstanding)

        context = current_period(context)
        actor_name = resolve_actor(actor)

        record.collection_status = 'collected' if complete else 'partial'
        fields = ['collection_status']
        if complete:
            record.collected_at = timezone.now()
            fields.append('collected_at')
        record.commit_changes(*fields)
        record.collected_items.add(*collecting)

        names = ', '.join(sorted(item.name for item in collecting))
        reason = f"Collected: {names}"
        if notes:
            reason = f"{reason}. {notes}"

        entry = record.append_history(
            'collected',
            previous_status=record.status,
            new_status=record.status,
            reason=reason,
            processed_by=actor_name,
            quantity=len(collecting),
            paid_amount_after=record.paid_amount,
            payment_status_after=record.payment_status,
            academic_year_id=context.current_year_id,
            term_id=context.current_term_id,
        )

        logger.info(
            f"Handed over {len(collecting)} uniform item(s) on {record.reference} by {actor_name}; "
            f"collection {record.collection_status}"
        )
        return entry
