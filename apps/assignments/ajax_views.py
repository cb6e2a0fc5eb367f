# assignments/ajax_views.py

from django.http import JsonResponse
from django.core.exceptions import ValidationError, ObjectDoesNotExist
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST
from functools import wraps
import json
import logging

from academics.services import AcademicCalendar
from fees.models import Payment
from students.models import Pupil

from .bridge import FeeBridge
from .exceptions import ConcurrentModificationError
from .forms import (
    AssignmentCreateForm, TimeAdjustmentForm, DisableForm, EnableForm,
    ReceptionForm, CollectionForm, PaymentForm, ReversalForm,
)
from .reconciliation import ReconciliationEngine
from .services import AssignmentService, StatusMachine
from .validity import applies_to_period, describe_validity

logger = logging.getLogger(__name__)


# =============================================================================
# HELPERS
# =============================================================================

def json_endpoint(view):
    """
    Wrap an endpoint so failures come back as
    ``{"success": false, "message": ...}`` with a matching status code.
    """
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)

        except json.JSONDecodeError:
            return JsonResponse(
                {"success": False, "message": "Invalid JSON data."},
                status=400
            )

        except ValidationError as e:
            return JsonResponse(
                {"success": False, "message": " ".join(e.messages)},
                status=400
            )

        except ObjectDoesNotExist as e:
            return JsonResponse(
                {"success": False, "message": str(e) or "Not found."},
                status=404
            )

        except ConcurrentModificationError as e:
            return JsonResponse(
                {"success": False, "message": str(e)},
                status=409
            )

        except Exception as e:
            logger.error(f"Error in {view.__name__}: {e}", exc_info=True)
            return JsonResponse(
                {"success": False, "message": f"Server error: {str(e)}"},
                status=500
            )

    return wrapper


def parse_body(request):
    if not request.body:
        return {}
    data = json.loads(request.body)
    if not isinstance(data, dict):
        raise ValidationError("Expected a JSON object.")
    return data


def bind(form_class, request):
    """Bind and validate a form from the JSON body; invalid input is a 400."""
    form = form_class(parse_body(request))
    if not form.is_valid():
        messages = [
            f"{field}: {' '.join(errors)}" if field != '__all__' else ' '.join(errors)
            for field, errors in form.errors.items()
        ]
        raise ValidationError(messages)
    return form


def serialize_history(record):
    return [
        {
            "sequence": entry.sequence,
            "occurred_at": entry.occurred_at.isoformat(),
            "action": entry.action,
            "previous_status": entry.previous_status,
            "new_status": entry.new_status,
            "disable_effect": entry.disable_effect,
            "reason": entry.reason,
            "processed_by": entry.processed_by,
            "previous_time_settings": entry.previous_time_settings,
            "amount": str(entry.amount) if entry.amount is not None else None,
            "quantity": entry.quantity,
            "paid_amount_after": str(entry.paid_amount_after) if entry.paid_amount_after is not None else None,
            "quantity_received_after": entry.quantity_received_after,
            "payment_status_after": entry.payment_status_after,
        }
        for entry in record.get_ordered_history()
    ]


def serialize_assignment(record, calendar, year_id=None, term_id=None):
    data = {
        "id": str(record.pk),
        "reference": record.reference,
        "kind": record.KIND,
        "pupil_id": str(record.pupil_id),
        "pupil_name": record.pupil.get_full_name(),
        "status": record.status,
        "disable_effect": record.disable_effect,
        "version": record.version,
        "assigned_by": record.assigned_by,
        "assigned_at": record.assigned_at.isoformat(),
        "time_settings": record.time_settings_snapshot(),
        "description": describe_validity(record, calendar),
        "applies_this_period": applies_to_period(
            record, year_id, term_id, calendar, calendar.current_context()
        ),
    }

    if record.KIND == 'fee':
        data["fee_structure"] = record.fee_structure.name
        data["amount"] = str(record.fee_structure.amount)
    else:
        data["fee"] = FeeBridge.synthesize(record, calendar).as_dict()

    return data


# =============================================================================
# CREATE / REMOVE
# =============================================================================

@csrf_exempt
@require_POST
@json_endpoint
def create_assignment(request):
    """
    AJAX endpoint to assign a fee structure, uniform or requirement items
    """
    form = bind(AssignmentCreateForm, request)
    data = form.cleaned_data
    kind = data['kind']

    if kind == 'fee':
        record = AssignmentService.create_fee_assignment(
            data['pupil'],
            data['fee_structure'],
            time_settings=form.get_time_settings(),
            actor=request.user,
            notes=data['notes'],
        )
    elif kind == 'uniform':
        record = AssignmentService.create_uniform_assignment(
            data['pupil'],
            data['uniform_items'],
            selection_mode=data['selection_mode'],
            time_settings=form.get_time_settings(),
            discount=data['discount'],
            actor=request.user,
            notes=data['notes'],
        )
    else:
        record = AssignmentService.create_requirement_assignment(
            data['pupil'],
            data['requirement_items'],
            selection_mode=data['selection_mode'],
            time_settings=form.get_time_settings(),
            actor=request.user,
            notes=data['notes'],
        )

    calendar = AcademicCalendar.from_database()
    return JsonResponse(
        {
            "success": True,
            "message": "Assignment created successfully",
            "assignment": serialize_assignment(record, calendar),
        },
        status=201
    )


@csrf_exempt
@require_POST
@json_endpoint
def remove_assignment(request, kind, assignment_id):
    record = AssignmentService.get_assignment(kind, assignment_id)
    AssignmentService.remove_assignment(record, actor=request.user)
    return JsonResponse({"success": True, "message": "Assignment removed successfully"})


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================

@csrf_exempt
@require_POST
@json_endpoint
def disable_assignment(request, kind, assignment_id):
    record = AssignmentService.get_assignment(kind, assignment_id)
    form = bind(DisableForm, request)

    StatusMachine.disable(
        record,
        effect=form.cleaned_data['effect'],
        reason=form.cleaned_data['reason'],
        actor=request.user,
    )

    calendar = AcademicCalendar.from_database()
    return JsonResponse({
        "success": True,
        "message": "Assignment disabled",
        "assignment": serialize_assignment(record, calendar),
    })


@csrf_exempt
@require_POST
@json_endpoint
def enable_assignment(request, kind, assignment_id):
    record = AssignmentService.get_assignment(kind, assignment_id)
    form = bind(EnableForm, request)

    StatusMachine.enable(record, actor=request.user, reason=form.cleaned_data['reason'])

    calendar = AcademicCalendar.from_database()
    return JsonResponse({
        "success": True,
        "message": "Assignment enabled",
        "assignment": serialize_assignment(record, calendar),
    })


@csrf_exempt
@require_POST
@json_endpoint
def adjust_time_settings(request, kind, assignment_id):
    record = AssignmentService.get_assignment(kind, assignment_id)
    form = bind(TimeAdjustmentForm, request)

    StatusMachine.adjust_time_settings(
        record,
        form.get_time_settings(),
        actor=request.user,
        reason=form.cleaned_data['reason'],
    )

    calendar = AcademicCalendar.from_database()
    return JsonResponse({
        "success": True,
        "message": "Time settings updated",
        "assignment": serialize_assignment(record, calendar),
    })


# =============================================================================
# RECEPTION, COLLECTION AND PAYMENT
# =============================================================================

@csrf_exempt
@require_POST
@json_endpoint
def record_reception(request, assignment_id):
    """
    AJAX endpoint to receive requirement items from a parent or the office
    """
    record = AssignmentService.get_assignment('requirement', assignment_id)
    form = bind(ReceptionForm, request)

    entry = ReconciliationEngine.record_reception(
        record,
        form.cleaned_data['channel'],
        form.cleaned_data['quantity'],
        actor=request.user,
        notes=form.cleaned_data['notes'],
    )

    return JsonResponse({
        "success": True,
        "message": f"Received {entry.quantity} item(s)",
        "quantity_received": record.quantity_received,
        "remaining_quantity": record.remaining_quantity,
        "paid_amount": str(record.paid_amount),
        "payment_status": record.payment_status,
    })


@csrf_exempt
@require_POST
@json_endpoint
def record_collection(request, assignment_id):
    """
    AJAX endpoint to hand assigned uniform items over to the pupil
    """
    record = AssignmentService.get_assignment('uniform', assignment_id)
    form = bind(CollectionForm, request)

    entry = ReconciliationEngine.record_collection(
        record,
        form.cleaned_data['items'],
        actor=request.user,
        notes=form.cleaned_data['notes'],
    )

    return JsonResponse({
        "success": True,
        "message": f"Collected {entry.quantity} item(s)",
        "collection_status": record.collection_status,
        "outstanding_items": sorted(item.name for item in record.outstanding_items()),
    })


@csrf_exempt
@require_POST
@json_endpoint
def record_payment(request, fee_id):
    """
    AJAX endpoint to pay against a bridged uniform or requirement fee
    """
    record = FeeBridge.resolve(fee_id)
    form = bind(PaymentForm, request)

    payment = FeeBridge.record_payment(
        record,
        form.cleaned_data['amount'],
        actor=request.user,
        payment_date=form.cleaned_data['payment_date'],
        reference=form.cleaned_data['reference_number'],
        notes=form.cleaned_data['notes'],
    )

    return JsonResponse({
        "success": True,
        "message": "Payment recorded successfully",
        "payment_number": payment.payment_number,
        "fee": FeeBridge.synthesize(record).as_dict(),
    })


@csrf_exempt
@require_POST
@json_endpoint
def reverse_payment(request, payment_id):
    payment = Payment.objects.get(pk=payment_id)
    form = bind(ReversalForm, request)

    FeeBridge.reverse_payment(payment, form.cleaned_data['reason'], actor=request.user)

    return JsonResponse({
        "success": True,
        "message": f"Payment {payment.payment_number} reversed",
        "fee": FeeBridge.synthesize(payment.tracking_record).as_dict(),
    })


# =============================================================================
# READ ACCESSORS
# =============================================================================

@require_GET
@json_endpoint
def assignment_detail(request, kind, assignment_id):
    record = AssignmentService.get_assignment(kind, assignment_id)
    calendar = AcademicCalendar.from_database()

    data = serialize_assignment(
        record,
        calendar,
        year_id=request.GET.get('year') or None,
        term_id=request.GET.get('term') or None,
    )
    data["history"] = serialize_history(record)

    return JsonResponse({"success": True, "assignment": data})


@require_GET
@json_endpoint
def pupil_fees(request, pupil_id):
    """
    Bridged fees of a pupil, for one period (``?year=&term=``) or all of them
    """
    pupil = Pupil.objects.get(pk=pupil_id)
    calendar = AcademicCalendar.from_database()

    fees = FeeBridge.fees_for_pupil(
        pupil,
        year_id=request.GET.get('year') or None,
        term_id=request.GET.get('term') or None,
        calendar=calendar,
    )

    return JsonResponse({
        "success": True,
        "pupil": pupil.get_full_name(),
        "fees": [fee.as_dict() for fee in fees],
        "total_balance": str(sum((fee.balance for fee in fees), 0)),
    })
