# assignments/admin.py

from django.contrib import admin, messages
from django.contrib.contenttypes.admin import GenericTabularInline
from django.core.exceptions import ValidationError

from .exceptions import ConcurrentModificationError
from .models import FeeAssignment, UniformAssignment, RequirementAssignment, AssignmentHistory
from .services import StatusMachine
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# INLINE ADMINS
# =============================================================================

class AssignmentHistoryInline(GenericTabularInline):
    """Read-only history of an assignment"""
    model = AssignmentHistory
    ct_field = 'content_type'
    ct_fk_field = 'object_id'
    extra = 0
    can_delete = False
    ordering = ('sequence',)
    fields = (
        'sequence', 'occurred_at', 'action', 'previous_status', 'new_status',
        'disable_effect', 'amount', 'quantity', 'processed_by', 'reason',
    )
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False


# =============================================================================
# ASSIGNMENT ADMINS
# =============================================================================

class AssignmentAdmin(admin.ModelAdmin):
    """
    View-only admin. Changes go through the lifecycle services so that
    versions and history stay consistent.
    """
    inlines = [AssignmentHistoryInline]
    list_filter = ('status', 'validity_type', 'term_applicability')
    search_fields = ('pupil__first_name', 'pupil__last_name', 'pupil__admission_number')
    actions = ['disable_from_next_term', 'enable_assignments']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def _run_transition(self, request, queryset, transition, label):
        done = 0
        for record in queryset:
            try:
                transition(record)
                done += 1
            except (ValidationError, ConcurrentModificationError) as e:
                self.message_user(request, f"{record}: {' '.join(getattr(e, 'messages', [str(e)]))}", messages.WARNING)
        if done:
            self.message_user(request, f"{done} assignment(s) {label}", messages.SUCCESS)

    @admin.action(description="Disable from next term")
    def disable_from_next_term(self, request, queryset):
        self._run_transition(
            request, queryset,
            lambda record: StatusMachine.disable(record, 'from_next_term', actor=request.user),
            'disabled'
        )

    @admin.action(description="Enable")
    def enable_assignments(self, request, queryset):
        self._run_transition(
            request, queryset,
            lambda record: StatusMachine.enable(record, actor=request.user),
            'enabled'
        )


@admin.register(FeeAssignment)
class FeeAssignmentAdmin(AssignmentAdmin):
    list_display = ('pupil', 'fee_structure', 'status', 'validity_type', 'assigned_by', 'assigned_at')
    list_select_related = ('pupil', 'fee_structure')


@admin.register(UniformAssignment)
class UniformAssignmentAdmin(AssignmentAdmin):
    list_display = (
        'pupil', 'selection_mode', 'final_amount', 'paid_amount',
        'payment_status', 'collection_status', 'status',
    )
    list_filter = AssignmentAdmin.list_filter + ('payment_status', 'collection_status')
    list_select_related = ('pupil',)


@admin.register(RequirementAssignment)
class RequirementAssignmentAdmin(AssignmentAdmin):
    list_display = (
        'pupil', 'selection_mode', 'total_quantity_required', 'quantity_received',
        'total_price', 'paid_amount', 'payment_status', 'status',
    )
    list_filter = AssignmentAdmin.list_filter + ('payment_status',)
    list_select_related = ('pupil',)
