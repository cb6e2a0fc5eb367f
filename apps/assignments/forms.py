# assignments/forms.py

"""
Assignment Forms

Validate the input of the assignment endpoints:
- Time settings (validity and term applicability)
- Assignment creation for fees, uniforms and requirements
- Disable, reception, collection, payment and reversal submissions
"""

from django import forms
from django.core.exceptions import ValidationError
from decimal import Decimal

from academics.models import AcademicYear, Term
from students.models import Pupil
from fees.models import FeesStructure, FeesDiscount
from uniforms.models import UniformItem
from requirements.models import RequirementItem

from .models import (
    ASSIGNMENT_MODELS, VALIDITY_CHOICES, TERM_APPLICABILITY_CHOICES,
    DISABLE_EFFECT_CHOICES, SELECTION_MODE_CHOICES,
)
from .reconciliation import CHANNEL_CHOICES
from .validity import TimeSettings


# =============================================================================
# TIME SETTINGS FORMS
# =============================================================================

class TimeSettingsForm(forms.Form):
    """Validity descriptor and term applicability"""

    validity_type = forms.ChoiceField(choices=VALIDITY_CHOICES, required=False)
    start_academic_year = forms.ModelChoiceField(
        queryset=AcademicYear.objects.all(),
        required=False
    )
    end_academic_year = forms.ModelChoiceField(
        queryset=AcademicYear.objects.all(),
        required=False
    )
    term_applicability = forms.ChoiceField(choices=TERM_APPLICABILITY_CHOICES, required=False)
    applicable_terms = forms.ModelMultipleChoiceField(
        queryset=Term.objects.all(),
        required=False
    )

    def clean(self):
        cleaned_data = super().clean()
        self.get_time_settings().validate()
        return cleaned_data

    def get_time_settings(self):
        data = self.cleaned_data
        start = data.get('start_academic_year')
        end = data.get('end_academic_year')
        return TimeSettings(
            validity_type=data.get('validity_type') or 'indefinite',
            start_academic_year=start.pk if start else None,
            end_academic_year=end.pk if end else None,
            term_applicability=data.get('term_applicability') or 'all_terms',
            applicable_terms=tuple(t.pk for t in data.get('applicable_terms') or ()),
        )


class AssignmentCreateForm(TimeSettingsForm):
    """Assign a fee structure, uniform items or requirement items to a pupil"""

    kind = forms.ChoiceField(choices=[(kind, kind.title()) for kind in ASSIGNMENT_MODELS])
    pupil = forms.ModelChoiceField(queryset=Pupil.objects.all())

    fee_structure = forms.ModelChoiceField(
        queryset=FeesStructure.objects.all(),
        required=False
    )
    uniform_items = forms.ModelMultipleChoiceField(
        queryset=UniformItem.objects.all(),
        required=False
    )
    requirement_items = forms.ModelMultipleChoiceField(
        queryset=RequirementItem.objects.all(),
        required=False
    )
    selection_mode = forms.ChoiceField(choices=SELECTION_MODE_CHOICES, required=False)
    discount = forms.ModelChoiceField(
        queryset=FeesDiscount.objects.filter(is_active=True),
        required=False
    )
    notes = forms.CharField(required=False, max_length=1000)

    def clean(self):
        cleaned_data = super().clean()

        kind = cleaned_data.get('kind')
        if kind == 'fee' and not cleaned_data.get('fee_structure'):
            raise ValidationError({'fee_structure': 'Select at least one fee structure.'})

        if not cleaned_data.get('selection_mode'):
            cleaned_data['selection_mode'] = 'item'

        return cleaned_data


class TimeAdjustmentForm(TimeSettingsForm):
    reason = forms.CharField(required=False, max_length=1000)


# =============================================================================
# STATUS FORMS
# =============================================================================

class DisableForm(forms.Form):
    """Disable an assignment from the current or the next term"""

    effect = forms.ChoiceField(choices=DISABLE_EFFECT_CHOICES)
    reason = forms.CharField(required=False, max_length=1000)


class EnableForm(forms.Form):
    reason = forms.CharField(required=False, max_length=1000)


# =============================================================================
# RECEPTION AND PAYMENT FORMS
# =============================================================================

class ReceptionForm(forms.Form):
    """Requirement items received from a parent or released by the office"""

    channel = forms.ChoiceField(choices=CHANNEL_CHOICES)
    quantity = forms.IntegerField(min_value=1)
    notes = forms.CharField(required=False, max_length=1000)


class PaymentForm(forms.Form):
    """Payment against a bridged fee"""

    amount = forms.DecimalField(max_digits=12, decimal_places=2)
    payment_date = forms.DateField(required=False)
    reference_number = forms.CharField(required=False, max_length=100)
    notes = forms.CharField(required=False, max_length=1000)

    def clean_amount(self):
        amount = self.cleaned_data.get('amount')

        if amount is not None and amount <= Decimal('0'):
            raise ValidationError('Amount must be greater than zero.')

        return amount


class CollectionForm(forms.Form):
    """Uniform items handed over to the pupil"""

    items = forms.ModelMultipleChoiceField(queryset=UniformItem.objects.all())
    notes = forms.CharField(required=False, max_length=1000)


class ReversalForm(forms.Form):
    reason = forms.CharField(max_length=1000)
