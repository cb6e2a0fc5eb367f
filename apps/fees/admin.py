# fees/admin.py

from django.contrib import admin
from .models import FeesStructure, FeesDiscount, Payment


@admin.register(FeesStructure)
class FeesStructureAdmin(admin.ModelAdmin):
    list_display = ('name', 'code', 'category', 'amount', 'is_assignment_fee', 'is_active')
    list_filter = ('category', 'is_assignment_fee', 'is_active', 'class_targeting')
    filter_horizontal = ('applicable_classes',)


@admin.register(FeesDiscount)
class FeesDiscountAdmin(admin.ModelAdmin):
    list_display = ('name', 'code', 'discount_type', 'discount_value', 'is_active')


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """Payments are written by the fee bridge; the admin only shows them"""
    list_display = (
        'payment_number', 'pupil', 'amount', 'payment_date', 'fee_reference',
        'received_by', 'status', 'reversed_by',
    )
    list_filter = ('status', 'payment_date')
    search_fields = ('payment_number', 'reference_number', 'pupil__admission_number')

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
