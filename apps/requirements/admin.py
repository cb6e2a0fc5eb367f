# requirements/admin.py

from django.contrib import admin
from .models import RequirementItem


@admin.register(RequirementItem)
class RequirementItemAdmin(admin.ModelAdmin):
    list_display = ('name', 'code', 'quantity_required', 'price', 'unit_price', 'is_active')
    list_filter = ('is_active', 'class_targeting')
    filter_horizontal = ('applicable_classes',)
