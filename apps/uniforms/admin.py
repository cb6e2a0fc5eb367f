# uniforms/admin.py

from django.contrib import admin
from .models import UniformItem


@admin.register(UniformItem)
class UniformItemAdmin(admin.ModelAdmin):
    list_display = ('name', 'code', 'item_type', 'price', 'gender_targeting', 'is_active')
    list_filter = ('item_type', 'gender_targeting', 'is_active')
    filter_horizontal = ('applicable_classes',)
