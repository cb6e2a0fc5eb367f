# students/admin.py

from django.contrib import admin
from .models import Pupil


@admin.register(Pupil)
class PupilAdmin(admin.ModelAdmin):
    list_display = ('admission_number', 'first_name', 'last_name', 'gender', 'section', 'current_class', 'status')
    list_filter = ('gender', 'section', 'status', 'current_class')
    search_fields = ('admission_number', 'first_name', 'last_name')
