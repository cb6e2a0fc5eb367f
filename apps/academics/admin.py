# academics/admin.py

from django.contrib import admin
from .models import AcademicYear, Term, SchoolClass


class TermInline(admin.TabularInline):
    model = Term
    extra = 0
    fields = ('term_number', 'name', 'start_date', 'end_date', 'is_current')


@admin.register(AcademicYear)
class AcademicYearAdmin(admin.ModelAdmin):
    list_display = ('name', 'start_date', 'end_date', 'is_current', 'is_active')
    inlines = [TermInline]


@admin.register(SchoolClass)
class SchoolClassAdmin(admin.ModelAdmin):
    list_display = ('name', 'code', 'level', 'is_active')
