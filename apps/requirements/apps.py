# requirements/apps.py

from django.apps import AppConfig


class RequirementsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "requirements"
    verbose_name = "Pupil Requirements"
