# uniforms/apps.py

from django.apps import AppConfig


class UniformsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "uniforms"
    verbose_name = "Uniform Catalog"
