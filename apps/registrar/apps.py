# registrar/apps.py

from django.apps import AppConfig


class RegistrarConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "registrar"
    verbose_name = "Registrar Document Requests"
