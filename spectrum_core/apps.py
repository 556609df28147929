# spectrum_core/apps.py

from django.apps import AppConfig


class SpectrumCoreConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "spectrum_core"
    verbose_name = "Spectrum LIMS"

    def ready(self):
        from . import signals  # noqa
