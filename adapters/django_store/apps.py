"""
Bazaar Django Store — App Configuration
==========================================
Registers the persistence models. The app holds rows only; every
rule about what a row may contain lives in the engines.
"""

from django.apps import AppConfig


class BazaarStoreConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "adapters.django_store"
    label = "bazaar_store"
    verbose_name = "Bazaar Order Store"
