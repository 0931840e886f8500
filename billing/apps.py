# billing/apps.py
from django.apps import AppConfig
import logging

logger = logging.getLogger(__name__)


class BillingConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'billing'
    verbose_name = 'Billing & Installments'

    def ready(self):
        """Connect payment and invoice signals."""
        from . import signals  # noqa: F401
        logger.debug("Billing signals connected")
