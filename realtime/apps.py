"""
Django app configuration for the realtime relay.
Builds the process-wide relay hub on startup.
"""

import logging
import sys

from django.apps import AppConfig

logger = logging.getLogger(__name__)


class RealtimeConfig(AppConfig):
    """App configuration for the realtime relay."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "realtime"

    def ready(self):
        """Build the relay hub so configuration errors surface at boot.

        Skipped for management commands that never serve traffic.
        """
        if any(cmd in sys.argv for cmd in ("check", "collectstatic", "shell")):
            return

        from .hub import get_hub

        try:
            get_hub()
        except Exception as e:
            logger.error(f"Failed to initialize relay hub: {e}", exc_info=True)
            raise
