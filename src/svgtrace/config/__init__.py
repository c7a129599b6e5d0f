# Configuration module
# Environment-driven settings (SVGTRACE_ prefix) and logging setup

from .settings import Settings, settings, configure_logging

__all__ = ["Settings", "settings", "configure_logging"]
