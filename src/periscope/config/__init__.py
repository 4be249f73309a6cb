"""Configuration package."""
from .settings import Settings, settings
from .log_config import configure_logging

__all__ = [
    "Settings",
    "settings",
    "configure_logging",
]
