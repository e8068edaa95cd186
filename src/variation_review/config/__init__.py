"""Configuration and dependency wiring."""

from .container import Container, setup_container
from .settings import Settings, get_settings

__all__ = ["Container", "Settings", "get_settings", "setup_container"]
