"""HTTP API for submitting evaluations and streaming their progress."""

from .server import create_app

__all__ = ["create_app"]
