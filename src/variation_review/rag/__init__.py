"""Reference guidance providers."""

from .context import (
    DirectoryContextProvider,
    ReferenceContext,
    ReferenceContextProvider,
    SupabaseContextProvider,
)

__all__ = [
    "DirectoryContextProvider",
    "ReferenceContext",
    "ReferenceContextProvider",
    "SupabaseContextProvider",
]
