"""Exception types raised across the catalog engine."""

from __future__ import annotations


class CatalogError(Exception):
    """Base class for catalog engine failures."""


class CatalogLoadError(CatalogError):
    """The scored catalog could not be loaded; nothing can be queried."""


class SyncError(CatalogError):
    """Downloading or validating upstream HACS data failed."""
