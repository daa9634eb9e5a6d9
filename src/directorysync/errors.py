"""Exception taxonomy for Directory sync runs."""

from __future__ import annotations


class DirectorySyncError(Exception):
    """Base class for failures that abort a sync attempt."""


class ConfigurationError(DirectorySyncError):
    """Raised when a sync configuration cannot be loaded or is inconsistent."""


class RegistryError(DirectorySyncError):
    """Raised when a Directory call fails or returns an unusable payload."""


class ClinicalStoreError(DirectorySyncError):
    """Raised when the clinical store is unreachable or returns bad data."""
