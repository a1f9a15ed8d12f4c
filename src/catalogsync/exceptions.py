"""
catalogsync exception hierarchy.

All domain-specific exceptions inherit from CatalogSyncError. Lower layers
raise typed errors; only the pipeline runner decides whether an error ends
the current pass or just the current record.

Hierarchy::

    CatalogSyncError
    ├── ConfigurationError        - config loading, unknown database/collection
    ├── StoreError                - source/target statement failures
    │   └── TransientStoreError   - network errors and timeouts
    ├── MalformedField            - document field of unexpected shape
    ├── SchemaError               - DDL provisioning
    └── InitializationError       - startup connect/ping failures
"""

from __future__ import annotations


class CatalogSyncError(Exception):
    """Base exception for all catalogsync errors."""

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- Configuration -----------------------------------------------------------


class ConfigurationError(CatalogSyncError):
    """Raised when configuration is invalid or names an unknown database/collection."""


# --- Stores ------------------------------------------------------------------


class StoreError(CatalogSyncError):
    """Raised when a source or target store operation fails."""

    def __init__(self, message: str, *, operation: str | None = None, cause: Exception | None = None) -> None:
        super().__init__(message, details={"operation": operation})
        self.operation = operation
        if cause is not None:
            self.__cause__ = cause


class TransientStoreError(StoreError):
    """Raised on network failures and timeouts talking to a store."""


# --- Records -----------------------------------------------------------------


class MalformedField(CatalogSyncError):
    """Raised when a document field is missing or has an unexpected shape.

    Always recoverable: the record is skipped and counted as failed.
    """

    def __init__(self, field: str, expected_type: str, *, value: object = None) -> None:
        super().__init__(
            f"Malformed field '{field}': expected {expected_type}, got {type(value).__name__}",
            details={"field": field, "expected_type": expected_type},
        )
        self.field = field
        self.expected_type = expected_type


# --- Schema ------------------------------------------------------------------


class SchemaError(CatalogSyncError):
    """Raised when creating or dropping target tables fails."""


# --- Initialization ----------------------------------------------------------


class InitializationError(CatalogSyncError):
    """Raised during startup when a store cannot be reached."""
