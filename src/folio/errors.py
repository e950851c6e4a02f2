"""
Custom error types and exit codes for Folio.

Remote-call failures (query, mutation, upload) all derive from BackendError so
views can surface them uniformly as notifications.
"""

from typing import Dict, List, Optional


class FolioError(Exception):
    """Base exception for Folio errors."""

    exit_code = 1

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigurationError(FolioError):
    """Configuration or path-related errors."""

    exit_code = 2


class AuthenticationError(FolioError):
    """Invalid credentials or an expired session."""

    exit_code = 3


class ValidationError(FolioError):
    """Client-side validation errors, raised before any backend call."""

    exit_code = 5

    def __init__(self, message: str, field_errors: Optional[Dict[str, List[str]]] = None):
        super().__init__(message)
        self.field_errors = field_errors or {}


class BackendError(FolioError):
    """A query, mutation or storage call failed."""

    exit_code = 6

    def __init__(self, message: str, table: Optional[str] = None):
        super().__init__(message)
        self.table = table


class AuthorizationError(BackendError):
    """Row ownership or table policy violation."""


class NotFoundError(BackendError):
    """The target row does not exist."""


class StorageError(BackendError):
    """An upload to a storage bucket failed."""


# Exit codes
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_AUTH_ERROR = 3
EXIT_VALIDATION_ERROR = 5
EXIT_BACKEND_ERROR = 6
