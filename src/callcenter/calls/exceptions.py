"""
Call-related exceptions.
"""

from typing import Any

from callcenter.shared.exceptions import AppException


class LedgerWriteError(AppException):
    """Raised when a call attempt could not be recorded in the ledger."""

    def __init__(
        self,
        message: str = "Failed to record call attempt",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, "LEDGER_WRITE_FAILURE", details)


class BackendNotEnabledError(AppException):
    """Raised when an operation targets a backend that was not built at startup."""

    def __init__(self, backend: str) -> None:
        self.backend = backend
        super().__init__(
            f"Backend '{backend}' is not enabled",
            "BACKEND_NOT_ENABLED",
            {"backend": backend},
        )
