from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorType(str, Enum):
    VALIDATION = "VALIDATION_ERROR"
    NETWORK = "NETWORK_ERROR"
    AUTHENTICATION = "AUTHENTICATION_ERROR"
    REMOTE_REJECTION = "REMOTE_REJECTION"
    DATA_PROCESSING = "DATA_PROCESSING_ERROR"


class SyncError(Exception):
    """Error raised at the transport and storage seams.

    Core operations catch it and fold it into their result objects; only the
    HTTP client and store adapters raise it.
    """

    def __init__(
        self,
        error_type: ErrorType,
        message: str,
        details: Any = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.error_type = error_type
        self.message = message
        self.details = details
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.error_type.value, "message": self.message}
        if self.status_code is not None:
            out["status_code"] = self.status_code
        if self.details is not None:
            out["details"] = self.details
        return out

    def __str__(self) -> str:
        return f"{self.error_type.value}: {self.message}"
