"""Business-rule error raised by services and rendered by the API layer.

Every failure a caller can act on is a ``BusinessError`` carrying an HTTP
status, a machine-readable code, a message and optional details.  Services
raise it from inside a transaction; the enclosing ``atomic()`` block rolls
the transaction back before the error reaches the exception handler.
"""

from __future__ import annotations

from typing import Any

from fastapi import status as http_status


class BusinessError(Exception):
    def __init__(
        self,
        status: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.code = code
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


def validation(message: str, details: dict[str, Any] | None = None) -> BusinessError:
    return BusinessError(
        http_status.HTTP_422_UNPROCESSABLE_ENTITY, "VALIDATION_ERROR", message, details
    )


def forbidden(message: str = "Insufficient role") -> BusinessError:
    return BusinessError(http_status.HTTP_403_FORBIDDEN, "FORBIDDEN", message)


def not_found(message: str, details: dict[str, Any] | None = None) -> BusinessError:
    return BusinessError(http_status.HTTP_404_NOT_FOUND, "NOT_FOUND", message, details)


def conflict(
    code: str, message: str, details: dict[str, Any] | None = None
) -> BusinessError:
    """409 with a specific machine code such as ``INSUFFICIENT_STOCK``."""
    return BusinessError(http_status.HTTP_409_CONFLICT, code, message, details)


def internal(message: str) -> BusinessError:
    return BusinessError(
        http_status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", message
    )
