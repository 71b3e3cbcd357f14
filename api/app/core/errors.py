"""Tagged error values shared by every catalog operation.

Operations raise ``CatalogError`` carrying an ``ErrorKind``; the HTTP boundary
renders all of them the same way from ``kind.status`` and ``message``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    INTERNAL = "internal"

    @property
    def status(self) -> int:
        return _STATUS_BY_KIND[self]


_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INTERNAL: 500,
}


class CatalogError(Exception):
    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def status(self) -> int:
        return self.kind.status

    def to_response(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message}

    def __repr__(self) -> str:
        return f"CatalogError(kind={self.kind.value!r}, status={self.status}, message={self.message!r})"
