"""Outcome of one action on one node."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from .errors import ErrorKind, FleetrunError


@dataclass(frozen=True)
class Result:
    """Either a success payload or a structured error.

    Build instances with ``Result.ok`` / ``Result.err`` rather than calling
    the constructor directly.
    """

    value: Any = None
    kind: str | None = None
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, value: Any = None) -> Result:
        return cls(value=value)

    @classmethod
    def err(
        cls,
        kind: ErrorKind | str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> Result:
        kind = kind.value if isinstance(kind, ErrorKind) else str(kind)
        return cls(kind=kind, message=message, details=dict(details or {}))

    @classmethod
    def from_exception(
        cls, exc: BaseException, kind: ErrorKind = ErrorKind.EXECUTION
    ) -> Result:
        """Convert an exception into an error result.

        Errors raised by transports keep their own kind; anything else is
        tagged with ``kind``.
        """
        if isinstance(exc, FleetrunError):
            return cls.err(exc.kind, exc.message, exc.details)
        message = str(exc) or type(exc).__name__
        return cls.err(kind, message, {"class": type(exc).__name__})

    @property
    def error(self) -> dict[str, Any] | None:
        """Error mapping, or None for a successful result."""
        if self.kind is None:
            return None
        return {"kind": self.kind, "msg": self.message, "details": self.details}

    @property
    def success(self) -> bool:
        return self.kind is None

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"status": "success", "value": self.value}
        return {"status": "failure", "error": self.error}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)
