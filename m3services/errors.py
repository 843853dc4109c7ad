"""Structured service errors carrying an id, an HTTP code and a detail."""

from __future__ import annotations

import json
from http import HTTPStatus


class ServiceError(Exception):
    """An error returned by a service endpoint."""

    def __init__(self, id: str, code: int, detail: str, status: str = "") -> None:
        super().__init__(detail)
        self.id = id
        self.code = int(code)
        self.detail = detail
        if not status:
            try:
                status = HTTPStatus(self.code).phrase
            except ValueError:
                status = ""
        self.status = status

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "detail": self.detail,
            "status": self.status,
        }

    def __str__(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    def __repr__(self) -> str:
        return (
            f"ServiceError(id={self.id!r}, code={self.code!r}, "
            f"detail={self.detail!r}, status={self.status!r})"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ServiceError):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash((self.id, self.code, self.detail, self.status))


def bad_request(id: str, detail: str) -> ServiceError:
    """Build a 400 error."""
    return ServiceError(id, HTTPStatus.BAD_REQUEST, detail)


def internal_server_error(id: str, detail: str) -> ServiceError:
    """Build a 500 error."""
    return ServiceError(id, HTTPStatus.INTERNAL_SERVER_ERROR, detail)


def not_found(id: str, detail: str) -> ServiceError:
    """Build a 404 error."""
    return ServiceError(id, HTTPStatus.NOT_FOUND, detail)