from __future__ import annotations

import json
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any

JsonDict = dict[str, Any]
StartResponse = Callable[[str, list[tuple[str, str]]], Any]


class HttpError(Exception):
    """A controlled, client-facing error (unknown route, wrong method)."""

    def __init__(self, status_code: int, code: str, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code} ({self.status_code}): {self.message}"


@dataclass(slots=True)
class ApiResponse:
    status_code: int
    body: JsonDict | bytes
    headers: dict[str, str] = field(default_factory=dict)

    def to_wsgi(self, start_response: StartResponse) -> Iterable[bytes]:
        """Send status and headers through *start_response*, return the body."""
        if isinstance(self.body, bytes):
            payload = self.body
            headers = dict(self.headers)
        else:
            payload = json.dumps(self.body, ensure_ascii=False, separators=(",", ":")).encode()
            headers = {"content-type": "application/json; charset=utf-8", **self.headers}
        headers["content-length"] = str(len(payload))
        status = f"{self.status_code} {HTTPStatus(self.status_code).phrase}"
        start_response(status, list(headers.items()))
        return [payload]


def json_error(status_code: int, code: str, message: str) -> ApiResponse:
    payload: JsonDict = {"error": {"code": code, "message": message}}
    return ApiResponse(status_code=status_code, body=payload)


def json_ok(payload: Mapping[str, Any]) -> ApiResponse:
    return ApiResponse(status_code=200, body=dict(payload))
