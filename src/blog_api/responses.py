"""Transport-agnostic response envelope and the error-to-response mapping."""

import json
from dataclasses import dataclass, field
from typing import Any

from blog_api.errors import INTERNAL_SERVER_ERROR, ApiError, ErrorKind, status_for

CORS_HEADERS: dict[str, str] = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type,Authorization",
    "Access-Control-Allow-Methods": "GET,POST,PUT,DELETE,OPTIONS",
}


@dataclass(frozen=True)
class ApiResponse:
    status_code: int
    body: str = ""
    headers: dict[str, str] = field(default_factory=lambda: dict(CORS_HEADERS))

    def json(self) -> Any:
        return json.loads(self.body) if self.body else None


def json_response(status_code: int, payload: Any) -> ApiResponse:
    return ApiResponse(status_code=status_code, body=json.dumps(payload))


def empty_response(status_code: int) -> ApiResponse:
    return ApiResponse(status_code=status_code)


def error_response(error: BaseException) -> ApiResponse:
    """Map any failure to the uniform ``{"error": ...}`` envelope.

    Anything that is not an :class:`ApiError` becomes a generic 500.
    """
    if not isinstance(error, ApiError):
        error = ApiError(ErrorKind.INTERNAL, INTERNAL_SERVER_ERROR)
    message = INTERNAL_SERVER_ERROR if error.kind is ErrorKind.INTERNAL else error.message
    return json_response(status_for(error.kind), {"error": message})
