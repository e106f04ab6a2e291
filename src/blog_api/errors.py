"""Domain error type shared by every layer of the request pipeline."""

from enum import StrEnum

NO_TOKEN_PROVIDED = "No token provided"
INVALID_TOKEN = "Invalid token"
NO_PERMISSION = "You do not have permission to modify this resource"
INTERNAL_SERVER_ERROR = "Internal server error"
INVALID_INPUT = "Invalid input"
INVALID_REQUEST_BODY = "Invalid request body"
TITLE_REQUIRED = "Title is required"
TITLE_TOO_LONG = "Title must be 200 characters or less"
CONTENT_REQUIRED = "Content is required"


class ErrorKind(StrEnum):
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    INTERNAL = "internal"


class ApiError(Exception):
    """A failure with an explicit kind; mapped to a status code in one place."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __repr__(self) -> str:
        return f"ApiError({self.kind.value!r}, {self.message!r})"


def validation_error(message: str) -> ApiError:
    return ApiError(ErrorKind.VALIDATION, message)


def unauthorized(message: str = NO_PERMISSION) -> ApiError:
    return ApiError(ErrorKind.UNAUTHORIZED, message)


def not_found(resource: str) -> ApiError:
    """Build a not-found error naming the resource kind, e.g. ``"Post not found"``."""
    return ApiError(ErrorKind.NOT_FOUND, f"{resource} not found")


def status_for(kind: ErrorKind) -> int:
    match kind:
        case ErrorKind.VALIDATION:
            return 400
        case ErrorKind.UNAUTHORIZED:
            return 403
        case ErrorKind.NOT_FOUND:
            return 404
        case ErrorKind.INTERNAL:
            return 500
