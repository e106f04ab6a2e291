"""Parsing and validation of untrusted request bodies."""

import json
from typing import Any

from blog_api.errors import (
    CONTENT_REQUIRED,
    INVALID_INPUT,
    INVALID_REQUEST_BODY,
    TITLE_REQUIRED,
    TITLE_TOO_LONG,
    validation_error,
)
from blog_api.models import TITLE_MAX_LENGTH, CommentCreate, PostCreate, PostPatch


def parse_body(body: str | bytes | None) -> dict[str, Any]:
    """Decode a JSON object body.

    Raises a validation error for an absent, blank or malformed body and for
    JSON that is not an object.
    """
    if body is None or not body.strip():
        raise validation_error(INVALID_REQUEST_BODY)
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise validation_error(INVALID_REQUEST_BODY) from exc
    if not isinstance(data, dict):
        raise validation_error(INVALID_INPUT)
    return data


def _title(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise validation_error(TITLE_REQUIRED)
    title = value.strip()
    if len(title) > TITLE_MAX_LENGTH:
        raise validation_error(TITLE_TOO_LONG)
    return title


def _content(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise validation_error(CONTENT_REQUIRED)
    return value.strip()


def _image_key(value: Any) -> str | None:
    # Non-string image keys are dropped rather than rejected
    return value if isinstance(value, str) else None


def validate_create_post(data: dict[str, Any]) -> PostCreate:
    return PostCreate(
        title=_title(data.get("title")),
        content=_content(data.get("content")),
        image_key=_image_key(data.get("imageKey")),
    )


def validate_update_post(data: dict[str, Any]) -> PostPatch:
    """Validate a partial update; absent fields stay out of the patch.

    A present ``title`` or ``content`` must pass the create rules, ``null`` included.
    """
    fields: dict[str, str] = {}
    if "title" in data:
        fields["title"] = _title(data["title"])
    if "content" in data:
        fields["content"] = _content(data["content"])
    image_key = _image_key(data.get("imageKey"))
    if image_key is not None:
        fields["image_key"] = image_key
    return PostPatch(**fields)


def validate_create_comment(data: dict[str, Any]) -> CommentCreate:
    return CommentCreate(content=_content(data.get("content")))
