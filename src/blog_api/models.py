"""Pydantic models for posts, comments and their validated inputs."""

from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

TITLE_MAX_LENGTH = 200

_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)
_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def utcnow() -> datetime:
    return datetime.now(UTC)


def epoch_micros(moment: datetime) -> int:
    """Whole microseconds since the Unix epoch; exact, unlike a float timestamp."""
    return (moment - _EPOCH) // timedelta(microseconds=1)


class Post(BaseModel):
    model_config = _CAMEL

    id: str = Field(description="Server-generated opaque identifier")
    title: str
    content: str
    image_key: str | None = Field(default=None, description="Object storage key of the image")
    author_id: str = Field(description="Subject of the token that created the post")
    created_at: datetime
    updated_at: datetime


class Comment(BaseModel):
    model_config = _CAMEL

    id: str
    post_id: str = Field(description="Parent post; must exist when the comment is created")
    content: str
    author_id: str
    created_at: datetime


class PostCreate(BaseModel):
    """Validated, trimmed input for a new post."""

    model_config = ConfigDict(strict=True, frozen=True)

    title: str
    content: str
    image_key: str | None = None


class PostPatch(BaseModel):
    """Partial post update. Only explicitly set fields are applied."""

    model_config = ConfigDict(strict=True, frozen=True)

    title: str | None = None
    content: str | None = None
    image_key: str | None = None

    def changes(self) -> dict[str, str]:
        return self.model_dump(exclude_unset=True)


class CommentCreate(BaseModel):
    model_config = ConfigDict(strict=True, frozen=True)

    content: str


def to_json(entity: BaseModel) -> dict[str, object]:
    """Wire representation: camelCase keys, ISO timestamps, absent optionals omitted."""
    return entity.model_dump(mode="json", by_alias=True, exclude_none=True)
