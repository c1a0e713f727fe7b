"""
Base model classes.
"""

from datetime import datetime, timezone
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_millis(value: datetime) -> int:
    """Epoch milliseconds - the timestamp unit of persisted records."""
    return int(value.timestamp() * 1000)


def from_millis(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


class TimestampMixin(BaseModel):
    """Mixin for created/updated timestamps."""
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)

    def touch(self) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = now_utc()


class CamelModel(BaseModel):
    """
    Model persisted with camelCase keys.

    Records written by older clients may carry fields we no longer know
    about; they are ignored rather than rejected.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_record(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
