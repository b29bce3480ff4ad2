"""
Base class for stored records.

Records are the storage-neutral shape of a row: both storage backends
return them, and ORM rows convert through `model_validate(row)`.
"""
from datetime import datetime
from typing import Any
from pydantic import BaseModel, ConfigDict, field_validator

from app.utils import as_utc


class RecordModel(BaseModel):
    """Immutable record; use `model_copy(update=...)` to derive a changed copy."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator("*", mode="after")
    @classmethod
    def _datetimes_are_utc(cls, v: Any) -> Any:
        if isinstance(v, datetime):
            return as_utc(v)
        return v
