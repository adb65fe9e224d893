"""
Pydantic schemas.

Why:
- Structural validation of entry payloads (types, required fields, lengths)
- Wire names (startDate, includeYouTube, ...) live here as aliases
- Every field error is collected, in field order, by one model_validate call

Date fields compare against the clock passed as validation context:
    EntryCreate.model_validate(payload, context={"now": now})
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Annotated, Any
import re

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    Strict,
    StringConstraints,
    TypeAdapter,
    ValidationInfo,
    field_validator,
)
from pydantic_core import PydanticCustomError


MAX_LOCATION_LENGTH = 100

# Extended ISO-8601 shape: a date, optionally followed by a time and an offset.
# Pydantic alone would also take unix timestamps and numeric strings.
ISO_SHAPE = re.compile(
    r"^\d{4}-\d{2}-\d{2}"
    r"(?:[T ]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?)?$"
)
_FRACTION = re.compile(r"\.(\d+)")


def _iso_input(value: Any) -> Any:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, str):
        raw = value.strip()
        if not ISO_SHAPE.match(raw):
            raise PydanticCustomError("iso_format", "Value must be in ISO format")
        # microsecond precision; longer fractions are truncated
        return _FRACTION.sub(lambda m: "." + (m.group(1) + "000000")[:6], raw, count=1)
    raise PydanticCustomError("date_type", "Value must be a date")


def _as_utc(value: datetime) -> datetime:
    """Naive values are read as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    try:
        return value.astimezone(timezone.utc)
    except OverflowError:
        raise PydanticCustomError("date_range", "Value is outside the supported date range")


def _bool_from_text(value: Any) -> Any:
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return value


LocationText = Annotated[
    str, StringConstraints(strict=True, strip_whitespace=True, min_length=1, max_length=MAX_LOCATION_LENGTH)
]
IsoDateTime = Annotated[datetime, BeforeValidator(_iso_input), AfterValidator(_as_utc)]
Flag = Annotated[bool, Strict(), BeforeValidator(_bool_from_text)]

iso_datetime_adapter = TypeAdapter(IsoDateTime)


class EntryCreate(BaseModel):
    """
    Payload for creating a weather entry:
    location + date range + optional lookups.
    """
    model_config = ConfigDict(extra="ignore")

    location: LocationText
    start_date: IsoDateTime = Field(..., alias="startDate")
    end_date: IsoDateTime = Field(..., alias="endDate")
    include_youtube: Flag = Field(False, alias="includeYouTube")
    include_maps: Flag = Field(False, alias="includeMaps")

    @field_validator("start_date", "end_date")
    @classmethod
    def check_bounds(cls, value: datetime, info: ValidationInfo) -> datetime:
        # start_date only shows up in info.data when it validated cleanly
        if info.field_name == "end_date":
            start = info.data.get("start_date")
            if start is not None and value < start:
                raise PydanticCustomError("date_before_start", "Value must be after start date")
        now = (info.context or {}).get("now")
        if now is not None and value > now:
            raise PydanticCustomError("date_future", "Value cannot be in the future")
        return value


class EntryUpdate(EntryCreate):
    """
    Partial update: every field optional, defaults are never validated,
    so model_fields_set tells which ones the caller sent.
    """
    location: LocationText = None
    start_date: IsoDateTime = Field(None, alias="startDate")
    end_date: IsoDateTime = Field(None, alias="endDate")
    include_youtube: Flag = Field(None, alias="includeYouTube")
    include_maps: Flag = Field(None, alias="includeMaps")
