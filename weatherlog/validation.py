"""
Entry validation.

Two entry modes share one set of field rules:
- create: every field required (flags default to False)
- update: every field optional, but at least one must be present

Validation runs in two passes:
1) structural pass - the pydantic schemas (schemas.EntryCreate / EntryUpdate),
   every field error collected and mapped to a user-facing message
2) business pass   - cross-field rules, stopping at the first failure

Nothing here raises for bad input. Callers get back either a NormalizedEntry
or a ValidationFailure and decide how to surface it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union
import math
import re

from pydantic import ValidationError

from .schemas import MAX_LOCATION_LENGTH, EntryCreate, EntryUpdate, iso_datetime_adapter


MAX_DAYS_IN_PAST = 5
MAX_RANGE_DAYS = 7

FIELD_ORDER = ("location", "startDate", "endDate", "includeYouTube", "includeMaps")
_WIRE_NAMES = {
    "location": "location",
    "start_date": "startDate",
    "end_date": "endDate",
    "include_youtube": "includeYouTube",
    "include_maps": "includeMaps",
}

LOCATION_PATTERN = re.compile(r"^[A-Za-z\s,.-]+$")
RECORD_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{24}$")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FieldViolation:
    field: str
    message: str

    def as_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message}


@dataclass(frozen=True)
class ValidationFailure:
    """Ordered list of violations. Field names may be synthetic (dateRange, object)."""
    violations: Tuple[FieldViolation, ...]

    @classmethod
    def single(cls, field_name: str, message: str) -> "ValidationFailure":
        return cls((FieldViolation(field_name, message),))

    def as_list(self) -> List[Dict[str, str]]:
        return [v.as_dict() for v in self.violations]


@dataclass(frozen=True)
class NormalizedEntry:
    """
    Validated payload.

    For create every field is set. For update only the provided fields are,
    the rest stay None.
    """
    location: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    include_youtube: Optional[bool] = None
    include_maps: Optional[bool] = None
    provided: Tuple[str, ...] = field(default=(), compare=False)

    def as_payload(self) -> Dict[str, Any]:
        """Render back to wire names, skipping fields this entry does not carry."""
        values = {
            "location": self.location,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "includeYouTube": self.include_youtube,
            "includeMaps": self.include_maps,
        }
        return {k: v for k, v in values.items() if v is not None}


ValidationResult = Union[NormalizedEntry, ValidationFailure]


_LOCATION_MESSAGES = {
    "create": {"missing": "Location is required", "string_too_short": "Location is required"},
    "update": {"missing": "Location cannot be empty", "string_too_short": "Location cannot be empty"},
}

_DATE_LABELS = {"startDate": "Start date", "endDate": "End date"}

_DATE_MESSAGES = {
    "missing": "{label} is required",
    "iso_format": "{label} must be in ISO format",
    "date_before_start": "{label} must be after start date",
    "date_future": "{label} cannot be in the future",
}


def _message(name: str, error_type: str, mode: str) -> str:
    if name == "location":
        if error_type == "string_too_long":
            return f"Location must be less than {MAX_LOCATION_LENGTH} characters"
        return _LOCATION_MESSAGES[mode].get(error_type, "Location must be a string")
    if name in _DATE_LABELS:
        template = _DATE_MESSAGES.get(error_type, "{label} must be a valid date")
        return template.format(label=_DATE_LABELS[name])
    return f"{name} must be a boolean value"


def _violations(exc: ValidationError, mode: str) -> Tuple[FieldViolation, ...]:
    """pydantic errors -> FieldViolations, keeping pydantic's field order."""
    out = []
    for err in exc.errors():
        if not err["loc"]:
            out.append(FieldViolation("object", "Request body must be an object"))
            continue
        name = str(err["loc"][0])
        out.append(FieldViolation(name, _message(name, err["type"], mode)))
    return tuple(out)


def is_valid_record_id(value: Any) -> bool:
    """True for 24-character hex ids."""
    return isinstance(value, str) and RECORD_ID_PATTERN.fullmatch(value) is not None


def parse_iso_datetime(value: Any) -> Tuple[Optional[datetime], Optional[str]]:
    """
    Parse a date field into an aware UTC datetime.

    Returns (value, None) on success or (None, error_kind) where error_kind is
    "format" (string not in ISO form) or "base" (not a usable date at all).
    """
    try:
        return iso_datetime_adapter.validate_python(value), None
    except ValidationError as exc:
        kind = "format" if exc.errors()[0]["type"] == "iso_format" else "base"
        return None, kind


def check_date_rules(start: datetime, end: datetime, now: datetime) -> Optional[ValidationFailure]:
    five_days_ago = now - timedelta(days=MAX_DAYS_IN_PAST)
    if start < five_days_ago:
        return ValidationFailure.single(
            "startDate", f"Start date cannot be more than {MAX_DAYS_IN_PAST} days in the past"
        )

    diff_days = math.ceil(abs((end - start).total_seconds()) / 86400)
    if diff_days > MAX_RANGE_DAYS:
        return ValidationFailure.single(
            "dateRange", f"Date range cannot be more than {MAX_RANGE_DAYS} days"
        )
    return None


def _location_rule(location: str) -> Optional[ValidationFailure]:
    if not LOCATION_PATTERN.match(location):
        return ValidationFailure.single("location", "Location contains invalid characters")
    return None


def _build(model: EntryCreate, provided: Tuple[str, ...]) -> NormalizedEntry:
    return NormalizedEntry(
        location=model.location,
        start_date=model.start_date,
        end_date=model.end_date,
        include_youtube=model.include_youtube,
        include_maps=model.include_maps,
        provided=provided,
    )


def _clock_value(now: Optional[datetime]) -> datetime:
    now = now if now is not None else utc_now()
    if now.tzinfo is None:
        raise ValueError("clock must return a timezone-aware datetime")
    return now


def validate_create(payload: Mapping[str, Any], now: Optional[datetime] = None) -> ValidationResult:
    """
    Validate a payload for creating an entry.

    All structural problems are reported together. Business rules run only on
    a structurally clean payload and report just the first rule broken.
    """
    now = _clock_value(now)
    try:
        entry = EntryCreate.model_validate(payload, context={"now": now})
    except ValidationError as exc:
        return ValidationFailure(_violations(exc, "create"))

    failure = check_date_rules(entry.start_date, entry.end_date, now)
    if failure is None:
        failure = _location_rule(entry.location)
    if failure is not None:
        return failure

    return _build(entry, FIELD_ORDER)


def validate_update(payload: Mapping[str, Any], now: Optional[datetime] = None) -> ValidationResult:
    """
    Validate a partial update.

    Date rules need both dates in the same payload; the location rule needs a
    location. Unknown keys are dropped before the empty-update check.
    """
    now = _clock_value(now)
    try:
        entry = EntryUpdate.model_validate(payload, context={"now": now})
    except ValidationError as exc:
        return ValidationFailure(_violations(exc, "update"))

    provided = tuple(_WIRE_NAMES[name] for name in EntryUpdate.model_fields if name in entry.model_fields_set)
    if not provided:
        return ValidationFailure.single("object", "At least one field must be provided for update")

    if entry.start_date is not None and entry.end_date is not None:
        failure = check_date_rules(entry.start_date, entry.end_date, now)
        if failure is not None:
            return failure

    if entry.location is not None:
        failure = _location_rule(entry.location)
        if failure is not None:
            return failure

    return _build(entry, provided)
