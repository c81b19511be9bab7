"""Record schemas for the locally persisted history.

Every collection read back from storage is treated as untrusted input and
validated as a whole: a single malformed entry invalidates the entire list.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Generic, List, Mapping, Sequence, Type, TypeVar, Union

from pydantic import AnyUrl, BaseModel, ConfigDict, StrictStr, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel

STORAGE_KEY = "magicapi_screenshot"
AGE_DETECTION_STORAGE_KEY = "magicapi_age_detection"

_DATETIME_PATTERN = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?Z$"
)
_URL_ADAPTER = TypeAdapter(AnyUrl)


class ValidationFailure(ValueError):
    """Raised when untrusted data does not match a record schema."""


def parse_timestamp(value: str) -> datetime:
    """Parse a UTC ISO-8601 date-time string ending in ``Z``."""
    if not isinstance(value, str) or not _DATETIME_PATTERN.match(value):
        raise ValueError(f"Invalid datetime: {value!r}")
    normalized = value[:-1] + "+00:00"
    # fromisoformat on older interpreters only accepts 3 or 6 fractional digits.
    head, sep, tail = normalized.partition(".")
    if sep:
        digits = tail[:-6]
        normalized = f"{head}.{digits[:6].ljust(6, '0')}{tail[-6:]}"
    return datetime.fromisoformat(normalized)


def format_timestamp(moment: datetime) -> str:
    """Render a datetime as a UTC ISO string with milliseconds and a Z suffix."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    utc = moment.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def is_valid_url(value: str) -> bool:
    """Return True when the value parses as an absolute URL."""
    if not isinstance(value, str) or not value.strip():
        return False
    try:
        _URL_ADAPTER.validate_python(value)
    except ValidationError:
        return False
    return True


class HistoryRecord(BaseModel):
    """Shared shape of every stored history entry."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        allow_inf_nan=False,
    )

    image_data: StrictStr
    created_at: StrictStr

    @field_validator("created_at")
    @classmethod
    def _check_created_at(cls, value: str) -> str:
        parse_timestamp(value)
        return value

    @property
    def created_at_datetime(self) -> datetime:
        return parse_timestamp(self.created_at)


class ScreenshotItem(HistoryRecord):
    """A captured website screenshot."""

    input: StrictStr

    @field_validator("input")
    @classmethod
    def _check_input(cls, value: str) -> str:
        if not is_valid_url(value):
            raise ValueError(f"Invalid url: {value!r}")
        return value


class AgeDetectionHistoryItem(HistoryRecord):
    """An age detection result together with the analysed image."""

    age: StrictStr
    predict_time: float

    @field_validator("predict_time", mode="before")
    @classmethod
    def _check_predict_time(cls, value: Any) -> Any:
        # Reject numeric strings and booleans that lax float parsing would accept.
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("predictTime must be a number")
        return value


RecordT = TypeVar("RecordT", bound=HistoryRecord)


class RecordValidator(Generic[RecordT]):
    """Validate and serialize whole collections of one record kind."""

    def __init__(self, model: Type[RecordT]) -> None:
        self.model = model
        self._adapter = TypeAdapter(List[model])  # type: ignore[valid-type]

    def validate(self, raw: Any) -> List[RecordT]:
        """Return typed records or raise ValidationFailure for the whole list."""
        try:
            return list(self._adapter.validate_python(raw))
        except ValidationError as exc:
            raise ValidationFailure(str(exc)) from exc

    def coerce(self, record: Union[RecordT, Mapping[str, Any]]) -> RecordT:
        """Validate a single record given as a model or a mapping."""
        if isinstance(record, self.model):
            payload: Any = self.dump_one(record)
        else:
            payload = dict(record)
        return self.validate([payload])[0]

    def dump_one(self, record: RecordT) -> dict[str, Any]:
        return record.model_dump(by_alias=True)

    def dump(self, records: Sequence[RecordT]) -> List[dict[str, Any]]:
        return [self.dump_one(record) for record in records]


screenshot_validator: RecordValidator[ScreenshotItem] = RecordValidator(ScreenshotItem)
age_detection_result_validator: RecordValidator[AgeDetectionHistoryItem] = RecordValidator(
    AgeDetectionHistoryItem
)
