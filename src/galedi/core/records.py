"""
Logistics record model and the six-field line codec.

Wire format, one record per line, no header::

    LE,plannedDestination,actualDestination,status,dd.mm.yy,hh:mm:ss
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time

from galedi.utils.hashing import content_fingerprint

FIELD_COUNT = 6
DATE_FORMAT = "%d.%m.%y"
TIME_FORMAT = "%H:%M:%S"
FIELD_NAMES = ("le", "planned_destination", "actual_destination", "status", "date", "time")

# ASCII digits only: int(), str.isdigit() and strptime also accept other Unicode digits
_LE_PATTERN = re.compile(r"[0-9]+")
_STATUS_PATTERN = re.compile(r"[0-9]{1,2}")


class RecordValidationError(ValueError):
    """Raised when a line does not match the record wire format."""

    def __init__(self, message: str, *, field_name: str | None = None) -> None:
        super().__init__(message)
        self.field_name = field_name


@dataclass(frozen=True)
class ParsedRecord:
    """One validated source line, with its raw fields kept for fingerprinting."""

    raw_fields: tuple[str, ...]
    le: int
    planned_destination: str
    actual_destination: str
    status: int
    record_date: date
    record_time: time

    @property
    def fingerprint(self) -> str:
        return content_fingerprint(self.raw_fields)

    @property
    def raw_line(self) -> str:
        return ",".join(self.raw_fields)


@dataclass(frozen=True)
class PendingRecord:
    """A stored, not yet delivered record as read back for export."""

    record_id: int
    le: int
    planned_destination: str
    actual_destination: str
    status: int
    record_date: date
    record_time: time

    def display_fields(self) -> tuple[str, ...]:
        return (
            str(self.le),
            self.planned_destination,
            self.actual_destination,
            f"{self.status:02d}",
            self.record_date.strftime(DATE_FORMAT),
            self.record_time.strftime(TIME_FORMAT),
        )


def split_fields(line: str) -> tuple[str, ...]:
    """Split a line on commas; the trailing newline (and CR) is not part of any field."""
    fields = tuple(line.rstrip("\r\n").split(","))
    if len(fields) != FIELD_COUNT:
        raise RecordValidationError(f"expected {FIELD_COUNT} fields, got {len(fields)}")
    return fields


def parse_fields(raw_fields: tuple[str, ...] | list[str]) -> ParsedRecord:
    """
    Validate six raw fields and convert them to typed values.

    Raises:
        RecordValidationError: If the field count or any field value is invalid
    """
    raw_fields = tuple(raw_fields)
    if len(raw_fields) != FIELD_COUNT:
        raise RecordValidationError(f"expected {FIELD_COUNT} fields, got {len(raw_fields)}")

    le_raw, planned, actual, status_raw, date_raw, time_raw = (f.strip() for f in raw_fields)

    if not _LE_PATTERN.fullmatch(le_raw):
        raise RecordValidationError(f"LE is not an integer: {le_raw!r}", field_name="le")
    le = int(le_raw)

    if not _STATUS_PATTERN.fullmatch(status_raw):
        raise RecordValidationError(f"status is not a two-digit number: {status_raw!r}", field_name="status")

    try:
        if not date_raw.isascii():
            raise ValueError(date_raw)
        record_date = datetime.strptime(date_raw, DATE_FORMAT).date()
    except ValueError:
        raise RecordValidationError(f"date is not dd.mm.yy: {date_raw!r}", field_name="date") from None

    try:
        if not time_raw.isascii():
            raise ValueError(time_raw)
        record_time = datetime.strptime(time_raw, TIME_FORMAT).time()
    except ValueError:
        raise RecordValidationError(f"time is not hh:mm:ss: {time_raw!r}", field_name="time") from None

    return ParsedRecord(
        raw_fields=raw_fields,
        le=le,
        planned_destination=planned,
        actual_destination=actual,
        status=int(status_raw),
        record_date=record_date,
        record_time=record_time,
    )


def parse_record_line(line: str) -> ParsedRecord:
    """Split and validate one source line."""
    return parse_fields(split_fields(line))


def format_record_line(record: PendingRecord) -> str:
    """Render a stored record back into the wire format (no line terminator)."""
    return ",".join(record.display_fields())
