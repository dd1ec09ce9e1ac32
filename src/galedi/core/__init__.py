"""
Core domain: the logistics record model and the record store.
"""

from galedi.core.records import (
    ParsedRecord,
    PendingRecord,
    RecordValidationError,
    format_record_line,
    parse_fields,
    parse_record_line,
    split_fields,
)
from galedi.core.store import InsertOutcome, InsertResult, RecordStore

__all__ = [
    "InsertOutcome",
    "InsertResult",
    "ParsedRecord",
    "PendingRecord",
    "RecordStore",
    "RecordValidationError",
    "format_record_line",
    "parse_fields",
    "parse_record_line",
    "split_fields",
]
