"""Secure score history pipeline."""

from secscore.history.delta import DeltaKind, DeltaResult, classify, compute_delta
from secscore.history.errors import (
    FieldNotNumeric,
    ParseError,
    ReadError,
    ScoreHistoryError,
    SourceError,
    StoreLockedError,
    ValidationError,
    ValidationErrorKind,
    WriteError,
)
from secscore.history.json_value import JsonKind, JsonValue, parse_json
from secscore.history.normalizer import flatten
from secscore.history.schema import ScoreRecord, ValidatedFields, validate, validate_record
from secscore.history.store import HistoryStore, IngestOutcome, ingest

__all__ = [
    "DeltaKind",
    "DeltaResult",
    "FieldNotNumeric",
    "HistoryStore",
    "IngestOutcome",
    "JsonKind",
    "JsonValue",
    "ParseError",
    "ReadError",
    "ScoreHistoryError",
    "ScoreRecord",
    "SourceError",
    "StoreLockedError",
    "ValidatedFields",
    "ValidationError",
    "ValidationErrorKind",
    "WriteError",
    "classify",
    "compute_delta",
    "flatten",
    "ingest",
    "parse_json",
    "validate",
    "validate_record",
]
