"""Error taxonomy for the score history pipeline."""

from __future__ import annotations

from enum import StrEnum


class ScoreHistoryError(Exception):
    """Base class for every failure surfaced by the pipeline."""


class ReadError(ScoreHistoryError):
    """History file exists but could not be read."""


class ParseError(ScoreHistoryError):
    """History file is not valid UTF-8 JSON."""


class ValidationErrorKind(StrEnum):
    MISSING_FIELD = "MissingField"
    TYPE_MISMATCH = "TypeMismatch"
    UNEXPECTED_ELEMENT_KIND = "UnexpectedElementKind"
    INVALID_VALUE = "InvalidValue"


class ValidationError(ScoreHistoryError):
    """Structurally invalid record."""

    def __init__(self, kind: ValidationErrorKind, field: str | None = None, detail: str = "") -> None:
        self.kind = kind
        self.field = field
        self.detail = detail
        message = str(kind)
        if field is not None:
            message += f" (field={field})"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class FieldNotNumeric(ScoreHistoryError):
    """A score field used for delta computation is not a number."""

    def __init__(self, field: str, value: object) -> None:
        self.field = field
        self.value = value
        super().__init__(f"{field} is not numeric: {value!r}")


class SourceError(ScoreHistoryError):
    """The score source could not produce a new reading."""


class WriteError(ScoreHistoryError):
    """History could not be persisted."""


class StoreLockedError(WriteError):
    """Another run holds the history lock."""
