"""Secure score record schema and structural validation."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from secscore.history.errors import ValidationError, ValidationErrorKind
from secscore.history.json_value import JsonKind, JsonValue

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
PERCENT_SCALE = 100

SCORE_PERCENTAGE = "scorePercentage"
CURRENT_SCORE = "currentScore"
MAX_SCORE = "maxScore"
SCORE_NAME = "scoreName"
SUBSCRIPTION_ID = "subscriptionId"
TIMESTAMP = "timestamp"

# Older history files were written with these key names.
LEGACY_ALIASES = {
    SUBSCRIPTION_ID: "subId",
    TIMESTAMP: "formattedDateTime",
}


@dataclass(frozen=True)
class ValidatedFields:
    """A JSON object that passed structural validation.

    The original node is kept untouched so that persisting a history
    reproduces every field exactly as it was read.
    """

    node: JsonValue

    def field(self, name: str) -> JsonValue | None:
        return self.node.get(name)

    def to_python(self) -> dict[str, Any]:
        return self.node.to_python()


def validate_record(value: JsonValue) -> ValidatedFields | ValidationError:
    """Check a single JSON object against the record schema."""
    if value.kind != JsonKind.OBJECT:
        return ValidationError(
            ValidationErrorKind.UNEXPECTED_ELEMENT_KIND,
            detail=f"expected Object, got {value.kind}",
        )
    current = value.get(CURRENT_SCORE)
    if current is None:
        return ValidationError(ValidationErrorKind.MISSING_FIELD, CURRENT_SCORE)
    if not current.is_number:
        return ValidationError(
            ValidationErrorKind.TYPE_MISMATCH,
            CURRENT_SCORE,
            detail=f"expected Number, got {current.kind}",
        )
    if value.get(SCORE_PERCENTAGE) is None:
        return ValidationError(ValidationErrorKind.MISSING_FIELD, SCORE_PERCENTAGE)
    return ValidatedFields(value)


def validate(value: JsonValue) -> list[ValidatedFields] | ValidationError:
    """Validate an object or an (arbitrarily nested) array of objects.

    Pure check: the first failure is returned, nothing is raised.
    """
    if value.kind == JsonKind.OBJECT:
        result = validate_record(value)
        if isinstance(result, ValidationError):
            return result
        return [result]
    if value.kind == JsonKind.ARRAY:
        out: list[ValidatedFields] = []
        for index, element in enumerate(value.value):
            if element.kind not in (JsonKind.OBJECT, JsonKind.ARRAY):
                return ValidationError(
                    ValidationErrorKind.UNEXPECTED_ELEMENT_KIND,
                    detail=f"element {index} is {element.kind}",
                )
            nested = validate(element)
            if isinstance(nested, ValidationError):
                return nested
            out.extend(nested)
        return out
    return ValidationError(
        ValidationErrorKind.UNEXPECTED_ELEMENT_KIND,
        detail=f"document root is {value.kind}",
    )


def _number(node: JsonValue | None) -> float | None:
    if node is None or not node.is_number:
        return None
    try:
        return float(node.value)
    except OverflowError:
        return None


def _string(node: JsonValue | None) -> str:
    if node is None or node.kind != JsonKind.STRING:
        return ""
    return str(node.value)


@dataclass(frozen=True)
class ScoreRecord:
    """One capture of the secure score."""

    score_percentage: int | None
    current_score: float
    max_score: float | None
    score_name: str
    subscription_id: str
    timestamp: str

    @classmethod
    def capture(
        cls,
        current: float,
        maximum: float,
        name: str,
        subscription_id: str,
        now: datetime | None = None,
    ) -> ScoreRecord:
        """Build a record from a raw provider reading.

        Raises:
            ValidationError: a score is not finite, ``maximum`` is not
                positive, ``current`` is negative or ``name`` is empty.
        """
        if not math.isfinite(maximum):
            raise ValidationError(
                ValidationErrorKind.INVALID_VALUE, MAX_SCORE, detail=f"must be finite, got {maximum}"
            )
        if not math.isfinite(current):
            raise ValidationError(
                ValidationErrorKind.INVALID_VALUE, CURRENT_SCORE, detail=f"must be finite, got {current}"
            )
        if maximum <= 0:
            raise ValidationError(
                ValidationErrorKind.INVALID_VALUE, MAX_SCORE, detail=f"must be > 0, got {maximum}"
            )
        if current < 0:
            raise ValidationError(
                ValidationErrorKind.INVALID_VALUE, CURRENT_SCORE, detail=f"must be >= 0, got {current}"
            )
        if not name.strip():
            raise ValidationError(ValidationErrorKind.INVALID_VALUE, SCORE_NAME, detail="empty")
        ratio = current / maximum * PERCENT_SCALE
        if not math.isfinite(ratio):
            raise ValidationError(
                ValidationErrorKind.INVALID_VALUE, SCORE_PERCENTAGE, detail=f"{current}/{maximum} overflows"
            )
        stamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
        return cls(
            score_percentage=round(ratio),
            current_score=float(current),
            max_score=float(maximum),
            score_name=name,
            subscription_id=subscription_id,
            timestamp=stamp,
        )

    @classmethod
    def from_fields(cls, fields: ValidatedFields) -> ScoreRecord:
        """Typed view of a stored record; tolerates legacy key names."""
        percentage = _number(fields.field(SCORE_PERCENTAGE))
        current = _number(fields.field(CURRENT_SCORE))
        return cls(
            score_percentage=None if percentage is None else round(percentage),
            current_score=0.0 if current is None else current,
            max_score=_number(fields.field(MAX_SCORE)),
            score_name=_string(fields.field(SCORE_NAME)),
            subscription_id=_string(fields.field(SUBSCRIPTION_ID))
            or _string(fields.field(LEGACY_ALIASES[SUBSCRIPTION_ID])),
            timestamp=_string(fields.field(TIMESTAMP)) or _string(fields.field(LEGACY_ALIASES[TIMESTAMP])),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            SCORE_PERCENTAGE: self.score_percentage,
            CURRENT_SCORE: self.current_score,
            MAX_SCORE: self.max_score,
            SCORE_NAME: self.score_name,
            SUBSCRIPTION_ID: self.subscription_id,
            TIMESTAMP: self.timestamp,
        }

    def to_fields(self) -> ValidatedFields:
        result = validate_record(JsonValue.from_python(self.to_dict()))
        if isinstance(result, ValidationError):
            raise result
        return result
