"""Flatten stored history documents into an ordered record list."""

from __future__ import annotations

from secscore.core.logging import get_logger
from secscore.history.errors import ValidationError, ValidationErrorKind
from secscore.history.json_value import JsonKind, JsonValue
from secscore.history.schema import ValidatedFields, validate_record

logger = get_logger("history.normalizer")


def _require(value: JsonValue) -> ValidatedFields:
    result = validate_record(value)
    if isinstance(result, ValidationError):
        raise result
    return result


def _flatten_array(items: tuple[JsonValue, ...], out: list[ValidatedFields], depth: int) -> None:
    for index, element in enumerate(items):
        if element.kind == JsonKind.OBJECT:
            out.append(_require(element))
        elif element.kind == JsonKind.ARRAY:
            _flatten_array(element.value, out, depth + 1)
        else:
            logger.warning(
                "history_element_skipped",
                index=index,
                depth=depth,
                kind=str(element.kind),
            )


def flatten(document: JsonValue) -> list[ValidatedFields]:
    """Return the records of ``document`` in document order.

    Accepts a single record object, an array of records, or arrays that
    contain nested arrays of records (left behind by repeated round trips).
    Scalars inside arrays are skipped with a warning; an invalid object is
    fatal.

    Raises:
        ValidationError: an object fails the schema, or the root is a scalar.
    """
    if document.kind == JsonKind.OBJECT:
        return [_require(document)]
    if document.kind == JsonKind.ARRAY:
        out: list[ValidatedFields] = []
        _flatten_array(document.value, out, depth=0)
        return out
    raise ValidationError(
        ValidationErrorKind.UNEXPECTED_ELEMENT_KIND,
        detail=f"document root is {document.kind}",
    )
