"""Score change between consecutive captures."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from secscore.history.errors import FieldNotNumeric
from secscore.history.schema import CURRENT_SCORE, ValidatedFields


class DeltaKind(StrEnum):
    UNCHANGED = "Unchanged"
    IMPROVED = "Improved"
    REGRESSED = "Regressed"


@dataclass(frozen=True)
class DeltaResult:
    previous: float
    current: float
    delta: float
    kind: DeltaKind

    @property
    def message(self) -> str:
        if self.kind == DeltaKind.UNCHANGED:
            return f"No change in secure score! {self.delta}"
        if self.kind == DeltaKind.IMPROVED:
            return f"Your secure score increased!! {self.delta}"
        return f"Your secure score decreased {self.delta}"


def _current_score(fields: ValidatedFields) -> float:
    node = fields.field(CURRENT_SCORE)
    if node is None or not node.is_number:
        raise FieldNotNumeric(CURRENT_SCORE, None if node is None else node.value)
    return node.value


def classify(delta: float) -> DeltaKind:
    # Exact comparison with zero, no tolerance band.
    if delta == 0:
        return DeltaKind.UNCHANGED
    if delta > 0:
        return DeltaKind.IMPROVED
    return DeltaKind.REGRESSED


def compute_delta(prior: ValidatedFields | None, new: ValidatedFields) -> DeltaResult | None:
    """Compare the new capture against the most recent stored one.

    Returns ``None`` for the first capture, when there is nothing to compare.

    Raises:
        FieldNotNumeric: ``currentScore`` is missing or not a number.
    """
    if prior is None:
        return None
    previous = _current_score(prior)
    current = _current_score(new)
    delta = current - previous
    return DeltaResult(previous=previous, current=current, delta=delta, kind=classify(delta))
