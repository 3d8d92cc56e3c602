"""Score source boundary."""

from __future__ import annotations

from typing import Protocol

from secscore.history.schema import ScoreRecord


class ScoreSource(Protocol):
    name: str

    def fetch(self) -> ScoreRecord:
        """Return a fresh capture or raise ``SourceError``."""


class StaticScoreSource:
    """Source that hands out a reading supplied up front (manual entry, tests)."""

    name = "static"

    def __init__(self, record: ScoreRecord) -> None:
        self.record = record

    def fetch(self) -> ScoreRecord:
        return self.record
