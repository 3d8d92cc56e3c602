"""Append-only secure score history on disk."""

from __future__ import annotations

import json
import os
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from filelock import FileLock, Timeout

from secscore.core.config import Settings
from secscore.core.logging import get_logger
from secscore.history.delta import DeltaResult, compute_delta
from secscore.history.errors import (
    ParseError,
    ReadError,
    ScoreHistoryError,
    SourceError,
    StoreLockedError,
    ValidationError,
    WriteError,
)
from secscore.history.json_value import JsonValue, parse_json
from secscore.history.normalizer import flatten
from secscore.history.schema import ScoreRecord, ValidatedFields, validate_record
from secscore.sources.base import ScoreSource

logger = get_logger("history.store")

NewReading = ScoreSource | Callable[[], Any] | ScoreRecord | ValidatedFields


@dataclass(frozen=True)
class IngestOutcome:
    path: Path
    history: tuple[ValidatedFields, ...]
    record: ValidatedFields
    delta: DeltaResult | None
    created: bool


def _as_fields(value: Any) -> ValidatedFields:
    if isinstance(value, ValidatedFields):
        return value
    if isinstance(value, ScoreRecord):
        return value.to_fields()
    if isinstance(value, dict):
        result = validate_record(JsonValue.from_python(value))
        if isinstance(result, ValidationError):
            raise SourceError(f"Score source returned an invalid record: {result}") from result
        return result
    raise SourceError(f"Score source returned unsupported value: {type(value).__name__}")


def _fetch(reading: NewReading) -> ValidatedFields:
    if isinstance(reading, (ValidatedFields, ScoreRecord)):
        return _as_fields(reading)
    try:
        fetch = getattr(reading, "fetch", None)
        value = fetch() if callable(fetch) else reading()  # type: ignore[operator]
    except SourceError:
        raise
    except Exception as exc:
        raise SourceError(f"Score source failed: {exc}") from exc
    if value is None:
        raise SourceError("Score source returned no reading")
    return _as_fields(value)


class HistoryStore:
    """Load, extend and persist the secure score history file.

    Each ``ingest`` call runs read, parse, normalize, fetch, delta, append
    and persist under an advisory lock next to the history file. Persisting
    goes through a temporary file and ``os.replace`` so an interrupted run
    leaves either the old or the new history on disk.
    """

    def __init__(self, path: Path, indent: int = 2, lock_timeout: float = 10.0) -> None:
        self.path = path
        self.indent = indent
        self.lock_timeout = lock_timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> HistoryStore:
        return cls(
            settings.history_path,
            indent=settings.history_indent,
            lock_timeout=settings.lock_timeout_seconds,
        )

    @property
    def lock_path(self) -> Path:
        return self.path.with_name(self.path.name + ".lock")

    @contextmanager
    def _locked(self) -> Iterator[None]:
        """Hold the advisory lock next to the history file."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            lock = FileLock(str(self.lock_path), timeout=self.lock_timeout)
            lock.acquire()
        except Timeout as exc:
            raise StoreLockedError(f"History {self.path} is locked by another run") from exc
        except OSError as exc:
            raise WriteError(f"Could not lock {self.path}: {exc}") from exc
        try:
            yield
        finally:
            lock.release()

    def _read_text(self) -> str | None:
        try:
            data = self.path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise ReadError(f"Could not read {self.path}: {exc}") from exc
        try:
            return data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ParseError(f"{self.path} is not UTF-8 text: {exc}") from exc

    def _load_unlocked(self) -> list[ValidatedFields] | None:
        text = self._read_text()
        if text is None:
            logger.info("history_missing_starting_empty", path=str(self.path))
            return None
        try:
            document = parse_json(text)
        except ParseError as exc:
            raise ParseError(f"{self.path}: {exc}") from exc
        records = flatten(document)
        logger.info("history_loaded", path=str(self.path), records=len(records))
        return records

    def _serialize(self, history: Sequence[ValidatedFields]) -> str:
        payload = [fields.to_python() for fields in history]
        return json.dumps(payload, indent=self.indent or None, ensure_ascii=False, allow_nan=False)

    def _persist_unlocked(self, history: Sequence[ValidatedFields]) -> None:
        tmp = self.path.with_name(self.path.name + f".tmp.{os.getpid()}")
        try:
            text = self._serialize(history)
            with tmp.open("w", encoding="utf-8") as fh:
                fh.write(text)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, self.path)
        except (OSError, TypeError, ValueError) as exc:
            raise WriteError(f"Could not write {self.path}: {exc}") from exc
        finally:
            tmp.unlink(missing_ok=True)
        logger.info("history_persisted", path=str(self.path), records=len(history))

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> list[ValidatedFields]:
        """Current history; empty when the file does not exist yet."""
        with self._locked():
            return self._load_unlocked() or []

    def persist(self, history: Sequence[ValidatedFields]) -> None:
        with self._locked():
            self._persist_unlocked(history)

    def ingest(self, reading: NewReading) -> IngestOutcome:
        """Append one new capture to the history.

        ``reading`` is either a ready record or something that produces one
        (a ``ScoreSource`` or a zero-argument callable).

        Raises:
            ParseError, ValidationError, ReadError: the existing history is
                unusable; nothing is written.
            SourceError: no new reading; nothing is written.
            WriteError: the new history could not be persisted.
        """
        log = logger.bind(path=str(self.path))
        try:
            with self._locked():
                existing = self._load_unlocked()
                history = list(existing or [])
                record = _fetch(reading)
                prior = history[-1] if history else None
                delta = compute_delta(prior, record)
                history.append(record)
                self._persist_unlocked(history)
        except ScoreHistoryError as exc:
            log.error("history_ingest_failed", error_type=type(exc).__name__, error=str(exc))
            raise

        if delta is not None:
            log.info("history_delta", delta=delta.delta, kind=str(delta.kind))
        return IngestOutcome(
            path=self.path,
            history=tuple(history),
            record=record,
            delta=delta,
            created=existing is None,
        )


def ingest(
    reading: NewReading,
    storage_path: Path,
    indent: int = 2,
    lock_timeout: float = 10.0,
) -> IngestOutcome:
    """Functional entry point around ``HistoryStore.ingest``."""
    return HistoryStore(storage_path, indent=indent, lock_timeout=lock_timeout).ingest(reading)
