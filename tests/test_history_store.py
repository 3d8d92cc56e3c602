from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

import pytest
from filelock import FileLock

from secscore.history import store as store_module
from secscore.history.delta import DeltaKind
from secscore.history.errors import (
    ParseError,
    SourceError,
    StoreLockedError,
    ValidationError,
    ValidationErrorKind,
    WriteError,
)
from secscore.history.json_value import JsonKind, JsonValue
from secscore.history.schema import ScoreRecord, ValidatedFields
from secscore.history.store import HistoryStore, ingest
from secscore.sources.base import StaticScoreSource


def _capture(current: float, day: int = 1) -> ScoreRecord:
    return ScoreRecord.capture(
        current=current,
        maximum=100,
        name="S",
        subscription_id="sub1",
        now=datetime(2024, 1, day),
    )


def _stored(path: Path) -> list[dict[str, object]]:
    return json.loads(path.read_text(encoding="utf-8"))


def test_first_run_creates_single_element_array(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    outcome = ingest(StaticScoreSource(_capture(80)), path)

    rows = _stored(path)
    assert len(rows) == 1
    assert rows[0]["scorePercentage"] == 80
    assert rows[0]["currentScore"] == 80
    assert rows[0]["timestamp"] == "2024-01-01 00:00:00"
    assert outcome.delta is None
    assert outcome.created is True


def test_second_run_appends_and_reports_delta(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    path.write_text(json.dumps([_capture(80).to_dict()]), encoding="utf-8")

    outcome = ingest(StaticScoreSource(_capture(85, day=2)), path)

    rows = _stored(path)
    assert [r["currentScore"] for r in rows] == [80, 85]
    assert outcome.delta is not None
    assert outcome.delta.delta == 5
    assert outcome.delta.kind == DeltaKind.IMPROVED
    assert outcome.created is False
    assert len(outcome.history) == 2


def test_invalid_existing_history_leaves_file_untouched(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    path.write_text('{"currentScore": "bad"}', encoding="utf-8")
    before = path.read_bytes()

    with pytest.raises(ValidationError) as excinfo:
        ingest(StaticScoreSource(_capture(85)), path)

    assert excinfo.value.kind == ValidationErrorKind.TYPE_MISMATCH
    assert excinfo.value.field == "currentScore"
    assert path.read_bytes() == before


def test_malformed_json_is_parse_error(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    path.write_text("[{not-json", encoding="utf-8")
    before = path.read_bytes()

    with pytest.raises(ParseError):
        ingest(StaticScoreSource(_capture(85)), path)
    assert path.read_bytes() == before


def test_fetch_failure_leaves_file_untouched(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    path.write_text(json.dumps([_capture(80).to_dict()]), encoding="utf-8")
    before = path.read_bytes()

    def failing_fetch() -> ScoreRecord:
        raise RuntimeError("provider down")

    with pytest.raises(SourceError, match="provider down"):
        ingest(failing_fetch, path)
    assert path.read_bytes() == before


def test_fetch_failure_without_history_creates_nothing(tmp_path: Path) -> None:
    path = tmp_path / "history.json"

    def failing_fetch() -> ScoreRecord:
        raise SourceError("no token")

    with pytest.raises(SourceError):
        ingest(failing_fetch, path)
    assert not path.exists()


def test_callable_returning_dict_is_validated(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    outcome = ingest(lambda: {"scorePercentage": 10, "currentScore": 1}, path)
    assert outcome.record.to_python() == {"scorePercentage": 10, "currentScore": 1}

    with pytest.raises(SourceError):
        ingest(lambda: {"currentScore": "oops"}, path)
    assert len(_stored(path)) == 1


def test_running_twice_appends_twice(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    reading = _capture(70)
    ingest(reading, path)
    outcome = ingest(reading, path)

    assert len(_stored(path)) == 2
    assert outcome.delta is not None
    assert outcome.delta.kind == DeltaKind.UNCHANGED


def test_legacy_object_and_nested_arrays_are_normalized(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    legacy = {"scorePercentage": 50, "currentScore": 50, "subId": "x", "formattedDateTime": "2023-01-01 00:00:00"}
    path.write_text(json.dumps(legacy), encoding="utf-8")
    ingest(_capture(60), path)
    rows = _stored(path)
    assert rows[0] == legacy
    assert rows[1]["currentScore"] == 60

    path.write_text(json.dumps([legacy, [_capture(55).to_dict(), 3]]), encoding="utf-8")
    outcome = ingest(_capture(65), path)
    assert [r["currentScore"] for r in _stored(path)] == [50, 55, 65]
    assert outcome.delta is not None and outcome.delta.delta == 10


def test_persist_round_trip_reproduces_history(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    for day, score in enumerate([10.5, 20, 15.25], start=1):
        ingest(_capture(score, day=day), path)
    store = HistoryStore(path)
    first = store.load()
    store.persist(first)
    second = store.load()
    assert [r.to_python() for r in second] == [r.to_python() for r in first]


def test_write_failure_keeps_previous_content(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "history.json"
    path.write_text(json.dumps([_capture(80).to_dict()]), encoding="utf-8")
    before = path.read_bytes()

    def boom(src: object, dst: object) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(store_module.os, "replace", boom)
    with pytest.raises(WriteError, match="disk full"):
        ingest(_capture(90), path)

    assert path.read_bytes() == before
    assert not list(tmp_path.glob("history.json.tmp.*"))


def test_locked_history_raises(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    store = HistoryStore(path, lock_timeout=0.05)
    with FileLock(str(store.lock_path)):
        with pytest.raises(StoreLockedError):
            store.ingest(_capture(80))
    assert not path.exists()


def test_compact_output_when_indent_zero(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    HistoryStore(path, indent=0).ingest(_capture(80))
    assert "\n" not in path.read_text(encoding="utf-8")


def test_overflowing_stored_number_leaves_file_untouched(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    path.write_text('[{"scorePercentage": 1, "currentScore": 1e999}]', encoding="utf-8")
    before = path.read_bytes()

    with pytest.raises(ParseError):
        ingest(_capture(80), path)
    assert path.read_bytes() == before


def test_non_finite_field_is_never_written(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    ingest(_capture(80), path)
    before = path.read_bytes()
    poisoned = ValidatedFields(
        JsonValue(
            JsonKind.OBJECT,
            {
                "scorePercentage": JsonValue(JsonKind.OTHER, float("inf")),
                "currentScore": JsonValue(JsonKind.NUMBER, 1.0),
            },
        )
    )

    with pytest.raises(WriteError):
        ingest(poisoned, path)
    assert path.read_bytes() == before
    assert len(HistoryStore(path).load()) == 1


def test_source_returning_infinite_score_is_source_error(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    with pytest.raises(SourceError):
        ingest(lambda: {"scorePercentage": 1, "currentScore": float("inf")}, path)
    assert not path.exists()


def test_unusable_directory_is_write_error(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")
    store = HistoryStore(blocker / "history.json")

    with pytest.raises(WriteError):
        store.ingest(_capture(80))
    with pytest.raises(WriteError):
        store.load()
    assert blocker.read_text(encoding="utf-8") == "x"
