"""CLI entrypoint for the secure score tracker."""

from __future__ import annotations

from pathlib import Path

import typer

from secscore.core.config import Settings, get_settings
from secscore.core.logging import bind_run_context, setup_logging
from secscore.history.delta import compute_delta
from secscore.history.errors import (
    ParseError,
    ReadError,
    ScoreHistoryError,
    SourceError,
    ValidationError,
    WriteError,
)
from secscore.history.json_value import parse_json
from secscore.history.schema import ScoreRecord, validate
from secscore.history.store import HistoryStore, IngestOutcome
from secscore.sources.azure import AzureSecureScoreSource
from secscore.sources.base import ScoreSource, StaticScoreSource

app = typer.Typer(name="secscore", help="Secure score history tracker", add_completion=False)

EXIT_NO_HISTORY = 1
EXIT_CODES: list[tuple[type[ScoreHistoryError], int]] = [
    (ParseError, 2),
    (ValidationError, 3),
    (SourceError, 4),
    (WriteError, 5),
    (ReadError, 6),
]


def _exit_code(exc: ScoreHistoryError) -> int:
    for error_type, code in EXIT_CODES:
        if isinstance(exc, error_type):
            return code
    return 1


def _describe(exc: ScoreHistoryError) -> str:
    if isinstance(exc, ParseError):
        return f"Error parsing JSON: {exc}\nPlease make sure you provide a valid JSON file."
    if isinstance(exc, ValidationError):
        return f"Invalid secure score history: {exc}"
    if isinstance(exc, SourceError):
        return f"Error: Could not retrieve the secure score data. {exc}"
    if isinstance(exc, WriteError):
        return f"Error: Could not write the secure score history. {exc}"
    return f"Error: {exc}"


def _settings_for(command: str, history_path: Path | None, **overrides: str | None) -> Settings:
    settings = get_settings()
    update: dict[str, object] = {k: v for k, v in overrides.items() if v is not None}
    if history_path is not None:
        update["history_path"] = history_path
    if update:
        settings = settings.model_copy(update=update)
    bind_run_context(command=command, history_path=str(settings.history_path))
    return settings


def _run_ingest(settings: Settings, source: ScoreSource) -> IngestOutcome:
    store = HistoryStore.from_settings(settings)
    typer.echo(f"Writing secure score history to {store.path}")
    try:
        return store.ingest(source)
    except ScoreHistoryError as exc:
        typer.echo(_describe(exc), err=True)
        raise typer.Exit(code=_exit_code(exc)) from exc


def _report(outcome: IngestOutcome) -> None:
    record = ScoreRecord.from_fields(outcome.record)
    typer.echo(
        f"Captured {record.score_name}: {record.current_score:g}/{record.max_score or 0:g} "
        f"({record.score_percentage}%) at {record.timestamp}"
    )
    if outcome.created:
        typer.echo(f"Secure score JSON file generated at: {outcome.path}")
    if outcome.delta is None:
        typer.echo("First capture, no delta to report.")
        return
    delta = outcome.delta
    typer.echo(f"Delta Score: {delta.delta:g} (New Score: {delta.current:g}, Current Score: {delta.previous:g})")
    typer.echo(f"{delta.kind}: {delta.message}")
    typer.echo(f"History now holds {len(outcome.history)} records.")


@app.callback()
def main(log_level: str = typer.Option("INFO", "--log-level", "-l", help="Logging level")) -> None:
    setup_logging(level=log_level)


@app.command()
def info() -> None:
    settings = get_settings()
    typer.echo("=" * 50)
    typer.echo("Secure Score Tracker - Active Configuration")
    typer.echo("=" * 50)
    typer.echo(f"History file: {settings.history_path}")
    typer.echo(f"Subscription: {settings.subscription_id or 'missing'}")
    typer.echo(f"Secure score: {settings.secure_score_name}")
    typer.echo(f"ARM endpoint: {settings.arm_endpoint}")
    typer.echo(f"API version: {settings.secure_score_api_version}")
    typer.echo(f"Azure CLI: {settings.az_path}")
    token_status = "configured" if settings.azure_access_token else "from az CLI"
    typer.echo(f"Access token: {token_status}")
    typer.echo(f"Lock timeout: {settings.lock_timeout_seconds}s")


@app.command()
def ingest(
    history_path: Path | None = typer.Option(None, help="History JSON file (overrides HISTORY_PATH)"),
    subscription_id: str | None = typer.Option(None, help="Subscription GUID (overrides SUBSCRIPTION_ID)"),
    score_name: str | None = typer.Option(None, help="Secure score name (overrides SECURE_SCORE_NAME)"),
) -> None:
    """Fetch the current secure score from Azure and append it to the history."""
    settings = _settings_for("ingest", history_path, subscription_id=subscription_id, secure_score_name=score_name)
    typer.echo("Getting secure score data from Azure...")
    outcome = _run_ingest(settings, AzureSecureScoreSource(settings))
    _report(outcome)


@app.command()
def record(
    current: float = typer.Option(..., help="Current secure score"),
    maximum: float = typer.Option(..., "--max", help="Maximum secure score"),
    name: str = typer.Option("ascScore", help="Secure score name"),
    subscription_id: str = typer.Option("", help="Subscription the score belongs to"),
    history_path: Path | None = typer.Option(None, help="History JSON file (overrides HISTORY_PATH)"),
) -> None:
    """Append a manually supplied reading to the history."""
    settings = _settings_for("record", history_path)
    try:
        reading = ScoreRecord.capture(
            current=current,
            maximum=maximum,
            name=name,
            subscription_id=subscription_id or settings.subscription_id,
        )
    except ValidationError as exc:
        typer.echo(f"Invalid reading: {exc}", err=True)
        raise typer.Exit(code=_exit_code(exc)) from exc
    outcome = _run_ingest(settings, StaticScoreSource(reading))
    _report(outcome)


@app.command()
def show(
    history_path: Path | None = typer.Option(None, help="History JSON file (overrides HISTORY_PATH)"),
) -> None:
    """Print the normalized history with the change between captures."""
    settings = _settings_for("show", history_path)
    store = HistoryStore.from_settings(settings)
    if not store.exists():
        typer.echo(f"No secure score history found at {store.path}")
        raise typer.Exit(code=EXIT_NO_HISTORY)
    try:
        history = store.load()
    except ScoreHistoryError as exc:
        typer.echo(_describe(exc), err=True)
        raise typer.Exit(code=_exit_code(exc)) from exc

    prior = None
    for fields in history:
        rec = ScoreRecord.from_fields(fields)
        delta = compute_delta(prior, fields)
        change = "" if delta is None else f"  {delta.kind} ({delta.delta:+g})"
        pct = "?" if rec.score_percentage is None else f"{rec.score_percentage}%"
        typer.echo(f"{rec.timestamp or '-'}  {rec.score_name or '-'}  {rec.current_score:g}  {pct}{change}")
        prior = fields
    typer.echo(f"{len(history)} records")


@app.command()
def check(
    history_path: Path | None = typer.Option(None, help="History JSON file (overrides HISTORY_PATH)"),
) -> None:
    """Strictly validate the history file without modifying it."""
    settings = _settings_for("check", history_path)
    path = settings.history_path
    if not path.exists():
        typer.echo(f"No secure score history found at {path}")
        raise typer.Exit(code=EXIT_NO_HISTORY)
    try:
        text = path.read_bytes().decode("utf-8-sig")
    except OSError as exc:
        typer.echo(f"Error: Could not read {path}: {exc}", err=True)
        raise typer.Exit(code=_exit_code(ReadError(str(exc)))) from exc
    except UnicodeDecodeError as exc:
        typer.echo(f"Error: {path} is not UTF-8 text: {exc}", err=True)
        raise typer.Exit(code=_exit_code(ParseError(str(exc)))) from exc
    try:
        document = parse_json(text)
    except ParseError as exc:
        typer.echo(_describe(exc), err=True)
        raise typer.Exit(code=_exit_code(exc)) from exc
    result = validate(document)
    if isinstance(result, ValidationError):
        typer.echo(_describe(result), err=True)
        raise typer.Exit(code=_exit_code(result))
    typer.echo(f"JSON documents successfully parsed: {len(result)} records")


if __name__ == "__main__":
    app()
