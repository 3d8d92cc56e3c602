"""Microsoft Defender for Cloud secure score source (ARM REST API)."""

from __future__ import annotations

import subprocess
import uuid
from collections.abc import Callable
from typing import Any

import requests

from secscore.core.config import Settings
from secscore.core.logging import get_logger
from secscore.history.errors import SourceError, ValidationError
from secscore.history.schema import ScoreRecord

logger = get_logger("sources.azure")

_TOKEN_TIMEOUT_SECONDS = 60


def az_access_token(az_path: str, resource: str) -> str:
    """Ask the Azure CLI for an ARM bearer token of the signed-in account.

    Non-interactive: if nobody is logged in, fail and tell the user to run
    ``az login``.
    """
    cmd = [
        az_path,
        "account",
        "get-access-token",
        "--resource",
        resource,
        "--query",
        "accessToken",
        "-o",
        "tsv",
    ]
    try:
        proc = subprocess.run(  # noqa: S603
            cmd,
            capture_output=True,
            text=True,
            timeout=_TOKEN_TIMEOUT_SECONDS,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise SourceError(f"Could not run Azure CLI at {az_path!r}: {exc}") from exc
    token = proc.stdout.strip()
    if proc.returncode != 0 or not token:
        detail = proc.stderr.strip() or f"exit code {proc.returncode}"
        raise SourceError(f"Azure login required, run 'az login' first ({detail})")
    return token


def _subscription_from_resource_id(resource_id: str) -> str:
    parts = [p for p in resource_id.split("/") if p]
    for i, part in enumerate(parts[:-1]):
        if part.lower() == "subscriptions":
            return parts[i + 1]
    return ""


class AzureSecureScoreSource:
    """Fetch the configured secure score for one subscription."""

    name = "azure"

    def __init__(
        self,
        settings: Settings,
        token_provider: Callable[[], str] | None = None,
    ) -> None:
        self.settings = settings
        self._token_provider = token_provider

    def _token(self) -> str:
        if self.settings.azure_access_token.strip():
            return self.settings.azure_access_token.strip()
        if self._token_provider is not None:
            return self._token_provider()
        return az_access_token(self.settings.az_path, self.settings.arm_endpoint)

    def _check_subscription(self) -> str:
        raw = self.settings.subscription_id.strip()
        try:
            uuid.UUID(raw)
        except ValueError as exc:
            raise SourceError(f"Invalid subscription id {raw!r}, expected a GUID") from exc
        return raw

    def _get(self, token: str) -> dict[str, Any]:
        try:
            response = requests.get(
                self.settings.secure_score_url,
                params={"api-version": self.settings.secure_score_api_version},
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.settings.request_timeout_seconds,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise SourceError(f"Secure score request failed: {exc}") from exc
        if not isinstance(payload, dict):
            raise SourceError("Secure score response is not a JSON object")
        return payload

    def fetch(self) -> ScoreRecord:
        subscription = self._check_subscription()
        logger.info("secure_score_fetch_start", subscription=subscription, score=self.settings.secure_score_name)
        payload = self._get(self._token())

        score = (payload.get("properties") or {}).get("score") or {}
        current = score.get("current")
        maximum = score.get("max")
        if not isinstance(current, (int, float)) or isinstance(current, bool):
            raise SourceError("Secure score response has no numeric properties.score.current")
        if not isinstance(maximum, (int, float)) or isinstance(maximum, bool):
            raise SourceError("Secure score response has no numeric properties.score.max")

        name = str(payload.get("name") or self.settings.secure_score_name)
        sub_id = _subscription_from_resource_id(str(payload.get("id", ""))) or subscription
        try:
            record = ScoreRecord.capture(current=current, maximum=maximum, name=name, subscription_id=sub_id)
        except ValidationError as exc:
            raise SourceError(f"Secure score reading rejected: {exc}") from exc
        logger.info(
            "secure_score_fetched",
            subscription=sub_id,
            current=record.current_score,
            max=record.max_score,
            percentage=record.score_percentage,
        )
        return record
