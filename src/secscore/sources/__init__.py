"""Score sources."""

from secscore.sources.azure import AzureSecureScoreSource, az_access_token
from secscore.sources.base import ScoreSource, StaticScoreSource

__all__ = [
    "AzureSecureScoreSource",
    "ScoreSource",
    "StaticScoreSource",
    "az_access_token",
]
