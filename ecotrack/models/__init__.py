"""Data models for ecosystem-tracker."""

from ecotrack.models.records import (
    ASSET_SUFFIXES,
    BuildLog,
    DiscoverySnapshot,
    DownloadSample,
    Platform,
    Project,
    Release,
    ReleaseAsset,
    UnknownPlatformError,
    canonical_url,
    utc_now,
)
from ecotrack.models.version import SemVer, VersionParseError

__all__ = [
    # Store records
    "BuildLog",
    "DiscoverySnapshot",
    "DownloadSample",
    "Project",
    # Release data
    "ASSET_SUFFIXES",
    "Platform",
    "Release",
    "ReleaseAsset",
    "UnknownPlatformError",
    # Versions
    "SemVer",
    "VersionParseError",
    # Helpers
    "canonical_url",
    "utc_now",
]
