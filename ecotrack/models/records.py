"""Records held by the compatibility store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from urllib.parse import urlsplit, urlunsplit


class UnknownPlatformError(ValueError):
    """Raised when a release asset name matches no known platform suffix."""

    def __init__(self, asset_name: str) -> None:
        super().__init__(f"Unrecognized release asset platform: {asset_name!r}")
        self.asset_name = asset_name


class Platform(str, Enum):
    """Platforms a release ships binaries for."""

    AARCH64_MAC = "Aarch64Mac"
    X86_64_LINUX = "X86_64Linux"
    X86_64_MAC = "X86_64Mac"
    X86_64_WINDOWS = "X86_64Windows"

    @classmethod
    def from_asset_name(cls, asset_name: str) -> "Platform":
        """
        Classify a release asset by its filename suffix.

        Raises:
            UnknownPlatformError: If no suffix in the table matches
        """
        for suffix, platform in ASSET_SUFFIXES:
            if asset_name.endswith(suffix):
                return platform
        raise UnknownPlatformError(asset_name)


ASSET_SUFFIXES: tuple[tuple[str, Platform], ...] = (
    ("-aarch64-mac.zip", Platform.AARCH64_MAC),
    ("-x86_64-linux.zip", Platform.X86_64_LINUX),
    ("-x86_64-mac.zip", Platform.X86_64_MAC),
    ("-x86_64-windows.zip", Platform.X86_64_WINDOWS),
)


def canonical_url(url: str) -> str:
    """
    Normalize a repository URL so the same repository always compares equal.

    Lowercases scheme and host, drops query, fragment, trailing slashes and a
    ``.git`` suffix. Path case is kept.
    """
    parts = urlsplit(url.strip())
    path = parts.path.rstrip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, "", ""))


def to_timestamp(moment: datetime) -> int:
    """Datetime to integer Unix seconds."""
    return int(moment.timestamp())


def from_timestamp(seconds: int) -> datetime:
    """Integer Unix seconds to an aware UTC datetime."""
    return datetime.fromtimestamp(int(seconds), tz=timezone.utc)


def utc_now() -> datetime:
    """Current time truncated to whole seconds, matching the stored precision."""
    return datetime.now(timezone.utc).replace(microsecond=0)


@dataclass(frozen=True)
class BuildLog:
    """Outcome of building one project revision with one compiler version."""

    rev: str
    compiler_version: str
    result: bool

    def to_dict(self) -> dict:
        return {
            "rev": self.rev,
            "compiler_version": self.compiler_version,
            "result": self.result,
        }

    @classmethod
    def from_dict(cls, data: dict) -> BuildLog:
        rev, compiler_version, result = data["rev"], data["compiler_version"], data["result"]
        if not isinstance(rev, str) or not isinstance(compiler_version, str):
            raise TypeError(f"rev and compiler_version must be strings: {data!r}")
        if not isinstance(result, bool):
            raise TypeError(f"result must be a boolean, got {result!r}")
        return cls(rev=rev, compiler_version=compiler_version, result=result)


@dataclass
class Project:
    """A tracked community project and its append-only build history."""

    url: str
    build_logs: list[BuildLog] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.url = canonical_url(self.url)

    @property
    def latest_log(self) -> Optional[BuildLog]:
        return self.build_logs[-1] if self.build_logs else None

    @property
    def path(self) -> str:
        """URL path component without the leading slash (``owner/repo``)."""
        return urlsplit(self.url).path.lstrip("/")

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "build_logs": [log.to_dict() for log in self.build_logs],
        }

    @classmethod
    def from_dict(cls, data: dict) -> Project:
        return cls(
            url=data["url"],
            build_logs=[BuildLog.from_dict(b) for b in data.get("build_logs", [])],
        )


@dataclass(frozen=True)
class DiscoverySnapshot:
    """Adoption counts observed at one point in time."""

    date: datetime
    sources: int
    projects: tuple[int, ...] = ()

    def to_dict(self) -> dict:
        return {
            "date": to_timestamp(self.date),
            "sources": self.sources,
            "projects": list(self.projects),
        }

    @classmethod
    def from_dict(cls, data: dict) -> DiscoverySnapshot:
        return cls(
            date=from_timestamp(data["date"]),
            sources=int(data["sources"]),
            projects=tuple(int(p) for p in data.get("projects", [])),
        )


@dataclass(frozen=True)
class DownloadSample:
    """Per-platform download counts for one version at one point in time."""

    date: datetime
    counts: dict[Platform, int]

    def to_dict(self) -> dict:
        return {
            "date": to_timestamp(self.date),
            "counts": {platform.value: count for platform, count in sorted(self.counts.items())},
        }

    @classmethod
    def from_dict(cls, data: dict) -> DownloadSample:
        return cls(
            date=from_timestamp(data["date"]),
            counts={Platform(name): int(count) for name, count in data.get("counts", {}).items()},
        )


@dataclass(frozen=True)
class ReleaseAsset:
    """A downloadable file attached to a release."""

    name: str
    download_count: int


@dataclass(frozen=True)
class Release:
    """A published release as reported by the release listing."""

    name: str
    assets: tuple[ReleaseAsset, ...] = ()

    @classmethod
    def from_api(cls, data: dict) -> Release:
        """Build from a GitHub release payload; empty names fall back to the tag."""
        return cls(
            name=data.get("name") or data.get("tag_name") or "",
            assets=tuple(
                ReleaseAsset(name=a["name"], download_count=int(a.get("download_count", 0)))
                for a in data.get("assets", [])
            ),
        )
