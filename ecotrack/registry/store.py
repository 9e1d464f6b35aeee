"""Compatibility store: discovery snapshots, project registry and download history.

The store is a pure in-memory model. It is loaded wholesale at the start of a
run and saved wholesale at its end; nothing is persisted in between, so a
crash loses the current run's results but never earlier history.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from ecotrack.models import (
    BuildLog,
    DiscoverySnapshot,
    DownloadSample,
    Platform,
    Project,
    Release,
    SemVer,
    UnknownPlatformError,
    canonical_url,
    utc_now,
)
from ecotrack.utils.atomic import AtomicWriteError, atomic_write_json
from ecotrack.utils.logging import get_logger

logger = get_logger("registry.store")

SCHEMA_VERSION = 1


class StoreError(Exception):
    """Raised when the store document cannot be read or written."""

    pass


class StoreDecodeError(StoreError):
    """Raised when the store document is not valid or has the wrong structure."""

    pass


@dataclass
class StoreStats:
    """Summary of the store for status display."""

    total_projects: int = 0
    passing: int = 0
    failing: int = 0
    untested: int = 0
    build_logs: int = 0
    snapshots: int = 0
    latest_snapshot: Optional[dict] = None
    latest_versions: dict[str, Optional[str]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "total_projects": self.total_projects,
            "passing": self.passing,
            "failing": self.failing,
            "untested": self.untested,
            "build_logs": self.build_logs,
            "snapshots": self.snapshots,
            "latest_snapshot": self.latest_snapshot,
            "latest_versions": self.latest_versions,
        }


class CompatibilityStore:
    """
    Persistent record of ecosystem adoption and build compatibility.

    Holds:
    - Append-only discovery snapshots
    - The project registry (id -> Project), ids dense and never reused
    - Per-project append-only build logs
    - Per-track, per-version download samples without consecutive duplicates
    """

    def __init__(self) -> None:
        self.discovered: list[DiscoverySnapshot] = []
        self.projects: dict[int, Project] = {}
        self.downloads: dict[str, dict[SemVer, list[DownloadSample]]] = {}

    # Persistence

    @classmethod
    def load(cls, path: Path) -> CompatibilityStore:
        """
        Load the full document.

        Raises:
            StoreError: If the file cannot be read
            StoreDecodeError: If the content is not a valid store document
        """
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise StoreError(f"Failed to read store {path}: {e}") from e

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise StoreDecodeError(f"Store {path} is not valid JSON: {e}") from e

        try:
            store = cls.from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError, OverflowError, OSError) as e:
            raise StoreDecodeError(f"Store {path} has an unexpected structure: {e}") from e

        logger.info(
            "store_loaded",
            path=str(path),
            projects=len(store.projects),
            snapshots=len(store.discovered),
        )
        return store

    @classmethod
    def load_or_create(cls, path: Path) -> CompatibilityStore:
        """Load the document, or start an empty store if it does not exist yet."""
        if not Path(path).exists():
            logger.info("store_not_found", path=str(path))
            return cls()
        return cls.load(path)

    def save(self, path: Path) -> None:
        """
        Serialize and overwrite the document in one shot.

        Raises:
            StoreError: If the write fails
        """
        try:
            atomic_write_json(Path(path), self.to_dict())
        except AtomicWriteError as e:
            raise StoreError(str(e)) from e

        logger.info(
            "store_saved",
            path=str(path),
            projects=len(self.projects),
            snapshots=len(self.discovered),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": SCHEMA_VERSION,
            "discovered": [snapshot.to_dict() for snapshot in self.discovered],
            "projects": {
                str(project_id): project.to_dict()
                for project_id, project in sorted(self.projects.items())
            },
            "downloads": {
                track: {
                    str(version): [sample.to_dict() for sample in samples]
                    for version, samples in sorted(versions.items(), key=lambda item: item[0])
                }
                for track, versions in sorted(self.downloads.items())
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CompatibilityStore:
        if not isinstance(data, dict):
            raise TypeError(f"expected a JSON object, got {type(data).__name__}")

        store = cls()
        store.discovered = [
            DiscoverySnapshot.from_dict(d) for d in data.get("discovered", [])
        ]
        store.projects = {
            int(project_id): Project.from_dict(p)
            for project_id, p in data.get("projects", {}).items()
        }
        if sorted(store.projects) != list(range(len(store.projects))):
            raise ValueError(f"project ids must be dense from 0, got {sorted(store.projects)}")
        store.downloads = {
            track: {
                SemVer.parse(version): [DownloadSample.from_dict(s) for s in samples]
                for version, samples in versions.items()
            }
            for track, versions in data.get("downloads", {}).items()
        }
        return store

    # Project registry

    def find_project(self, url: str) -> Optional[int]:
        """Find a project id by URL (linear scan)."""
        url = canonical_url(url)
        for project_id, project in self.projects.items():
            if project.url == url:
                return project_id
        return None

    def get_project(self, project_id: int) -> Optional[Project]:
        return self.projects.get(project_id)

    def insert_project(self, project: Project) -> int:
        """
        Find-or-create a project by URL.

        Returns:
            The existing id for a known URL, else a new id equal to the
            current registry size
        """
        existing = self.find_project(project.url)
        if existing is not None:
            return existing

        project_id = len(self.projects)
        self.projects[project_id] = project
        logger.info("project_registered", project_id=project_id, url=project.url)
        return project_id

    def append_build_logs(self, logs: Mapping[int, BuildLog]) -> int:
        """
        Batch-commit one run's build logs.

        Raises:
            KeyError: If a log refers to an unknown project id; nothing is
                appended in that case
        """
        unknown = [project_id for project_id in logs if project_id not in self.projects]
        if unknown:
            raise KeyError(f"Unknown project ids: {unknown}")

        for project_id in sorted(logs):
            self.projects[project_id].build_logs.append(logs[project_id])

        logger.info("build_logs_committed", count=len(logs))
        return len(logs)

    # Time series

    def record_discovery(self, snapshot: DiscoverySnapshot) -> None:
        self.discovered.append(snapshot)
        logger.info(
            "discovery_recorded",
            sources=snapshot.sources,
            projects=len(snapshot.projects),
        )

    def record_release_downloads(
        self,
        releases: Iterable[Release],
        track: str,
        date: Optional[datetime] = None,
        strict: bool = True,
    ) -> int:
        """
        Merge one release listing into the track's download history.

        Every release name must be a ``v``-prefixed semantic version. A sample
        is appended for a version only if its counts differ from the previous
        sample for that version; the first sample is always kept.

        Args:
            releases: Releases with their assets
            track: Distribution track name
            date: Sample timestamp (defaults to now)
            strict: Raise on unrecognized asset names instead of skipping them

        Returns:
            Number of samples appended

        Raises:
            VersionParseError: If a release name is not a semantic version
            UnknownPlatformError: If strict and an asset matches no platform
        """
        date = date or utc_now()

        # Parse the whole listing before touching history
        parsed: list[tuple[SemVer, dict[Platform, int]]] = []
        for release in releases:
            version = SemVer.parse_tag(release.name)
            counts: dict[Platform, int] = {}
            for asset in release.assets:
                try:
                    platform = Platform.from_asset_name(asset.name)
                except UnknownPlatformError:
                    if strict:
                        raise
                    logger.warning(
                        "unknown_asset_skipped",
                        track=track,
                        release=release.name,
                        asset=asset.name,
                    )
                    continue
                counts[platform] = asset.download_count
            parsed.append((version, counts))

        history = self.downloads.setdefault(track, {})
        appended = 0
        for version, counts in parsed:
            samples = history.setdefault(version, [])
            if samples and samples[-1].counts == counts:
                continue
            samples.append(DownloadSample(date=date, counts=counts))
            appended += 1

        logger.info(
            "release_downloads_recorded",
            track=track,
            releases=len(parsed),
            appended=appended,
        )
        return appended

    def adoption_series(self) -> list[tuple[datetime, int, int]]:
        """(date, source count, project count) per snapshot, oldest first."""
        return [
            (snapshot.date, snapshot.sources, len(snapshot.projects))
            for snapshot in sorted(self.discovered, key=lambda s: s.date)
        ]

    def get_stats(self) -> StoreStats:
        stats = StoreStats()
        stats.total_projects = len(self.projects)
        stats.snapshots = len(self.discovered)

        for project in self.projects.values():
            stats.build_logs += len(project.build_logs)
            latest = project.latest_log
            if latest is None:
                stats.untested += 1
            elif latest.result:
                stats.passing += 1
            else:
                stats.failing += 1

        if self.discovered:
            latest_snapshot = self.discovered[-1]
            stats.latest_snapshot = {
                "date": latest_snapshot.date.isoformat(),
                "sources": latest_snapshot.sources,
                "projects": len(latest_snapshot.projects),
            }

        for track, versions in sorted(self.downloads.items()):
            stats.latest_versions[track] = str(max(versions)) if versions else None

        return stats
