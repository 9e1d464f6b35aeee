"""Release poller: download counts per distribution track."""

from __future__ import annotations

from ecotrack.config.settings import ReleaseTrackConfig
from ecotrack.models import utc_now
from ecotrack.poller.github import GitHubClient
from ecotrack.registry import CompatibilityStore
from ecotrack.utils.logging import get_logger

logger = get_logger("poller.releases")


class ReleasePoller:
    """Feeds each track's release listing into the store's download history."""

    def __init__(
        self,
        client: GitHubClient,
        tracks: list[ReleaseTrackConfig],
        strict_assets: bool = True,
    ) -> None:
        self.client = client
        self.tracks = tracks
        self.strict_assets = strict_assets

    async def poll(self, store: CompatibilityStore) -> dict[str, int]:
        """
        Record every track's downloads with one shared timestamp.

        Returns:
            Samples appended per track

        Raises:
            VersionParseError, UnknownPlatformError: On upstream naming breaks
        """
        date = utc_now()
        appended = {}
        for track in self.tracks:
            releases = await self.client.list_releases(track.repository)
            appended[track.name] = store.record_release_downloads(
                releases,
                track.name,
                date=date,
                strict=self.strict_assets,
            )

        logger.info("releases_polled", appended=appended)
        return appended
