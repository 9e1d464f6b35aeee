"""Discovery poller: adoption counts and new projects."""

from __future__ import annotations

from ecotrack.config.settings import GitHubConfig
from ecotrack.models import DiscoverySnapshot, Project, canonical_url, utc_now
from ecotrack.poller.github import GitHubClient
from ecotrack.registry import CompatibilityStore
from ecotrack.utils.logging import get_logger

logger = get_logger("poller.discovery")


class DiscoveryPoller:
    """
    Counts source files and finds projects via code search.

    Each repository holding a manifest is registered in the store (find or
    create) and one snapshot with the source count and the ids seen is
    appended.
    """

    def __init__(self, client: GitHubClient, config: GitHubConfig) -> None:
        self.client = client
        self.config = config
        self._excluded = {canonical_url(url) for url in config.exclude_repositories}

    async def poll(self, store: CompatibilityStore) -> DiscoverySnapshot:
        sources = await self.client.count_code(self.config.source_query)
        search = await self.client.search_code(
            self.config.project_query,
            max_pages=self.config.max_search_pages,
        )

        project_ids: list[int] = []
        for url in search.repositories:
            url = canonical_url(url)
            if url in self._excluded:
                logger.debug("repository_excluded", url=url)
                continue
            project_id = store.insert_project(Project(url=url))
            if project_id not in project_ids:
                project_ids.append(project_id)

        snapshot = DiscoverySnapshot(
            date=utc_now(),
            sources=sources,
            projects=tuple(sorted(project_ids)),
        )
        store.record_discovery(snapshot)

        logger.info(
            "discovery_polled",
            sources=sources,
            projects=len(snapshot.projects),
            registry_size=len(store.projects),
        )
        return snapshot
