"""GitHub REST client for code search and release listing."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from ecotrack import __version__
from ecotrack.config.settings import GitHubConfig, RetryConfig
from ecotrack.models import Release
from ecotrack.utils.logging import get_logger
from ecotrack.utils.retry import with_retry

logger = get_logger("poller.github")

RETRYABLE_STATUS = {429, 500, 502, 503, 504}
SEARCH_PAGE_SIZE = 100
RELEASE_PAGE_SIZE = 100


class TransientRemoteError(Exception):
    """A response worth retrying (rate limit or server error)."""

    def __init__(self, status_code: int, url: str) -> None:
        super().__init__(f"HTTP {status_code} from {url}")
        self.status_code = status_code
        self.url = url


@dataclass
class CodeSearchResult:
    """Total hit count and the distinct repositories on the fetched pages."""

    total_count: int
    repositories: list[str] = field(default_factory=list)


class GitHubClient:
    """
    Thin async GitHub API client.

    Transport errors and retryable statuses are retried with exponential
    backoff; once the attempt budget is spent the last error propagates.
    """

    def __init__(
        self,
        config: GitHubConfig,
        retry: RetryConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep=None,
    ) -> None:
        """
        Initialize the client.

        Args:
            config: API URL, token and timeouts
            retry: Retry policy
            transport: Optional httpx transport (tests use httpx.MockTransport)
            sleep: Optional sleep coroutine used between retries
        """
        self.config = config
        self.retry = retry
        self._sleep = sleep

        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": f"ecosystem-tracker/{__version__}",
        }
        if config.token:
            headers["Authorization"] = f"Bearer {config.token}"

        self._client = httpx.AsyncClient(
            base_url=config.api_url.rstrip("/"),
            headers=headers,
            timeout=config.request_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def search_code(self, query: str, max_pages: int = 1) -> CodeSearchResult:
        """
        Run a code search.

        Args:
            query: Free-text search query
            max_pages: Pages of results to walk for repositories

        Returns:
            CodeSearchResult with the reported total and repository URLs in
            first-seen order
        """
        result = CodeSearchResult(total_count=0)
        seen: set[str] = set()

        for page in range(1, max_pages + 1):
            data = await self._get_json(
                "/search/code",
                {"q": query, "per_page": SEARCH_PAGE_SIZE, "page": page},
            )
            result.total_count = int(data.get("total_count", 0))
            items = data.get("items", [])
            for item in items:
                url = item.get("repository", {}).get("html_url")
                if url and url not in seen:
                    seen.add(url)
                    result.repositories.append(url)
            if len(items) < SEARCH_PAGE_SIZE or page * SEARCH_PAGE_SIZE >= result.total_count:
                break

        logger.info(
            "code_search_completed",
            query=query,
            total_count=result.total_count,
            repositories=len(result.repositories),
        )
        return result

    async def count_code(self, query: str) -> int:
        """Total hit count of a code search, fetching a single result."""
        data = await self._get_json("/search/code", {"q": query, "per_page": 1})
        return int(data.get("total_count", 0))

    async def list_releases(self, repository: str) -> list[Release]:
        """All published releases of ``owner/repo`` with their assets."""
        releases: list[Release] = []
        page = 1
        while True:
            data = await self._get_json(
                f"/repos/{repository}/releases",
                {"per_page": RELEASE_PAGE_SIZE, "page": page},
            )
            releases.extend(Release.from_api(r) for r in data if not r.get("draft"))
            if len(data) < RELEASE_PAGE_SIZE:
                break
            page += 1

        logger.info("releases_listed", repository=repository, releases=len(releases))
        return releases

    async def _get_json(self, path: str, params: dict[str, Any]) -> Any:
        async def attempt() -> Any:
            response = await self._client.get(path, params=params)
            if self._is_transient(response):
                raise TransientRemoteError(response.status_code, str(response.url))
            response.raise_for_status()
            return response.json()

        return await with_retry(
            attempt,
            self.retry,
            (httpx.TransportError, TransientRemoteError),
            f"GET {path}",
            sleep=self._sleep,
        )

    @staticmethod
    def _is_transient(response: httpx.Response) -> bool:
        if response.status_code in RETRYABLE_STATUS:
            return True
        # Primary rate limit reports zero remaining; secondary limits say so in the body
        if response.status_code == 403:
            if response.headers.get("x-ratelimit-remaining") == "0":
                return True
            return "rate limit" in response.text.lower()
        return False
