"""Remote pollers feeding the compatibility store."""

from ecotrack.poller.discovery import DiscoveryPoller
from ecotrack.poller.github import CodeSearchResult, GitHubClient, TransientRemoteError
from ecotrack.poller.releases import ReleasePoller

__all__ = [
    "CodeSearchResult",
    "DiscoveryPoller",
    "GitHubClient",
    "ReleasePoller",
    "TransientRemoteError",
]
