"""Source-control plumbing: shallow clone and head revision."""

from __future__ import annotations

import asyncio
import os
import shutil
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Optional

from ecotrack.config.settings import RetryConfig
from ecotrack.utils.logging import get_logger
from ecotrack.utils.retry import with_retry

logger = get_logger("runner.git")


class CheckoutError(Exception):
    """Raised when a repository cannot be cloned or its revision resolved."""

    pass


@dataclass
class Checkout:
    """A working copy in the scratch directory."""

    path: Path
    revision: str


def git_env() -> dict[str, str]:
    """Process environment with credential prompts disabled.

    A private or deleted repository then fails the clone instead of waiting
    for a username on the terminal.
    """
    return {**os.environ, "GIT_TERMINAL_PROMPT": "0"}


class GitClient:
    """Runs git for shallow checkouts."""

    def __init__(self, retry: Optional[RetryConfig] = None) -> None:
        """
        Initialize the client.

        Args:
            retry: Retry policy for clones; a single attempt when None
        """
        self.retry = retry or RetryConfig(max_attempts=1)

    async def clone(self, url: str, dest: Path) -> None:
        """Shallow-clone ``url`` into ``dest``."""

        async def attempt() -> None:
            if dest.exists():
                shutil.rmtree(dest)
            dest.parent.mkdir(parents=True, exist_ok=True)
            returncode, _, stderr = await self._git("clone", "--depth", "1", url, str(dest))
            if returncode != 0:
                raise CheckoutError(f"Failed to clone {url}: {stderr.strip()}")

        logger.debug("cloning_repo", url=url, path=str(dest))
        await with_retry(attempt, self.retry, (CheckoutError,), "git_clone")

    async def rev_parse(self, path: Path) -> str:
        """Resolve HEAD of the working copy at ``path``."""
        returncode, stdout, stderr = await self._git("rev-parse", "HEAD", cwd=path)
        if returncode != 0:
            raise CheckoutError(f"Failed to resolve HEAD in {path}: {stderr.strip()}")
        return stdout.strip()

    @asynccontextmanager
    async def checkout(self, url: str, dest: Path) -> AsyncIterator[Checkout]:
        """
        Clone, resolve the head revision, and remove the working copy on exit.

        Raises:
            CheckoutError: If cloning or rev-parse fails
        """
        try:
            await self.clone(url, dest)
            revision = await self.rev_parse(dest)
            yield Checkout(path=dest, revision=revision)
        finally:
            if dest.exists():
                shutil.rmtree(dest, ignore_errors=True)

    async def _git(self, *args: str, cwd: Optional[Path] = None) -> tuple[int, str, str]:
        try:
            process = await asyncio.create_subprocess_exec(
                "git", *args,
                cwd=str(cwd) if cwd is not None else None,
                stdin=asyncio.subprocess.DEVNULL,
                env=git_env(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise CheckoutError(f"Cannot run git: {e}") from e

        stdout, stderr = await process.communicate()
        return process.returncode, stdout.decode(errors="replace"), stderr.decode(errors="replace")
