"""Shared test fixtures."""
import shutil
import sys
from contextlib import asynccontextmanager
from pathlib import Path

import pytest

from ecotrack.models import BuildLog, Project, SemVer
from ecotrack.registry import CompatibilityStore
from ecotrack.runner import BuildOrchestrator, Checkout, CheckoutError, CommandOutput
from ecotrack.utils.logging import configure_logging


class FakeCompiler:
    """In-memory compiler double.

    Builds fail for roots whose directory name is in ``failing`` until a
    migrate call succeeds on that root. Migrate succeeds for every minor
    up to ``migrate_until`` (never when None).
    """

    def __init__(self, version="0.5.0"):
        self.version_text = version
        self.pinned_versions = {}
        self.failing = set()
        self.migrate_until = None
        self.builds = []
        self.migrations = []
        self.version_queries = []
        self._migrated = set()

    async def version(self, pin=None):
        self.version_queries.append(pin)
        return SemVer.parse(self.pinned_versions.get(pin, self.version_text))

    async def build(self, root, pin=None, check=False):
        root = Path(root)
        self.builds.append((root.name, pin, check))
        ok = root.name not in self.failing or str(root) in self._migrated
        return CommandOutput(success=ok, returncode=0 if ok else 1)

    async def migrate(self, root, pin):
        self.migrations.append(pin)
        minor = int(pin.rsplit(".", 1)[1])
        ok = self.migrate_until is not None and minor <= self.migrate_until
        if ok:
            self._migrated.add(str(root))
        return CommandOutput(success=ok, returncode=0 if ok else 1)


class FakeGit:
    """Checkout double that lays out manifest directories instead of cloning.

    ``layouts`` maps a URL to the build-root directories (relative to the
    checkout) that get a manifest; the default is the checkout root itself.
    """

    def __init__(self, revision="abc", manifest_name="Veryl.toml"):
        self.revision = revision
        self.manifest_name = manifest_name
        self.revisions = {}
        self.layouts = {}
        self.failing_urls = set()
        self.checkouts = []

    @asynccontextmanager
    async def checkout(self, url, dest):
        self.checkouts.append(url)
        if url in self.failing_urls:
            raise CheckoutError(f"Failed to clone {url}: repository not found")

        dest = Path(dest)
        dest.mkdir(parents=True, exist_ok=True)
        for relative in self.layouts.get(url, [""]):
            root = dest / relative
            root.mkdir(parents=True, exist_ok=True)
            (root / self.manifest_name).write_text("[project]\nname = \"demo\"\n")

        try:
            yield Checkout(path=dest, revision=self.revisions.get(url, self.revision))
        finally:
            shutil.rmtree(dest, ignore_errors=True)


@pytest.fixture(autouse=True)
def reset_logging():
    """Point logging back at the real stderr after tests that swap streams."""
    yield
    configure_logging(level="info", format_type="text", stream=sys.stderr)


@pytest.fixture
def store():
    return CompatibilityStore()


@pytest.fixture
def compiler():
    return FakeCompiler()


@pytest.fixture
def git():
    return FakeGit()


@pytest.fixture
def build_dir(tmp_path):
    return tmp_path / "build"


@pytest.fixture
def orchestrator(store, compiler, git, build_dir):
    return BuildOrchestrator(store=store, compiler=compiler, git=git, build_dir=build_dir)


@pytest.fixture
def passing_log():
    return BuildLog(rev="abc", compiler_version="0.5.0", result=True)


@pytest.fixture
def project_factory(store):
    """Register projects by URL, optionally with existing history."""

    def make(url, logs=()):
        return store.insert_project(Project(url=url, build_logs=list(logs)))

    return make
