"""Tests for ecotrack.registry.store - registry, download history and persistence."""
import json
from datetime import datetime, timezone

import pytest

from ecotrack.models import (
    BuildLog,
    DiscoverySnapshot,
    Platform,
    Project,
    Release,
    ReleaseAsset,
    SemVer,
    UnknownPlatformError,
    VersionParseError,
)
from ecotrack.registry import CompatibilityStore, StoreDecodeError, StoreError

DAY1 = datetime(2026, 1, 1, tzinfo=timezone.utc)
DAY2 = datetime(2026, 1, 2, tzinfo=timezone.utc)


def release(name, linux=10, windows=5):
    return Release(
        name=name,
        assets=(
            ReleaseAsset(name=f"veryl-{name}-x86_64-linux.zip", download_count=linux),
            ReleaseAsset(name=f"veryl-{name}-x86_64-windows.zip", download_count=windows),
        ),
    )


class TestProjectRegistry:

    def test_insert_assigns_dense_ids(self, store):
        assert store.insert_project(Project(url="https://github.com/a/one")) == 0
        assert store.insert_project(Project(url="https://github.com/b/two")) == 1

    def test_insert_same_url_returns_existing_id(self, store):
        first = store.insert_project(Project(url="https://github.com/a/one"))
        second = store.insert_project(Project(url="https://GitHub.com/a/one.git/"))

        assert first == second == 0
        assert len(store.projects) == 1

    def test_find_and_get_project(self, store):
        project_id = store.insert_project(Project(url="https://github.com/a/one"))

        assert store.find_project("https://github.com/a/one/") == project_id
        assert store.find_project("https://github.com/a/missing") is None
        assert store.get_project(project_id).url == "https://github.com/a/one"
        assert store.get_project(42) is None

    def test_append_build_logs(self, store):
        project_id = store.insert_project(Project(url="https://github.com/a/one"))
        log = BuildLog(rev="abc", compiler_version="0.5.0", result=True)

        assert store.append_build_logs({project_id: log}) == 1
        assert store.projects[project_id].build_logs == [log]

    def test_append_build_logs_unknown_id_appends_nothing(self, store):
        project_id = store.insert_project(Project(url="https://github.com/a/one"))
        log = BuildLog(rev="abc", compiler_version="0.5.0", result=True)

        with pytest.raises(KeyError):
            store.append_build_logs({project_id: log, 7: log})

        assert store.projects[project_id].build_logs == []


class TestReleaseDownloads:

    def test_first_sample_recorded(self, store):
        appended = store.record_release_downloads([release("v0.5.0")], "veryl", date=DAY1)

        samples = store.downloads["veryl"][SemVer.parse("0.5.0")]
        assert appended == 1
        assert samples[0].date == DAY1
        assert samples[0].counts == {Platform.X86_64_LINUX: 10, Platform.X86_64_WINDOWS: 5}

    def test_identical_counts_not_appended(self, store):
        store.record_release_downloads([release("v0.5.0")], "veryl", date=DAY1)
        appended = store.record_release_downloads([release("v0.5.0")], "veryl", date=DAY2)

        assert appended == 0
        assert len(store.downloads["veryl"][SemVer.parse("0.5.0")]) == 1

    def test_changed_counts_appended(self, store):
        store.record_release_downloads([release("v0.5.0")], "veryl", date=DAY1)
        store.record_release_downloads([release("v0.5.0", linux=12)], "veryl", date=DAY2)

        samples = store.downloads["veryl"][SemVer.parse("0.5.0")]
        assert [s.date for s in samples] == [DAY1, DAY2]

    def test_non_semver_release_rejected(self, store):
        with pytest.raises(VersionParseError):
            store.record_release_downloads([release("nightly")], "veryl", date=DAY1)

    def test_unknown_asset_rejected_in_strict_mode(self, store):
        odd = Release(name="v0.5.0", assets=(ReleaseAsset("veryl-riscv.zip", 1),))

        with pytest.raises(UnknownPlatformError):
            store.record_release_downloads([release("v0.4.0"), odd], "veryl", date=DAY1)

        assert store.downloads.get("veryl", {}) == {}

    def test_unknown_asset_skipped_in_relaxed_mode(self, store):
        odd = Release(
            name="v0.5.0",
            assets=(
                ReleaseAsset("veryl-riscv.zip", 1),
                ReleaseAsset("veryl-aarch64-mac.zip", 3),
            ),
        )

        store.record_release_downloads([odd], "veryl", date=DAY1, strict=False)

        samples = store.downloads["veryl"][SemVer.parse("0.5.0")]
        assert samples[0].counts == {Platform.AARCH64_MAC: 3}

    def test_tracks_kept_separate(self, store):
        store.record_release_downloads([release("v0.5.0")], "veryl", date=DAY1)
        store.record_release_downloads([release("v0.1.0")], "verylup", date=DAY1)

        assert list(store.downloads["veryl"]) == [SemVer.parse("0.5.0")]
        assert list(store.downloads["verylup"]) == [SemVer.parse("0.1.0")]


class TestPersistence:

    def test_save_and_load(self, store, tmp_path):
        project_id = store.insert_project(Project(url="https://github.com/a/one"))
        store.append_build_logs({project_id: BuildLog("abc", "0.5.0", True)})
        store.record_discovery(DiscoverySnapshot(date=DAY1, sources=120, projects=(0,)))
        store.record_release_downloads([release("v0.5.0"), release("v0.10.0")], "veryl", date=DAY1)
        path = tmp_path / "db" / "db.json"

        store.save(path)
        loaded = CompatibilityStore.load(path)

        assert loaded.to_dict() == store.to_dict()
        assert loaded.projects[0].build_logs == [BuildLog("abc", "0.5.0", True)]
        assert loaded.discovered[0].date == DAY1

    def test_document_uses_unix_seconds_and_string_keys(self, store, tmp_path):
        store.record_discovery(DiscoverySnapshot(date=DAY1, sources=1))
        store.insert_project(Project(url="https://github.com/a/one"))
        path = tmp_path / "db.json"

        store.save(path)
        data = json.loads(path.read_text())

        assert data["discovered"][0]["date"] == int(DAY1.timestamp())
        assert list(data["projects"]) == ["0"]

    def test_missing_collections_default_to_empty(self, tmp_path):
        path = tmp_path / "db.json"
        path.write_text("{}")

        loaded = CompatibilityStore.load(path)

        assert loaded.discovered == []
        assert loaded.projects == {}
        assert loaded.downloads == {}

    def test_invalid_json_raises_decode_error(self, tmp_path):
        path = tmp_path / "db.json"
        path.write_text("{not json")

        with pytest.raises(StoreDecodeError):
            CompatibilityStore.load(path)

    def test_wrong_structure_raises_decode_error(self, tmp_path):
        path = tmp_path / "db.json"
        path.write_text(json.dumps({"projects": [1, 2]}))

        with pytest.raises(StoreDecodeError):
            CompatibilityStore.load(path)

    def test_sparse_project_ids_rejected(self, tmp_path):
        path = tmp_path / "db.json"
        path.write_text(json.dumps({"projects": {"1": {"url": "https://github.com/a/one"}}}))

        with pytest.raises(StoreDecodeError):
            CompatibilityStore.load(path)

    def test_out_of_range_date_raises_decode_error(self, tmp_path):
        path = tmp_path / "db.json"
        path.write_text(json.dumps({"discovered": [{"date": 10**20, "sources": 1}]}))

        with pytest.raises(StoreDecodeError):
            CompatibilityStore.load(path)

    @pytest.mark.parametrize("log", [
        {"rev": "abc", "compiler_version": "0.5.0", "result": "false"},
        {"rev": "abc", "compiler_version": "0.5.0", "result": 0},
        {"rev": 12, "compiler_version": "0.5.0", "result": True},
        {"rev": "abc", "compiler_version": None, "result": True},
    ])
    def test_mistyped_build_log_raises_decode_error(self, tmp_path, log):
        path = tmp_path / "db.json"
        path.write_text(json.dumps({
            "projects": {"0": {"url": "https://github.com/a/one", "build_logs": [log]}},
        }))

        with pytest.raises(StoreDecodeError):
            CompatibilityStore.load(path)

    def test_missing_file_raises_store_error(self, tmp_path):
        with pytest.raises(StoreError):
            CompatibilityStore.load(tmp_path / "absent.json")

    def test_load_or_create_missing_file(self, tmp_path):
        store = CompatibilityStore.load_or_create(tmp_path / "absent.json")

        assert store.projects == {}


class TestStats:

    def test_counts_latest_results(self, store):
        store.insert_project(Project("https://github.com/a/one", [BuildLog("a", "0.5.0", True)]))
        store.insert_project(Project("https://github.com/b/two", [BuildLog("b", "0.5.0", False)]))
        store.insert_project(Project("https://github.com/c/three"))
        store.record_release_downloads([release("v0.4.0"), release("v0.10.0")], "veryl", date=DAY1)

        stats = store.get_stats()

        assert (stats.passing, stats.failing, stats.untested) == (1, 1, 1)
        assert stats.latest_versions == {"veryl": "0.10.0"}

    def test_adoption_series_sorted_by_date(self, store):
        store.record_discovery(DiscoverySnapshot(date=DAY2, sources=20, projects=(0, 1)))
        store.record_discovery(DiscoverySnapshot(date=DAY1, sources=10, projects=(0,)))

        assert store.adoption_series() == [(DAY1, 10, 1), (DAY2, 20, 2)]
