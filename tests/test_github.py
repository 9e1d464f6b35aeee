"""Tests for ecotrack.poller - GitHub client and pollers over httpx.MockTransport."""
from unittest.mock import AsyncMock

import httpx
import pytest

from ecotrack.config.settings import GitHubConfig, ReleaseTrackConfig, RetryConfig
from ecotrack.models import SemVer, UnknownPlatformError
from ecotrack.poller import DiscoveryPoller, GitHubClient, ReleasePoller, TransientRemoteError


def json_response(data, status_code=200, headers=None):
    return httpx.Response(status_code, json=data, headers=headers or {})


def make_client(handler, token=None, retry=None):
    return GitHubClient(
        GitHubConfig(token=token),
        retry or RetryConfig(max_attempts=3),
        transport=httpx.MockTransport(handler),
        sleep=AsyncMock(),
    )


def code_item(url):
    return {"repository": {"html_url": url}}


def release_payload(name, assets, draft=False):
    return {
        "name": name,
        "tag_name": name,
        "draft": draft,
        "assets": [{"name": n, "download_count": c} for n, c in assets],
    }


class TestGitHubClient:

    @pytest.mark.asyncio
    async def test_sends_token_and_api_headers(self):
        seen = []

        def handler(request):
            seen.append(request)
            return json_response({"total_count": 42, "items": []})

        async with make_client(handler, token="secret") as client:
            assert await client.count_code("extension:veryl") == 42

        assert seen[0].headers["Authorization"] == "Bearer secret"
        assert seen[0].headers["Accept"] == "application/vnd.github+json"
        assert seen[0].url.params["q"] == "extension:veryl"

    @pytest.mark.asyncio
    async def test_search_code_paginates_and_dedups(self):
        pages = {
            "1": [code_item(f"https://github.com/o/r{i}") for i in range(100)],
            "2": [code_item("https://github.com/o/r0"), code_item("https://github.com/o/extra")],
        }

        def handler(request):
            return json_response({"total_count": 102, "items": pages[request.url.params["page"]]})

        async with make_client(handler) as client:
            result = await client.search_code("filename:Veryl.toml", max_pages=5)

        assert result.total_count == 102
        assert len(result.repositories) == 101
        assert result.repositories[-1] == "https://github.com/o/extra"

    @pytest.mark.asyncio
    async def test_search_code_respects_page_limit(self):
        calls = []

        def handler(request):
            calls.append(request.url.params["page"])
            items = [code_item(f"https://github.com/o/r{len(calls)}-{i}") for i in range(100)]
            return json_response({"total_count": 1000, "items": items})

        async with make_client(handler) as client:
            await client.search_code("filename:Veryl.toml", max_pages=2)

        assert calls == ["1", "2"]

    @pytest.mark.asyncio
    async def test_list_releases_skips_drafts(self):
        def handler(request):
            return json_response([
                release_payload("v0.5.0", [("veryl-x86_64-linux.zip", 3)]),
                release_payload("v0.6.0", [], draft=True),
            ])

        async with make_client(handler) as client:
            releases = await client.list_releases("veryl-lang/veryl")

        assert [r.name for r in releases] == ["v0.5.0"]

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        responses = [json_response({}, 503), json_response({"total_count": 5, "items": []})]

        async with make_client(lambda request: responses.pop(0)) as client:
            assert await client.count_code("q") == 5

    @pytest.mark.asyncio
    async def test_retries_rate_limit(self):
        responses = [
            json_response({"message": "API rate limit exceeded"}, 403, {"x-ratelimit-remaining": "0"}),
            json_response({"total_count": 1, "items": []}),
        ]

        async with make_client(lambda request: responses.pop(0)) as client:
            assert await client.count_code("q") == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_budget(self):
        calls = []

        def handler(request):
            calls.append(request)
            return json_response({}, 502)

        async with make_client(handler) as client:
            with pytest.raises(TransientRemoteError):
                await client.count_code("q")

        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return json_response({"message": "Not Found"}, 404)

        async with make_client(handler) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await client.list_releases("nobody/nothing")

        assert len(calls) == 1


class TestDiscoveryPoller:

    @pytest.mark.asyncio
    async def test_registers_projects_and_records_snapshot(self, store):
        def handler(request):
            if request.url.params["q"] == "extension:veryl":
                return json_response({"total_count": 321, "items": []})
            return json_response({"total_count": 3, "items": [
                code_item("https://github.com/alice/one"),
                code_item("https://github.com/veryl-lang/veryl"),
                code_item("https://github.com/bob/two"),
            ]})

        async with make_client(handler) as client:
            snapshot = await DiscoveryPoller(client, GitHubConfig()).poll(store)

        assert snapshot.sources == 321
        assert snapshot.projects == (0, 1)
        assert [p.url for p in store.projects.values()] == [
            "https://github.com/alice/one",
            "https://github.com/bob/two",
        ]
        assert store.discovered == [snapshot]

    @pytest.mark.asyncio
    async def test_known_projects_keep_their_ids(self, store, project_factory):
        project_factory("https://github.com/bob/two")

        def handler(request):
            return json_response({"total_count": 2, "items": [
                code_item("https://github.com/alice/one"),
                code_item("https://github.com/bob/two"),
            ]})

        async with make_client(handler) as client:
            snapshot = await DiscoveryPoller(client, GitHubConfig()).poll(store)

        assert store.find_project("https://github.com/bob/two") == 0
        assert store.find_project("https://github.com/alice/one") == 1
        assert snapshot.projects == (0, 1)


class TestReleasePoller:

    @pytest.mark.asyncio
    async def test_records_each_track(self, store):
        def handler(request):
            if request.url.path == "/repos/veryl-lang/veryl/releases":
                return json_response([release_payload("v0.5.0", [("veryl-x86_64-mac.zip", 9)])])
            return json_response([release_payload("v0.1.2", [("verylup-x86_64-linux.zip", 4)])])

        tracks = [
            ReleaseTrackConfig("veryl", "veryl-lang/veryl"),
            ReleaseTrackConfig("verylup", "veryl-lang/verylup"),
        ]
        async with make_client(handler) as client:
            appended = await ReleasePoller(client, tracks).poll(store)

        assert appended == {"veryl": 1, "verylup": 1}
        assert SemVer.parse("0.1.2") in store.downloads["verylup"]

    @pytest.mark.asyncio
    async def test_unknown_asset_aborts_in_strict_mode(self, store):
        def handler(request):
            return json_response([release_payload("v0.5.0", [("veryl-riscv64-linux.zip", 1)])])

        tracks = [ReleaseTrackConfig("veryl", "veryl-lang/veryl")]
        async with make_client(handler) as client:
            with pytest.raises(UnknownPlatformError):
                await ReleasePoller(client, tracks, strict_assets=True).poll(store)
