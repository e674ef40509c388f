"""Tests for the GitHub contributor fetcher."""

from __future__ import annotations

import httpx
import pytest

from pkganalyzer.analyzers.github import GitHubFetcher, parse_contributor

CONTRIBUTORS = [
    {"login": "alice", "id": 1, "type": "User", "contributions": 120},
    {"login": "dependabot[bot]", "id": 2, "type": "Bot", "contributions": 7},
    {"name": "Old Timer", "email": "old@example.com", "type": "Anonymous", "contributions": 3},
]


def _fetcher(handler, token: str | None = "sekrit", **kwargs) -> GitHubFetcher:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return GitHubFetcher(token=token, client=client, **kwargs)


class TestFetchContributors:
    def test_single_page(self) -> None:
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=CONTRIBUTORS, headers={"X-RateLimit-Remaining": "4999"})

        fetcher = _fetcher(handler)
        contributors = fetcher.fetch_contributors("JuliaLang/Example.jl")

        assert [c.type for c in contributors] == ["User", "Bot", "Anonymous"]
        assert contributors[0].login == "alice"
        assert contributors[2].name == "Old Timer"
        assert contributors[2].login is None
        assert fetcher.rate_limit_remaining == 4999

        (request,) = requests
        assert request.url.path == "/repos/JuliaLang/Example.jl/contributors"
        assert request.url.params["anon"] == "true"
        assert request.headers["Authorization"] == "Bearer sekrit"

    def test_pagination(self) -> None:
        pages = []

        def handler(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params["page"])
            pages.append(page)
            if page == 1:
                return httpx.Response(200, json=CONTRIBUTORS[:2])
            return httpx.Response(200, json=CONTRIBUTORS[2:])

        data = _fetcher(handler)._fetch_all_pages("/repos/o/r/contributors", {"per_page": 2})

        assert len(data) == 3
        assert pages == [1, 2]

    def test_max_pages(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[{"login": "x", "id": 1, "type": "User"}])

        data = _fetcher(handler, max_pages=3)._fetch_all_pages("/repos/o/r/contributors", {"per_page": 1})

        assert len(data) == 3

    def test_stops_when_rate_limit_exhausted(self, caplog: pytest.LogCaptureFixture) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json=[{"login": "x", "id": 1, "type": "User"}], headers={"X-RateLimit-Remaining": "0"}
            )

        fetcher = _fetcher(handler)
        data = fetcher._fetch_all_pages("/repos/o/r/contributors", {"per_page": 1})

        assert len(data) == 1
        assert fetcher.rate_limit_remaining == 0
        assert "rate limit exhausted" in caplog.text

    def test_not_found(self) -> None:
        assert _fetcher(lambda request: httpx.Response(404)).fetch_contributors("o/gone") == []

    def test_server_error_logged_not_raised(self, caplog: pytest.LogCaptureFixture) -> None:
        contributors = _fetcher(lambda request: httpx.Response(500)).fetch_contributors("o/r")
        assert contributors == []
        assert "Could not fetch contributors of o/r" in caplog.text

    def test_unauthenticated_makes_no_request(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        fetcher = _fetcher(handler, token=None)
        assert fetcher.authenticated is False
        assert fetcher.fetch_contributors("o/r") == []

    def test_token_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GITHUB_AUTH", "from-env")
        assert GitHubFetcher().authenticated


def test_parse_contributor_defaults() -> None:
    contributor = parse_contributor({"login": "bob", "id": 9})
    assert contributor.type == "User"
    assert contributor.contributions == 0
