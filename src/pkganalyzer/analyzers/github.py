"""Contributor listings from the GitHub REST API."""

import logging

import httpx

from pkganalyzer.acquisition.context import github_token_from_env
from pkganalyzer.models.schemas import Contributor

logger = logging.getLogger(__name__)

API_URL = "https://api.github.com"
PAGE_SIZE = 100


class GitHubFetcher:
    """Fetches contributor data from the GitHub API.

    Anonymous access is never attempted: without a token the fetcher
    reports no contributors and makes no request. Set GITHUB_TOKEN (or
    GITHUB_AUTH) or pass a token to the constructor.
    """

    def __init__(
        self,
        token: str | None = None,
        client: httpx.Client | None = None,
        max_pages: int = 50,
    ) -> None:
        """
        Args:
            token: GitHub token. Falls back to GITHUB_TOKEN, then GITHUB_AUTH.
            client: Shared httpx client. A short-lived one is opened per listing otherwise.
            max_pages: Upper bound on pages fetched per listing.
        """
        self._token = token or github_token_from_env()
        self._client = client
        self.max_pages = max_pages
        # Last value of X-RateLimit-Remaining seen, None before the first response
        self.rate_limit_remaining: int | None = None

    @property
    def authenticated(self) -> bool:
        return bool(self._token)

    def _request_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "Authorization": f"Bearer {self._token}",
        }

    def _out_of_calls(self, response: httpx.Response) -> bool:
        remaining = response.headers.get("X-RateLimit-Remaining")
        if remaining is None:
            return False
        self.rate_limit_remaining = int(remaining)
        return self.rate_limit_remaining == 0

    def _fetch_all_pages(self, path: str, params: dict | None = None) -> list:
        """Collect every page of a listing, up to ``max_pages``."""
        query = {"per_page": PAGE_SIZE, **(params or {})}
        client = self._client or httpx.Client(timeout=30.0)
        items: list = []
        try:
            for page in range(1, self.max_pages + 1):
                query["page"] = page
                response = client.get(f"{API_URL}{path}", params=query, headers=self._request_headers())
                # 204 is an empty repository
                if response.status_code in (204, 404):
                    break
                response.raise_for_status()

                batch = response.json()
                items.extend(batch)
                exhausted = self._out_of_calls(response)
                if len(batch) < query["per_page"]:
                    break
                if exhausted:
                    logger.warning(f"GitHub rate limit exhausted; {path} truncated after page {page}")
                    break
            else:
                logger.debug(f"Stopped {path} at {self.max_pages} pages")
        finally:
            if self._client is None:
                client.close()
        return items

    def fetch_contributors(self, slug: str) -> list[Contributor]:
        """List the contributors of ``owner/repo``, anonymous ones included.

        Returns an empty list when unauthenticated or when the request fails.
        """
        if not self.authenticated:
            return []

        try:
            data = self._fetch_all_pages(f"/repos/{slug}/contributors", {"anon": "true"})
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Could not fetch contributors of {slug}: {e}")
            return []

        return [parse_contributor(c) for c in data]


def parse_contributor(data: dict) -> Contributor:
    """Normalize one entry of the contributors listing."""
    kind = data.get("type", "User")
    contributions = data.get("contributions", 0)
    if kind == "Anonymous":
        return Contributor(name=data.get("name"), type=kind, contributions=contributions)
    return Contributor(login=data.get("login"), id=data.get("id"), type=kind, contributions=contributions)
