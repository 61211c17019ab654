"""GitHub REST adapters: per-repository activity and candidate discovery."""

import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional

import httpx

from gh_digest.core import (
    ActivityDiscovery,
    ActivityItem,
    ActivityMetrics,
    ActivitySource,
    CandidateActivity,
    ExternalError,
    FatalExternalError,
    ItemKind,
    TransientExternalError,
)

logger = logging.getLogger(__name__)

PER_PAGE = 100
MAX_SEARCH_PAGES = 10


def parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _github_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class GitHubClient:
    """Shared request plumbing: headers, pagination, error mapping."""

    def __init__(
        self,
        token: Optional[str] = None,
        api_base: str = "https://api.github.com",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.token = token
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_base,
            headers=self._get_headers(),
            timeout=self.timeout,
            transport=self.transport,
        )

    async def get_json(self, client: httpx.AsyncClient, url: str, params: Optional[dict] = None) -> httpx.Response:
        try:
            response = await client.get(url, params=params)
        except httpx.RequestError as e:
            raise TransientExternalError(f"Network error for {url}: {e}") from e

        if response.status_code == 200:
            return response

        if response.status_code == 401:
            raise FatalExternalError("GitHub rejected credentials (401); check GITHUB_TOKEN")

        if response.status_code == 429 or (
            response.status_code == 403 and response.headers.get("x-ratelimit-remaining") == "0"
        ):
            raise TransientExternalError(
                f"GitHub rate limit hit for {url}", retry_after=self._retry_after(response)
            )

        if response.status_code >= 500:
            raise TransientExternalError(f"GitHub server error {response.status_code} for {url}")

        raise ExternalError(f"GitHub API error {response.status_code} for {url}")

    async def paginate(
        self, client: httpx.AsyncClient, url: str, params: dict, max_pages: Optional[int] = None
    ) -> AsyncIterator[Any]:
        """Yield JSON bodies of each page, following Link: rel=next."""
        next_url: Optional[str] = url
        next_params: Optional[dict] = params
        pages = 0
        while next_url:
            response = await self.get_json(client, next_url, next_params)
            yield response.json()
            pages += 1
            if max_pages is not None and pages >= max_pages:
                return
            next_link = response.links.get("next")
            next_url = next_link["url"] if next_link else None
            # The next link already carries the query string
            next_params = None

    async def current_user(self) -> str:
        async with self.client() as client:
            response = await self.get_json(client, "/user")
        return response.json()["login"]

    @staticmethod
    def _retry_after(response: httpx.Response) -> Optional[float]:
        retry_after = response.headers.get("retry-after")
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                return None
        reset = response.headers.get("x-ratelimit-reset")
        if reset:
            try:
                return max(0.0, float(reset) - datetime.now(timezone.utc).timestamp())
            except ValueError:
                return None
        return None

    def _get_headers(self) -> dict[str, str]:
        """Get headers for GitHub API requests."""
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        return headers


class GitHubActivitySource(ActivitySource):
    """Issues, pull requests and comments of one repository."""

    def __init__(self, github: GitHubClient) -> None:
        self.github = github

    async def fetch_activity(
        self, repo: str, since: datetime, until: datetime
    ) -> AsyncIterator[ActivityItem]:
        async with self.github.client() as client:
            comments = [
                comment
                async for comment in self._fetch_comments(client, repo, since, until)
            ]
            participants: dict[str, set[str]] = {}
            for comment in comments:
                participants.setdefault(comment.url.split("#")[0], set()).add(comment.author)

            async for page in self.github.paginate(
                client,
                f"/repos/{repo}/issues",
                {
                    "state": "all",
                    "since": _github_time(since),
                    "sort": "updated",
                    "direction": "desc",
                    "per_page": PER_PAGE,
                },
            ):
                for raw in page:
                    item = self._issue_item(repo, raw, participants)
                    if item.updated_at <= until:
                        yield item

            for comment in comments:
                yield comment

    async def _fetch_comments(
        self, client: httpx.AsyncClient, repo: str, since: datetime, until: datetime
    ) -> AsyncIterator[ActivityItem]:
        async for page in self.github.paginate(
            client,
            f"/repos/{repo}/issues/comments",
            {"since": _github_time(since), "per_page": PER_PAGE},
        ):
            for raw in page:
                item = self._comment_item(repo, raw)
                if item.updated_at <= until:
                    yield item

    @staticmethod
    def _issue_item(repo: str, raw: dict, participants: dict[str, set[str]]) -> ActivityItem:
        url = raw.get("html_url", "")
        return ActivityItem(
            id=f"{repo}#{raw['number']}",
            repo=repo,
            kind=ItemKind.PR if "pull_request" in raw else ItemKind.ISSUE,
            title=raw.get("title") or "",
            body=raw.get("body") or "",
            author=(raw.get("user") or {}).get("login", ""),
            created_at=parse_timestamp(raw["created_at"]),
            updated_at=parse_timestamp(raw["updated_at"]),
            url=url,
            labels=frozenset(label["name"] for label in raw.get("labels", []) if label.get("name")),
            participants=frozenset(participants.get(url, set())),
        )

    @staticmethod
    def _comment_item(repo: str, raw: dict) -> ActivityItem:
        issue_number = raw.get("issue_url", "").rstrip("/").rsplit("/", 1)[-1]
        return ActivityItem(
            id=f"{repo}#comment-{raw['id']}",
            repo=repo,
            kind=ItemKind.COMMENT,
            title=f"Comment on #{issue_number}",
            body=raw.get("body") or "",
            author=(raw.get("user") or {}).get("login", ""),
            created_at=parse_timestamp(raw["created_at"]),
            updated_at=parse_timestamp(raw["updated_at"]),
            url=raw.get("html_url", ""),
        )


class GitHubActivityDiscovery(ActivityDiscovery):
    """Find repositories where the user was recently involved."""

    def __init__(self, github: GitHubClient, username: Optional[str] = None) -> None:
        self.github = github
        self.username = username

    async def discover(self, since: datetime) -> list[CandidateActivity]:
        username = self.username or await self.github.current_user()
        date_filter = since.astimezone(timezone.utc).date().isoformat()
        queries = [
            f"involves:{username} updated:>={date_filter}",
            f"reviewed-by:{username} updated:>={date_filter}",
        ]

        seen_issues: set[str] = set()
        candidates: dict[str, CandidateActivity] = {}
        async with self.github.client() as client:
            for query in queries:
                async for page in self.github.paginate(
                    client,
                    "/search/issues",
                    {"q": query, "sort": "updated", "per_page": PER_PAGE},
                    max_pages=MAX_SEARCH_PAGES,
                ):
                    for raw in page.get("items", []):
                        if raw["html_url"] in seen_issues:
                            continue
                        seen_issues.add(raw["html_url"])
                        self._accumulate(candidates, raw)

        for candidate in candidates.values():
            # Commit counts need one request per repository; estimate from PRs
            candidate.metrics.commits = candidate.metrics.prs * 3

        logger.info("Discovered %d candidate repositories for %s", len(candidates), username)
        return sorted(candidates.values(), key=lambda c: c.repo)

    @staticmethod
    def _accumulate(candidates: dict[str, CandidateActivity], raw: dict) -> None:
        repo = raw["repository_url"].split("/repos/", 1)[-1]
        updated_at = parse_timestamp(raw["updated_at"])
        candidate = candidates.get(repo)
        if candidate is None:
            candidate = CandidateActivity(repo=repo, last_activity=updated_at, metrics=ActivityMetrics())
            candidates[repo] = candidate
        elif updated_at > candidate.last_activity:
            candidate.last_activity = updated_at

        if "pull_request" in raw:
            candidate.metrics.prs += 1
        else:
            candidate.metrics.issues += 1
        candidate.metrics.comments += int(raw.get("comments", 0))
