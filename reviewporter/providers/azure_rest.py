"""Azure DevOps provider implementation using direct REST API calls."""

import re
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from reviewporter.models.domain import (
    DirectoryPerson,
    PullRequest,
    PullRequestStatus,
    Reviewer,
    Team,
    Vote,
)
from reviewporter.providers.base import DirectoryClient
from reviewporter.utils.connection_pool import HTTPConnectionPool, get_pool
from reviewporter.utils.retry import async_retry

log = structlog.get_logger(__name__)

API_VERSION = "6.0"
TEAMS_API_VERSION = "6.0-preview.3"

_FRACTION = re.compile(r"\.(\d{6})\d+")


class AzureDevOpsProvider(DirectoryClient):
    """Azure DevOps implementation of :class:`DirectoryClient`."""

    def __init__(self, base_url: str, token: str, project: str):
        """Initialize Azure DevOps provider.

        Args:
            base_url: Organization URL (e.g., https://dev.azure.com/contoso)
            token: Personal access token
            project: Project name
        """
        self.base_url = base_url.rstrip("/") + "/"
        self.token = token.strip() if token else token
        self.project = project
        self._pool: HTTPConnectionPool | None = None

    async def connect(self) -> None:
        self._pool = await get_pool(
            service="azure",
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.token}",
                "Content-Type": "application/json",
            },
        )

    async def disconnect(self) -> None:
        """Clear pool reference (pool manager handles actual cleanup)."""
        self._pool = None

    async def __aenter__(self) -> "AzureDevOpsProvider":
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.disconnect()

    @property
    def _project_path(self) -> str:
        return quote(self.project, safe="")

    async def _get_list(self, path: str, params: dict[str, str] | None = None, api_version: str = API_VERSION) -> list:
        if self._pool is None:
            raise ConnectionError("Azure DevOps provider is not connected")
        query = {**(params or {}), "api-version": api_version}
        data = await self._pool.request_json("GET", path, params=query)
        return data.get("value", [])

    @async_retry(max_attempts=3, backoff_factor=2.0, exceptions=(httpx.TransportError,))
    async def list_teams(self) -> list[Team]:
        log.info("list_teams", project=self.project)
        teams = await self._get_list(f"_apis/projects/{self._project_path}/teams", api_version=TEAMS_API_VERSION)
        return [Team(id=team["id"], name=team["name"]) for team in teams]

    @async_retry(max_attempts=3, backoff_factor=2.0, exceptions=(httpx.TransportError,))
    async def list_team_members(self, team_name: str) -> list[DirectoryPerson]:
        log.info("list_team_members", team=team_name)
        members = await self._get_list(
            f"_apis/projects/{self._project_path}/teams/{quote(team_name, safe='')}/members"
        )
        return [
            self._parse_person(member["identity"])
            for member in members
            if not member["identity"].get("isContainer", False)
        ]

    @async_retry(max_attempts=3, backoff_factor=2.0, exceptions=(httpx.TransportError,))
    async def list_repositories(self) -> list[str]:
        log.info("list_repositories", project=self.project)
        repositories = await self._get_list(f"{self._project_path}/_apis/git/repositories")
        return sorted(repo["name"] for repo in repositories)

    @async_retry(max_attempts=3, backoff_factor=2.0, exceptions=(httpx.TransportError,))
    async def list_pull_requests(self, repository: str) -> list[PullRequest]:
        log.info("list_pull_requests", repository=repository)
        pull_requests = await self._get_list(
            f"{self._project_path}/_apis/git/repositories/{quote(repository, safe='')}/pullrequests",
            params={"searchCriteria.status": PullRequestStatus.ACTIVE.value},
        )
        return [self._parse_pull_request(data, repository) for data in pull_requests]

    @async_retry(max_attempts=3, backoff_factor=2.0, exceptions=(httpx.TransportError,))
    async def get_pull_request(self, repository: str, pull_request_id: str) -> PullRequest:
        log.info("get_pull_request", repository=repository, pull_request_id=pull_request_id)
        if self._pool is None:
            raise ConnectionError("Azure DevOps provider is not connected")

        data = await self._pool.request_json(
            "GET",
            f"{self._project_path}/_apis/git/repositories/{quote(repository, safe='')}/pullrequests/{pull_request_id}",
            params={"api-version": API_VERSION},
        )
        return self._parse_pull_request(data, repository)

    async def add_required_reviewers(
        self,
        pull_request: PullRequest,
        required: Iterable[DirectoryPerson],
        optional: Iterable[DirectoryPerson] = (),
    ) -> None:
        if self._pool is None:
            raise ConnectionError("Azure DevOps provider is not connected")

        body = [{"id": person.source_id, "isRequired": True} for person in required]
        body += [{"id": person.source_id, "isRequired": False} for person in optional]
        log.info(
            "add_reviewers",
            repository=pull_request.repository,
            pull_request_id=pull_request.id,
            reviewers=body,
        )

        await self._pool.request_json(
            "POST",
            f"{self._project_path}/_apis/git/repositories/{quote(pull_request.repository, safe='')}"
            f"/pullrequests/{pull_request.id}/reviewers",
            params={"api-version": API_VERSION},
            json=body,
        )

    def web_url(self, repository: str, pull_request_id: int) -> str:
        """Browser URL of a pull request (the API returns a REST URL)."""
        return f"{self.base_url}{self._project_path}/_git/{quote(repository, safe='')}/pullrequest/{pull_request_id}"

    @staticmethod
    def _parse_person(data: dict[str, Any]) -> DirectoryPerson:
        return DirectoryPerson(source_id=data["id"], display_name=data.get("displayName", ""))

    def _parse_pull_request(self, data: dict[str, Any], repository: str) -> PullRequest:
        repository = data.get("repository", {}).get("name", repository)
        try:
            status = PullRequestStatus(data.get("status", PullRequestStatus.NOT_SET.value))
        except ValueError:
            status = PullRequestStatus.NOT_SET

        reviewers = tuple(
            Reviewer(
                person=self._parse_person(reviewer),
                vote=_parse_vote(reviewer.get("vote", 0)),
                is_required=reviewer.get("isRequired", False),
                has_declined=reviewer.get("hasDeclined", False),
            )
            for reviewer in data.get("reviewers", [])
        )

        return PullRequest(
            id=data["pullRequestId"],
            repository=repository,
            title=data.get("title", ""),
            url=self.web_url(repository, data["pullRequestId"]),
            author=self._parse_person(data["createdBy"]),
            created_at=_parse_datetime(data["creationDate"]),
            status=status,
            reviewers=reviewers,
        )


def _parse_datetime(value: str) -> datetime:
    """Parse Azure timestamps, which carry up to 7 fractional digits."""
    parsed = datetime.fromisoformat(_FRACTION.sub(r".\1", value.replace("Z", "+00:00")))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _parse_vote(value: Any) -> Vote:
    try:
        return Vote(value)
    except ValueError:
        log.warning("unknown_vote", vote=value)
        return Vote.NO_VOTE
