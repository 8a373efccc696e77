"""Tests for reviewporter/providers/azure_rest.py - Azure DevOps REST provider."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from reviewporter.exceptions import ExternalServiceError
from reviewporter.models.domain import DirectoryPerson, PullRequestStatus, Vote
from reviewporter.providers.azure_rest import AzureDevOpsProvider, _parse_datetime, _parse_vote
from reviewporter.utils.connection_pool import HTTPConnectionPool

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def provider() -> AzureDevOpsProvider:
    return AzureDevOpsProvider(base_url="https://dev.azure.com/contoso", token="pat-123", project="Platform")


@pytest.fixture
def mock_pool() -> AsyncMock:
    return AsyncMock(spec=HTTPConnectionPool)


@pytest.fixture
def connected(provider, mock_pool) -> AzureDevOpsProvider:
    provider._pool = mock_pool
    return provider


@pytest.fixture
def pull_request_data() -> dict:
    """Pull request as returned by the Git pull requests API."""
    return {
        "pullRequestId": 42,
        "status": "active",
        "title": "Fix login",
        "creationDate": "2024-06-18T09:30:12.1234567Z",
        "repository": {"name": "backend"},
        "createdBy": {"id": "az-author", "displayName": "Outside Author"},
        "reviewers": [
            {"id": "az-alice", "displayName": "Alice Adams", "vote": 0, "isRequired": True},
            {"id": "az-bob", "displayName": "Bob Brown", "vote": -5},
        ],
    }


# =============================================================================
# Connection
# =============================================================================


class TestConnection:
    """Tests for pool wiring."""

    def test_base_url_normalized(self, provider):
        assert provider.base_url == "https://dev.azure.com/contoso/"

    @pytest.mark.asyncio
    async def test_connect_uses_bearer_token(self, provider, mock_pool):
        with patch("reviewporter.providers.azure_rest.get_pool", AsyncMock(return_value=mock_pool)) as get_pool:
            async with provider:
                assert provider._pool is mock_pool

        headers = get_pool.await_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer pat-123"
        assert get_pool.await_args.kwargs["service"] == "azure"
        assert provider._pool is None

    @pytest.mark.asyncio
    async def test_not_connected(self, provider):
        with pytest.raises(ConnectionError):
            await provider.list_repositories()


# =============================================================================
# Reads
# =============================================================================


class TestReads:
    """Tests for the read operations."""

    @pytest.mark.asyncio
    async def test_list_teams(self, connected, mock_pool):
        mock_pool.request_json.return_value = {"value": [{"id": "t1", "name": "Backend"}]}

        teams = await connected.list_teams()

        assert [(t.id, t.name, t.members) for t in teams] == [("t1", "Backend", ())]
        method, path = mock_pool.request_json.await_args.args
        assert (method, path) == ("GET", "_apis/projects/Platform/teams")
        assert mock_pool.request_json.await_args.kwargs["params"]["api-version"] == "6.0-preview.3"

    @pytest.mark.asyncio
    async def test_list_team_members_drops_groups(self, connected, mock_pool):
        mock_pool.request_json.return_value = {
            "value": [
                {"identity": {"id": "az-alice", "displayName": "Alice Adams"}},
                {"identity": {"id": "grp", "displayName": "[Platform]\\Readers", "isContainer": True}},
            ]
        }

        members = await connected.list_team_members("Backend Leads")

        assert members == [DirectoryPerson("az-alice", "Alice Adams")]
        assert mock_pool.request_json.await_args.args[1] == "_apis/projects/Platform/teams/Backend%20Leads/members"

    @pytest.mark.asyncio
    async def test_find_team_by_name(self, connected, mock_pool):
        mock_pool.request_json.side_effect = [
            {"value": [{"id": "t1", "name": "Frontend"}, {"id": "t2", "name": "Backend"}]},
            {"value": [{"identity": {"id": "az-bob", "displayName": "Bob Brown"}}]},
        ]

        team = await connected.find_team_by_name("Backend")

        assert team.id == "t2"
        assert team.members == (DirectoryPerson("az-bob", "Bob Brown"),)

    @pytest.mark.asyncio
    async def test_find_team_by_name_missing(self, connected, mock_pool):
        mock_pool.request_json.return_value = {"value": []}

        assert await connected.find_team_by_name("Backend") is None

    @pytest.mark.asyncio
    async def test_list_repositories_sorted(self, connected, mock_pool):
        mock_pool.request_json.return_value = {"value": [{"name": "web"}, {"name": "api"}]}

        assert await connected.list_repositories() == ["api", "web"]

    @pytest.mark.asyncio
    async def test_list_pull_requests(self, connected, mock_pool, pull_request_data):
        mock_pool.request_json.return_value = {"value": [pull_request_data]}

        pull_requests = await connected.list_pull_requests("backend")

        pr = pull_requests[0]
        assert pr.id == 42
        assert pr.repository == "backend"
        assert pr.url == "https://dev.azure.com/contoso/Platform/_git/backend/pullrequest/42"
        assert pr.author == DirectoryPerson("az-author", "Outside Author")
        assert pr.created_at == datetime(2024, 6, 18, 9, 30, 12, 123456, tzinfo=UTC)
        assert pr.required_reviewers == (DirectoryPerson("az-alice", "Alice Adams"),)
        assert pr.reviewers[1].vote is Vote.WAITING_FOR_AUTHOR

        params = mock_pool.request_json.await_args.kwargs["params"]
        assert params["searchCriteria.status"] == "active"

    @pytest.mark.asyncio
    async def test_get_pull_request_unknown_status(self, connected, mock_pool, pull_request_data):
        mock_pool.request_json.return_value = {**pull_request_data, "status": "somethingNew"}

        pr = await connected.get_pull_request("backend", "42")

        assert pr.status is PullRequestStatus.NOT_SET
        assert mock_pool.request_json.await_args.args[1].endswith("/repositories/backend/pullrequests/42")

    @pytest.mark.asyncio
    async def test_get_pull_request_unknown_vote(self, connected, mock_pool, pull_request_data):
        """Should read a vote value it does not know as no vote."""
        reviewers = [{**pull_request_data["reviewers"][0], "vote": 7}]
        mock_pool.request_json.return_value = {**pull_request_data, "reviewers": reviewers}

        pr = await connected.get_pull_request("backend", "42")

        assert pr.reviewers[0].vote is Vote.NO_VOTE

    @pytest.mark.asyncio
    async def test_transport_errors_retried(self, connected, mock_pool):
        mock_pool.request_json.side_effect = [httpx.ConnectError("reset"), {"value": [{"name": "api"}]}]

        with patch("reviewporter.utils.retry.asyncio.sleep", AsyncMock()):
            assert await connected.list_repositories() == ["api"]

        assert mock_pool.request_json.await_count == 2

    @pytest.mark.asyncio
    async def test_http_errors_not_retried(self, connected, mock_pool):
        mock_pool.request_json.side_effect = ExternalServiceError("GET failed", service="azure", status_code=401)

        with pytest.raises(ExternalServiceError):
            await connected.list_repositories()

        assert mock_pool.request_json.await_count == 1


# =============================================================================
# Writes
# =============================================================================


class TestAddRequiredReviewers:
    """Tests for the reviewer write."""

    @pytest.mark.asyncio
    async def test_posts_required_and_optional(self, connected, mock_pool, pr_factory, alice, zed):
        mock_pool.request_json.return_value = {"value": []}
        pull_request = pr_factory(id=42)

        await connected.add_required_reviewers(pull_request, [alice], [zed])

        args, kwargs = mock_pool.request_json.await_args
        assert args == ("POST", "Platform/_apis/git/repositories/backend/pullrequests/42/reviewers")
        assert kwargs["json"] == [
            {"id": "az-alice", "isRequired": True},
            {"id": "az-zed", "isRequired": False},
        ]

    @pytest.mark.asyncio
    async def test_write_not_retried(self, connected, mock_pool, pr_factory, alice):
        mock_pool.request_json.side_effect = httpx.ConnectError("reset")

        with pytest.raises(httpx.ConnectError):
            await connected.add_required_reviewers(pr_factory(), [alice])

        assert mock_pool.request_json.await_count == 1


class TestParseDatetime:
    def test_seven_fraction_digits(self):
        assert _parse_datetime("2024-01-02T03:04:05.1234567Z") == datetime(2024, 1, 2, 3, 4, 5, 123456, tzinfo=UTC)

    def test_no_fraction(self):
        assert _parse_datetime("2024-01-02T03:04:05Z") == datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)


class TestParseVote:
    @pytest.mark.parametrize("value,expected", [(10, Vote.APPROVED), (-5, Vote.WAITING_FOR_AUTHOR), (3, Vote.NO_VOTE)])
    def test_parse(self, value, expected):
        assert _parse_vote(value) is expected
