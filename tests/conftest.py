"""Pytest configuration and shared fixtures."""

from datetime import UTC, datetime

import pytest
import structlog

from reviewporter.models.domain import (
    DirectoryPerson,
    MessagingPerson,
    PullRequest,
    PullRequestStatus,
    Reviewer,
    Team,
    Vote,
)

NOW = datetime(2024, 6, 20, 12, 0, tzinfo=UTC)


def make_pull_request(
    id: int = 1,
    repository: str = "backend",
    author: DirectoryPerson | None = None,
    reviewers: tuple[Reviewer, ...] = (),
    title: str = "Fix login",
    status: PullRequestStatus = PullRequestStatus.ACTIVE,
    created_at: datetime | None = None,
) -> PullRequest:
    """Build a pull request with sensible defaults."""
    return PullRequest(
        id=id,
        repository=repository,
        title=title,
        url=f"https://dev.azure.com/contoso/Platform/_git/{repository}/pullrequest/{id}",
        author=author or DirectoryPerson("az-author", "Outside Author"),
        created_at=created_at or datetime(2024, 6, 18, 9, 30, tzinfo=UTC),
        status=status,
        reviewers=reviewers,
    )


@pytest.fixture
def alice() -> DirectoryPerson:
    return DirectoryPerson("az-alice", "Alice Adams")


@pytest.fixture
def bob() -> DirectoryPerson:
    return DirectoryPerson("az-bob", "Bob Brown")


@pytest.fixture
def carol() -> DirectoryPerson:
    return DirectoryPerson("az-carol", "Carol Clark")


@pytest.fixture
def zed() -> DirectoryPerson:
    return DirectoryPerson("az-zed", "Zed Zimmer")


@pytest.fixture
def backend_team(alice: DirectoryPerson, bob: DirectoryPerson, carol: DirectoryPerson) -> Team:
    """Developer team "Backend" with Alice, Bob and Carol."""
    return Team(id="team-backend", name="Backend", members=(alice, bob, carol))


@pytest.fixture
def umbrella_team(zed: DirectoryPerson) -> Team:
    return Team(id="team-platform", name="Platform Team", members=(zed,))


@pytest.fixture
def slack_people() -> list[MessagingPerson]:
    """Slack usergroup members matching the directory fixtures."""
    return [
        MessagingPerson("U-ALICE", "alice adams"),
        MessagingPerson("U-BOB", "Bob  Brown"),
        MessagingPerson("U-CAROL", "Carol Clark"),
        MessagingPerson("U-ZED", "Zed Zimmer"),
    ]


@pytest.fixture
def sample_pull_request(alice: DirectoryPerson, bob: DirectoryPerson) -> PullRequest:
    """PR where Alice still has to review and Bob already approved."""
    return make_pull_request(
        id=42,
        reviewers=(
            Reviewer(alice, Vote.NO_VOTE, is_required=True),
            Reviewer(bob, Vote.APPROVED, is_required=True),
        ),
    )


@pytest.fixture
def pr_factory():
    """Factory for pull requests, see :func:`make_pull_request`."""
    return make_pull_request


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo configure_logging so no test keeps writing to a closed capture stream."""
    yield
    structlog.reset_defaults()
