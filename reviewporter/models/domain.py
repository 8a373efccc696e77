"""
Domain models for reviewporter.

People come from two systems that share no primary key: Azure DevOps
(the directory) and Slack (messaging). They are modelled as two parallel
concrete types and only ever related through
:class:`reviewporter.engine.identity.IdentityMatcher`. Never compare a
``DirectoryPerson`` id with a ``MessagingPerson`` id.

Example:
    Building a pull request from provider data::

        pr = PullRequest(
            id=42,
            repository="backend",
            title="Fix login",
            url="https://dev.azure.com/org/project/_git/backend/pullrequest/42",
            author=DirectoryPerson("u-1", "Jane Doe"),
            created_at=datetime.now(UTC),
            status=PullRequestStatus.ACTIVE,
            reviewers=(Reviewer(DirectoryPerson("u-2", "John Roe"), Vote.NO_VOTE, is_required=True),),
        )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import ClassVar

from reviewporter.exceptions import IdentityAmbiguousError, IdentityNotFoundError


class SourceSystem(str, Enum):
    """The system a person record was read from."""

    DIRECTORY = "directory"
    MESSAGING = "messaging"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class DirectoryPerson:
    """A person as known to Azure DevOps."""

    source_id: str
    display_name: str = field(compare=False)

    system: ClassVar[SourceSystem] = SourceSystem.DIRECTORY


@dataclass(frozen=True)
class MessagingPerson:
    """A person as known to Slack."""

    source_id: str
    display_name: str = field(compare=False)

    system: ClassVar[SourceSystem] = SourceSystem.MESSAGING


Person = DirectoryPerson | MessagingPerson


@dataclass(frozen=True)
class Team:
    """Azure DevOps team with its members, fetched once per run."""

    id: str
    name: str
    members: tuple[DirectoryPerson, ...] = ()

    def __contains__(self, person: object) -> bool:
        return person in self.members


class Vote(IntEnum):
    """Reviewer vote, using the Azure DevOps wire values."""

    REJECTED = -10
    WAITING_FOR_AUTHOR = -5
    NO_VOTE = 0
    APPROVED_WITH_SUGGESTIONS = 5
    APPROVED = 10


class PullRequestStatus(str, Enum):
    """Pull request status as reported by Azure DevOps."""

    ACTIVE = "active"
    ABANDONED = "abandoned"
    COMPLETED = "completed"
    NOT_SET = "notSet"
    ALL = "all"


@dataclass(frozen=True)
class Reviewer:
    """A reviewer entry on a pull request."""

    person: DirectoryPerson
    vote: Vote = Vote.NO_VOTE
    is_required: bool = False
    has_declined: bool = False


@dataclass(frozen=True)
class PullRequest:
    """An Azure DevOps pull request with its reviewer vote state."""

    id: int
    repository: str
    title: str
    url: str
    author: DirectoryPerson
    created_at: datetime
    status: PullRequestStatus = PullRequestStatus.ACTIVE
    reviewers: tuple[Reviewer, ...] = ()

    @property
    def required_reviewers(self) -> tuple[DirectoryPerson, ...]:
        """Required reviewers in the order Azure lists them."""
        return tuple(r.person for r in self.reviewers if r.is_required)

    @property
    def review_votes(self) -> dict[DirectoryPerson, Vote]:
        return {r.person: r.vote for r in self.reviewers}

    @property
    def reviewer_people(self) -> frozenset[DirectoryPerson]:
        """Everyone already on the pull request, required or not."""
        return frozenset(r.person for r in self.reviewers)

    def is_awaiting_review_from(self, person: DirectoryPerson) -> bool:
        return person in self.required_reviewers and self.review_votes.get(person) is Vote.NO_VOTE

    def reviewers_waiting_for_author(self) -> list[DirectoryPerson]:
        return [r.person for r in self.reviewers if r.vote is Vote.WAITING_FOR_AUTHOR]


@dataclass(frozen=True)
class UserProfile:
    """Live Slack profile data used for availability checks."""

    display_name: str
    on_vacation: bool = False
    status_text: str = ""


@dataclass(frozen=True)
class ReviewerPoolConfig:
    """Quota and optional dedicated reviewer team for one developer team.

    Without ``required_reviewers_team`` the developer team is the sole pool.
    """

    required_reviewers_count: int = 0
    required_reviewers_team: Team | None = None

    def __post_init__(self) -> None:
        if self.required_reviewers_count < 0:
            raise ValueError("required_reviewers_count must be >= 0")


class MatchOutcome(str, Enum):
    """Result kind of a cross-system identity lookup."""

    MATCHED = "matched"
    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class MatchResult:
    """Outcome of :meth:`IdentityMatcher.match`.

    ``person`` is set only for ``MATCHED``. ``candidates`` lists every
    colliding name for ``AMBIGUOUS``.
    """

    source: DirectoryPerson | MessagingPerson
    outcome: MatchOutcome
    person: DirectoryPerson | MessagingPerson | None = None
    candidates: tuple[DirectoryPerson | MessagingPerson, ...] = ()

    @property
    def matched(self) -> bool:
        return self.outcome is MatchOutcome.MATCHED

    def unwrap(self) -> DirectoryPerson | MessagingPerson:
        """Return the matched person or raise the matching identity error."""
        if self.outcome is MatchOutcome.AMBIGUOUS:
            raise IdentityAmbiguousError(
                f"Ambiguous match for {self.source.display_name!r}",
                person=self.source,
                candidates=self.candidates,
            )
        if self.person is None:
            raise IdentityNotFoundError(f"No match for {self.source.display_name!r}", person=self.source)
        return self.person


@dataclass
class ReviewerPlan:
    """People to add to one pull request.

    ``required`` holds the round-robin picks in pick order; ``optional``
    holds umbrella team members.
    """

    required: list[DirectoryPerson] = field(default_factory=list)
    optional: list[DirectoryPerson] = field(default_factory=list)
    quota: int = 0

    @property
    def quota_unmet(self) -> bool:
        return len(self.required) < self.quota

    @property
    def reviewers(self) -> list[DirectoryPerson]:
        return [*self.optional, *self.required]

    def __bool__(self) -> bool:
        return bool(self.required or self.optional)


class DispatchStatus(str, Enum):
    SENT = "sent"
    SKIPPED_NOT_FOUND = "skipped_not_found"
    SKIPPED_AMBIGUOUS = "skipped_ambiguous"
    SKIPPED_ON_VACATION = "skipped_on_vacation"
    FAILED = "failed"


@dataclass(frozen=True)
class DispatchResult:
    """Per-person outcome of a report run."""

    person: DirectoryPerson
    status: DispatchStatus
    recipient: MessagingPerson | None = None
    error: str | None = None


class AssignmentStatus(str, Enum):
    ADDED = "added"
    PLANNED = "planned"
    SKIPPED_INACTIVE = "skipped_inactive"
    NOTHING_TO_ADD = "nothing_to_add"
    FAILED = "failed"


@dataclass
class AssignmentResult:
    """Per-pull-request outcome of an add-reviewers run."""

    repository: str
    pull_request_id: str
    status: AssignmentStatus
    plan: ReviewerPlan | None = None
    error: str | None = None
