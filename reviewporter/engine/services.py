"""One CLI run of each mode.

Both services fetch everything they need first, fanning out over
repositories and users, and only then run the synchronous engine. A fetch
failure aborts the run before any message is sent, so nobody receives a
report built from a partial pull request list.
"""

import asyncio
from collections.abc import Sequence
from itertools import chain

import httpx
import structlog

from reviewporter.config.settings import DeveloperTeamConfig, ReviewersConfig
from reviewporter.engine.dispatcher import NotificationDispatcher
from reviewporter.engine.identity import IdentityMatcher
from reviewporter.engine.review_status import ReviewStatusAggregator
from reviewporter.engine.reviewer_planner import AvailabilityChecker, ReviewerAssignmentPlanner
from reviewporter.exceptions import ConfigurationError, ExternalServiceError
from reviewporter.models.domain import (
    AssignmentResult,
    AssignmentStatus,
    DirectoryPerson,
    DispatchResult,
    MessagingPerson,
    PullRequestStatus,
    ReviewerPoolConfig,
    Team,
)
from reviewporter.providers.base import DirectoryClient, MessagingClient

log = structlog.get_logger(__name__)


class ReportService:
    """``send-reports``: remind team members of reviews waiting on them."""

    def __init__(
        self,
        directory: DirectoryClient,
        messaging: MessagingClient,
        team_name: str,
        repositories: Sequence[str] = (),
    ) -> None:
        self.directory = directory
        self.messaging = messaging
        self.team_name = team_name
        self.repositories = list(repositories)
        self.aggregator = ReviewStatusAggregator()

    async def _resolve_repositories(self, repositories: Sequence[str]) -> list[str]:
        if repositories:
            return list(repositories)
        if self.repositories:
            return self.repositories
        log.info("repositories_not_configured", fallback="all project repositories")
        return await self.directory.list_repositories()

    async def send_reports(self, repositories: Sequence[str] = ()) -> list[DispatchResult]:
        repositories = await self._resolve_repositories(repositories)
        log.info("send_reports_started", team=self.team_name, repositories=repositories)

        team, slack_people, pull_request_lists = await asyncio.gather(
            self.directory.find_team_by_name(self.team_name),
            self.messaging.list_usergroup_members(),
            asyncio.gather(*(self.directory.list_pull_requests(repository) for repository in repositories)),
        )
        if team is None:
            log.warning("team_not_found", team=self.team_name)
            return []

        pull_requests = list(chain.from_iterable(pull_request_lists))
        pending = self.aggregator.pending_reviews_by_person(team, pull_requests)
        waiting = self.aggregator.waiting_on_author_by_person(team, pull_requests)
        for member in team.members:
            if member not in pending and member not in waiting:
                log.info("no_pending_reviews", name=member.display_name)

        dispatcher = NotificationDispatcher(self.messaging, IdentityMatcher(team.members, slack_people))
        return await dispatcher.notify(pending, waiting)


class AddReviewersService:
    """``add-reviewers``: pick and add reviewers to pull requests.

    Pull requests are planned one after another so they share the
    round-robin rotation of the planner.
    """

    def __init__(
        self,
        directory: DirectoryClient,
        messaging: MessagingClient,
        team_name: str,
        reviewers: ReviewersConfig,
        planner: ReviewerAssignmentPlanner | None = None,
        dry_run: bool = False,
    ) -> None:
        self.directory = directory
        self.messaging = messaging
        self.team_name = team_name
        self.reviewers = reviewers
        self.planner = planner or ReviewerAssignmentPlanner()
        self.dry_run = dry_run
        self._teams: dict[str, Team] = {}

    async def _team(self, name: str) -> Team:
        if name not in self._teams:
            team = await self.directory.find_team_by_name(name)
            if team is None:
                raise ConfigurationError(f"Azure DevOps team not found: {name}")
            self._teams[name] = team
        return self._teams[name]

    def _developer_team(self, author: DirectoryPerson) -> tuple[Team | None, DeveloperTeamConfig | None]:
        for team_config in self.reviewers.teams:
            team = self._teams.get(team_config.name)
            if team is not None and author in team:
                log.info("author_team_found", team=team.name)
                return team, team_config
        log.warning("author_not_in_developer_teams", author=author.display_name)
        return None, None

    async def _load_availability(self, slack_people: Sequence[MessagingPerson]) -> AvailabilityChecker:
        directory_people = list(dict.fromkeys(chain.from_iterable(t.members for t in self._teams.values())))
        profiles = await asyncio.gather(*(self.messaging.get_user_profile(p) for p in slack_people))
        return AvailabilityChecker(
            IdentityMatcher(directory_people, slack_people),
            {person.source_id: profile for person, profile in zip(slack_people, profiles, strict=True)},
        )

    async def add_reviewers(self, repository: str, pull_request_ids: Sequence[str]) -> list[AssignmentResult]:
        team_names = dict.fromkeys(
            [self.team_name]
            + [t.name for t in self.reviewers.teams]
            + [t.required_reviewers_team for t in self.reviewers.teams if t.required_reviewers_team]
        )
        slack_people, *_ = await asyncio.gather(
            self.messaging.list_usergroup_members(),
            *(self._team(name) for name in team_names),
        )
        umbrella = self._teams[self.team_name]
        availability = await self._load_availability(slack_people)

        results = []
        for pull_request_id in pull_request_ids:
            result = await self._add_to_pull_request(repository, pull_request_id, umbrella, availability)
            results.append(result)
        return results

    async def _add_to_pull_request(
        self,
        repository: str,
        pull_request_id: str,
        umbrella: Team,
        availability: AvailabilityChecker,
    ) -> AssignmentResult:
        bound_log = log.bind(repository=repository, pull_request_id=pull_request_id)
        try:
            pull_request = await self.directory.get_pull_request(repository, pull_request_id)
        except (ExternalServiceError, httpx.HTTPError) as e:
            bound_log.error("pull_request_fetch_failed", error=str(e))
            return AssignmentResult(repository, pull_request_id, AssignmentStatus.FAILED, error=str(e))

        if pull_request.status is not PullRequestStatus.ACTIVE:
            bound_log.warning("pull_request_not_active", status=pull_request.status.value)
            return AssignmentResult(repository, pull_request_id, AssignmentStatus.SKIPPED_INACTIVE)

        developer_team, team_config = self._developer_team(pull_request.author)
        required_team = None
        if team_config is not None and team_config.required_reviewers_team:
            required_team = self._teams[team_config.required_reviewers_team]

        rotations = self.planner.cursor.snapshot()
        plan = self.planner.plan_reviewers(
            pull_request,
            developer_team,
            ReviewerPoolConfig(self.reviewers.required_reviewers_count, required_team),
            umbrella,
            availability,
        )
        if not plan:
            bound_log.info("no_reviewers_to_add")
            return AssignmentResult(repository, pull_request_id, AssignmentStatus.NOTHING_TO_ADD, plan=plan)

        required = [p.display_name for p in plan.required]
        optional = [p.display_name for p in plan.optional]
        if self.dry_run:
            bound_log.info("reviewers_planned", required=required, optional=optional)
            return AssignmentResult(repository, pull_request_id, AssignmentStatus.PLANNED, plan=plan)

        try:
            await self.directory.add_required_reviewers(pull_request, plan.required, plan.optional)
        except (ExternalServiceError, httpx.HTTPError) as e:
            self.planner.cursor.restore(rotations)
            bound_log.error("reviewers_add_failed", error=str(e))
            return AssignmentResult(repository, pull_request_id, AssignmentStatus.FAILED, error=str(e))

        bound_log.info("reviewers_added", required=required, optional=optional)
        return AssignmentResult(repository, pull_request_id, AssignmentStatus.ADDED, plan=plan)
