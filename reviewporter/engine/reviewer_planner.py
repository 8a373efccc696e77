"""Reviewer selection for a single pull request.

Selection rules:

1. Candidates are the developer team (sub-pool a) and, when configured, a
   dedicated reviewer team (sub-pool b, minus anyone already in a). The
   pull request author and anyone already reviewing are never candidates.
2. Candidates on vacation are skipped. When a candidate's Slack identity
   cannot be resolved (not found or ambiguous) the candidate counts as
   available. This fail-open rule keeps a naming mismatch from silently
   shrinking the pool below the quota.
3. Picks alternate between a and b. Each pool keeps a rotation: a pick takes
   the first eligible person in the rotation and moves them to the back.
   Skipped people keep their place, so someone back from vacation is next
   in line.
4. Picks stop at the quota or when both pools run dry. A short plan is
   returned with ``quota_unmet`` set; it is never an error.
5. Umbrella team members not picked above are added as optional reviewers,
   available people first, without quota or availability filtering.

The rotation lives in memory for one process. Several pull requests
planned in one CLI invocation share it. A caller whose write fails puts
the rotation back with :meth:`RoundRobinCursor.restore`, so only people
actually added move to the back.
"""

import threading
from collections.abc import Callable, Mapping, Sequence
from typing import Protocol

import structlog

from reviewporter.engine.identity import IdentityMatcher
from reviewporter.models.domain import (
    DirectoryPerson,
    MatchOutcome,
    PullRequest,
    ReviewerPlan,
    ReviewerPoolConfig,
    SourceSystem,
    Team,
    UserProfile,
)

log = structlog.get_logger(__name__)


class Availability(Protocol):
    def is_on_vacation(self, person: DirectoryPerson) -> bool: ...


class EveryoneAvailable:
    """Availability used when no messaging data is at hand."""

    def is_on_vacation(self, person: DirectoryPerson) -> bool:
        return False


class AvailabilityChecker:
    """Vacation lookup for Azure DevOps people through their Slack profile.

    Args:
        matcher: Matcher loaded with the Slack usergroup members
        profiles: Live Slack profiles keyed by Slack user id
    """

    def __init__(self, matcher: IdentityMatcher, profiles: Mapping[str, UserProfile]) -> None:
        self._matcher = matcher
        self._profiles = profiles
        self._cache: dict[DirectoryPerson, bool] = {}

    def is_on_vacation(self, person: DirectoryPerson) -> bool:
        if person not in self._cache:
            self._cache[person] = self._lookup(person)
        return self._cache[person]

    def _lookup(self, person: DirectoryPerson) -> bool:
        result = self._matcher.match(person, SourceSystem.MESSAGING)
        if result.outcome is not MatchOutcome.MATCHED or result.person is None:
            # fail-open: unknown availability counts as available
            log.warning(
                "availability_unknown",
                name=person.display_name,
                outcome=result.outcome.value,
                candidates=[c.display_name for c in result.candidates],
            )
            return False

        profile = self._profiles.get(result.person.source_id)
        if profile is None:
            log.warning("availability_profile_missing", name=person.display_name)
            return False
        return profile.on_vacation


class RoundRobinCursor:
    """Per-pool rotation order, safe to share between threads.

    The first call for a pool seeds its rotation from the member order given.
    People who join later are appended to the end.
    """

    def __init__(self) -> None:
        self._rotations: dict[str, list[DirectoryPerson]] = {}
        self._lock = threading.Lock()

    def next(
        self,
        pool: str,
        members: Sequence[DirectoryPerson],
        is_eligible: Callable[[DirectoryPerson], bool],
    ) -> DirectoryPerson | None:
        """Take the next eligible member of ``pool`` and move them to the back."""
        member_set = set(members)
        with self._lock:
            rotation = self._rotations.setdefault(pool, [])
            known = set(rotation)
            rotation.extend(m for m in members if m not in known)

            for index, person in enumerate(rotation):
                if person in member_set and is_eligible(person):
                    rotation.append(rotation.pop(index))
                    return person
        return None

    def order(self, pool: str) -> list[DirectoryPerson]:
        """Current rotation of ``pool``, next candidate first."""
        with self._lock:
            return list(self._rotations.get(pool, []))

    def snapshot(self) -> dict[str, list[DirectoryPerson]]:
        """Copy of every rotation, for a later :meth:`restore`."""
        with self._lock:
            return {pool: list(rotation) for pool, rotation in self._rotations.items()}

    def restore(self, rotations: Mapping[str, Sequence[DirectoryPerson]]) -> None:
        """Put back rotations taken with :meth:`snapshot`."""
        with self._lock:
            self._rotations = {pool: list(rotation) for pool, rotation in rotations.items()}


class ReviewerAssignmentPlanner:
    """Compute the reviewers to add to a pull request.

    The planner never writes; the caller sends the plan to Azure DevOps.
    """

    def __init__(self, cursor: RoundRobinCursor | None = None) -> None:
        self.cursor = cursor or RoundRobinCursor()

    def plan_reviewers(
        self,
        pr: PullRequest,
        developer_team: Team | None,
        config: ReviewerPoolConfig,
        umbrella_team: Team,
        availability: Availability | None = None,
    ) -> ReviewerPlan:
        availability = availability or EveryoneAvailable()
        excluded = set(pr.reviewer_people) | {pr.author}
        quota = max(config.required_reviewers_count - len(pr.required_reviewers), 0)
        plan = ReviewerPlan(quota=quota)

        if quota:
            plan.required = self._pick_required(excluded, developer_team, config, availability, quota)
            if plan.quota_unmet:
                log.warning(
                    "quota_unmet",
                    repository=pr.repository,
                    pull_request_id=pr.id,
                    quota=quota,
                    selected=len(plan.required),
                )

        chosen = set(plan.required)
        umbrella = [m for m in dict.fromkeys(umbrella_team.members) if m not in excluded and m not in chosen]
        plan.optional = sorted(umbrella, key=availability.is_on_vacation)
        return plan

    def _pick_required(
        self,
        excluded: set[DirectoryPerson],
        developer_team: Team | None,
        config: ReviewerPoolConfig,
        availability: Availability,
        quota: int,
    ) -> list[DirectoryPerson]:
        pools: list[tuple[str, Sequence[DirectoryPerson], frozenset[DirectoryPerson]]] = []
        if developer_team is not None:
            pools.append((developer_team.name, developer_team.members, frozenset()))
        else:
            log.warning("developer_team_unknown")

        reviewers_team = config.required_reviewers_team
        if reviewers_team is not None and (developer_team is None or reviewers_team.name != developer_team.name):
            own_members = frozenset(developer_team.members) if developer_team else frozenset()
            pools.append((reviewers_team.name, reviewers_team.members, own_members))

        picked: list[DirectoryPerson] = []

        def eligible_in(skip: frozenset[DirectoryPerson]) -> Callable[[DirectoryPerson], bool]:
            def is_eligible(person: DirectoryPerson) -> bool:
                return (
                    person not in excluded
                    and person not in skip
                    and person not in picked
                    and not availability.is_on_vacation(person)
                )

            return is_eligible

        turn = 0
        while len(picked) < quota and pools:
            name, members, skip = pools[turn % len(pools)]
            person = self.cursor.next(name, members, eligible_in(skip))
            if person is None:
                pools.pop(turn % len(pools))
                continue
            picked.append(person)
            turn += 1

        log.info("required_reviewers_selected", reviewers=[p.display_name for p in picked], quota=quota)
        return picked

