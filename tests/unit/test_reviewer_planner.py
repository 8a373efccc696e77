"""Tests for reviewporter/engine/reviewer_planner.py - reviewer selection."""

import math
import threading
from collections import Counter

import pytest

from reviewporter.engine.identity import IdentityMatcher
from reviewporter.engine.reviewer_planner import (
    AvailabilityChecker,
    ReviewerAssignmentPlanner,
    RoundRobinCursor,
)
from reviewporter.models.domain import (
    DirectoryPerson,
    MessagingPerson,
    Reviewer,
    ReviewerPoolConfig,
    Team,
    UserProfile,
    Vote,
)

# =============================================================================
# Fixtures
# =============================================================================


class VacationSet:
    """Availability stub backed by a set of absent people."""

    def __init__(self, *away: DirectoryPerson) -> None:
        self.away = set(away)

    def is_on_vacation(self, person: DirectoryPerson) -> bool:
        return person in self.away


@pytest.fixture
def planner() -> ReviewerAssignmentPlanner:
    return ReviewerAssignmentPlanner()


@pytest.fixture
def one_reviewer() -> ReviewerPoolConfig:
    return ReviewerPoolConfig(required_reviewers_count=1)


@pytest.fixture
def leads_team() -> Team:
    return Team(
        id="team-leads",
        name="Backend Leads",
        members=(DirectoryPerson("az-lena", "Lena Lopez"), DirectoryPerson("az-mo", "Mo Malik")),
    )


# =============================================================================
# Round-robin selection
# =============================================================================


class TestRoundRobin:
    """Tests for quota-driven round-robin picks."""

    def test_consecutive_pull_requests_rotate(
        self, planner, pr_factory, backend_team, umbrella_team, one_reviewer, alice, bob, zed
    ):
        """Should pick Alice then Bob, always adding the umbrella team."""
        first = planner.plan_reviewers(pr_factory(id=1), backend_team, one_reviewer, umbrella_team)
        second = planner.plan_reviewers(pr_factory(id=2), backend_team, one_reviewer, umbrella_team)

        assert set(first.reviewers) == {zed, alice}
        assert first.required == [alice]
        assert first.optional == [zed]
        assert set(second.reviewers) == {zed, bob}

    def test_vacation_skipped_without_losing_turn(
        self, planner, pr_factory, backend_team, umbrella_team, one_reviewer, alice, bob, carol
    ):
        """Should skip Carol while away and pick her first once she is back."""
        planner.plan_reviewers(pr_factory(id=1), backend_team, one_reviewer, umbrella_team)
        planner.plan_reviewers(pr_factory(id=2), backend_team, one_reviewer, umbrella_team)

        away = planner.plan_reviewers(pr_factory(id=3), backend_team, one_reviewer, umbrella_team, VacationSet(carol))
        back = planner.plan_reviewers(pr_factory(id=4), backend_team, one_reviewer, umbrella_team)

        assert away.required == [alice]
        assert back.required == [carol]
        assert planner.cursor.order("Backend") == [bob, alice, carol]

    def test_fairness(self, planner, pr_factory, umbrella_team, one_reviewer):
        """Should spread N picks evenly over the pool."""
        members = tuple(DirectoryPerson(f"az-{i}", f"Dev {i}") for i in range(4))
        team = Team(id="t", name="Devs", members=members)
        picks = []

        for n in range(1, 11):
            plan = planner.plan_reviewers(pr_factory(id=n), team, one_reviewer, umbrella_team)
            picks.extend(plan.required)
            counts = Counter(picks)
            assert max(counts.values()) <= math.ceil(n / len(members))

    def test_quota_of_two_picks_distinct_people(self, planner, pr_factory, backend_team, umbrella_team, alice, bob):
        plan = planner.plan_reviewers(pr_factory(), backend_team, ReviewerPoolConfig(2), umbrella_team)

        assert plan.required == [alice, bob]

    def test_zero_quota_adds_only_umbrella(self, planner, pr_factory, backend_team, umbrella_team, zed):
        plan = planner.plan_reviewers(pr_factory(), backend_team, ReviewerPoolConfig(0), umbrella_team)

        assert plan.required == []
        assert plan.optional == [zed]
        assert not plan.quota_unmet

    def test_alternates_between_pools(self, planner, pr_factory, backend_team, leads_team, umbrella_team, alice, bob):
        """Should take turns between the developer team and the reviewer team."""
        config = ReviewerPoolConfig(3, required_reviewers_team=leads_team)

        plan = planner.plan_reviewers(pr_factory(), backend_team, config, umbrella_team)

        assert plan.required == [alice, leads_team.members[0], bob]

    def test_reviewer_team_skips_developer_team_members(self, planner, pr_factory, backend_team, umbrella_team, bob):
        """Should not pick a developer team member from the reviewer team pool."""
        mixed = Team(id="team-mixed", name="Mixed", members=(bob, DirectoryPerson("az-lena", "Lena Lopez")))
        config = ReviewerPoolConfig(2, required_reviewers_team=mixed)

        plan = planner.plan_reviewers(pr_factory(), backend_team, config, umbrella_team)

        assert plan.required[1] == mixed.members[1]

    def test_exhausted_pool_falls_back_to_other(self, planner, pr_factory, umbrella_team, leads_team):
        solo = Team(id="t", name="Solo", members=(DirectoryPerson("az-solo", "Sol Solo"),))
        config = ReviewerPoolConfig(3, required_reviewers_team=leads_team)

        plan = planner.plan_reviewers(pr_factory(), solo, config, umbrella_team)

        assert plan.required == [solo.members[0], *leads_team.members]

    def test_no_developer_team_uses_reviewer_team(self, planner, pr_factory, umbrella_team, leads_team):
        config = ReviewerPoolConfig(1, required_reviewers_team=leads_team)

        plan = planner.plan_reviewers(pr_factory(), None, config, umbrella_team)

        assert plan.required == [leads_team.members[0]]


# =============================================================================
# Exclusions and bounds
# =============================================================================


class TestExclusions:
    """Tests for people who must never be added."""

    def test_existing_reviewers_never_returned(self, planner, pr_factory, backend_team, umbrella_team, alice, zed):
        pull_request = pr_factory(
            reviewers=(Reviewer(alice, Vote.NO_VOTE, is_required=True), Reviewer(zed, Vote.NO_VOTE))
        )

        plan = planner.plan_reviewers(pull_request, backend_team, ReviewerPoolConfig(3), umbrella_team)

        assert alice not in plan.reviewers
        assert zed not in plan.reviewers

    def test_author_never_returned(self, planner, pr_factory, backend_team, umbrella_team, alice, bob):
        plan = planner.plan_reviewers(pr_factory(author=alice), backend_team, ReviewerPoolConfig(1), umbrella_team)

        assert plan.required == [bob]

    def test_quota_reduced_by_existing_required_reviewers(
        self, planner, pr_factory, backend_team, umbrella_team, alice, bob
    ):
        pull_request = pr_factory(reviewers=(Reviewer(alice, Vote.APPROVED, is_required=True),))

        plan = planner.plan_reviewers(pull_request, backend_team, ReviewerPoolConfig(2), umbrella_team)

        assert plan.quota == 1
        assert plan.required == [bob]

    def test_size_bound(self, planner, pr_factory, backend_team, leads_team, umbrella_team):
        config = ReviewerPoolConfig(2, required_reviewers_team=leads_team)

        plan = planner.plan_reviewers(pr_factory(), backend_team, config, umbrella_team)

        assert len(set(plan.reviewers)) == len(plan.reviewers)
        assert len(plan.reviewers) <= config.required_reviewers_count + len(umbrella_team.members)

    def test_quota_unmet_returns_partial_plan(self, planner, pr_factory, backend_team, umbrella_team, carol):
        plan = planner.plan_reviewers(
            pr_factory(), backend_team, ReviewerPoolConfig(3), umbrella_team, VacationSet(carol)
        )

        assert len(plan.required) == 2
        assert plan.quota_unmet

    def test_umbrella_member_picked_as_required_not_repeated(self, planner, pr_factory, backend_team, alice, zed):
        umbrella = Team(id="u", name="Platform Team", members=(alice, zed))

        plan = planner.plan_reviewers(pr_factory(), backend_team, ReviewerPoolConfig(1), umbrella)

        assert plan.required == [alice]
        assert plan.optional == [zed]

    def test_umbrella_available_people_first(self, planner, pr_factory, backend_team, zed):
        yann = DirectoryPerson("az-yann", "Yann Young")
        umbrella = Team(id="u", name="Platform Team", members=(zed, yann))

        plan = planner.plan_reviewers(pr_factory(), backend_team, ReviewerPoolConfig(0), umbrella, VacationSet(zed))

        assert plan.optional == [yann, zed]

    def test_negative_quota_rejected(self):
        with pytest.raises(ValueError):
            ReviewerPoolConfig(-1)


# =============================================================================
# Availability
# =============================================================================


class TestAvailabilityChecker:
    """Tests for vacation lookups through Slack profiles."""

    def test_on_vacation(self, alice):
        slack_alice = MessagingPerson("U-ALICE", "Alice Adams")
        checker = AvailabilityChecker(
            IdentityMatcher([alice], [slack_alice]),
            {"U-ALICE": UserProfile("Alice Adams", on_vacation=True, status_text="Vacationing")},
        )

        assert checker.is_on_vacation(alice) is True

    def test_unknown_identity_counts_as_available(self, alice):
        checker = AvailabilityChecker(IdentityMatcher([alice], []), {})

        assert checker.is_on_vacation(alice) is False

    def test_ambiguous_identity_counts_as_available(self):
        mike = DirectoryPerson("az-mike", "Mike Tyson")
        matcher = IdentityMatcher(
            [mike], [MessagingPerson("U1", "Michael Tyson"), MessagingPerson("U2", "Mike Tyson Jr.")]
        )
        checker = AvailabilityChecker(
            matcher,
            {
                "U1": UserProfile("Michael Tyson", on_vacation=True),
                "U2": UserProfile("Mike Tyson Jr.", on_vacation=True),
            },
        )

        assert checker.is_on_vacation(mike) is False

    def test_missing_profile_counts_as_available(self, alice):
        checker = AvailabilityChecker(IdentityMatcher([alice], [MessagingPerson("U-ALICE", "Alice Adams")]), {})

        assert checker.is_on_vacation(alice) is False

    def test_unresolved_candidate_still_picked(self, planner, pr_factory, backend_team, umbrella_team, alice):
        """Should keep a reviewer whose Slack account cannot be found."""
        checker = AvailabilityChecker(IdentityMatcher(backend_team.members, []), {})

        plan = planner.plan_reviewers(pr_factory(), backend_team, ReviewerPoolConfig(1), umbrella_team, checker)

        assert plan.required == [alice]


# =============================================================================
# RoundRobinCursor
# =============================================================================


class TestRoundRobinCursor:
    """Tests for the shared rotation state."""

    def test_new_members_appended(self, alice, bob, carol):
        cursor = RoundRobinCursor()
        cursor.next("pool", [alice, bob], lambda p: True)

        cursor.next("pool", [alice, bob, carol], lambda p: False)

        assert cursor.order("pool") == [bob, alice, carol]

    def test_no_eligible_member(self, alice):
        cursor = RoundRobinCursor()

        assert cursor.next("pool", [alice], lambda p: False) is None
        assert cursor.order("pool") == [alice]

    def test_restore_undoes_picks(self, alice, bob):
        cursor = RoundRobinCursor()
        cursor.next("pool", [alice, bob], lambda p: True)
        saved = cursor.snapshot()

        cursor.next("pool", [alice, bob], lambda p: True)
        cursor.next("other", [alice], lambda p: True)
        cursor.restore(saved)

        assert cursor.order("pool") == [bob, alice]
        assert cursor.order("other") == []

    def test_concurrent_picks_are_balanced(self):
        """Should hand out each member equally often across threads."""
        members = [DirectoryPerson(f"az-{i}", f"Dev {i}") for i in range(5)]
        cursor = RoundRobinCursor()
        picks: list[DirectoryPerson] = []
        picks_lock = threading.Lock()

        def worker() -> None:
            for _ in range(20):
                person = cursor.next("pool", members, lambda p: True)
                with picks_lock:
                    picks.append(person)

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert Counter(picks) == {member: 20 for member in members}
