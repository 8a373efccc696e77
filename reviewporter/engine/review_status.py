"""Who has review work waiting.

Two views are computed from the same set of pull requests:

- pending reviews: a member is a required reviewer and has not voted;
- waiting on author: a member created the pull request and at least one
  reviewer voted "waiting for author".

Members without work are left out. Each member's list is sorted by
repository then pull request id, so the result does not depend on the order
in which repositories were fetched.
"""

from collections.abc import Iterable

from reviewporter.models.domain import DirectoryPerson, PullRequest, Team


def _sort_key(pull_request: PullRequest) -> tuple[str, int]:
    return (pull_request.repository, pull_request.id)


def _deduplicate(pull_requests: Iterable[PullRequest]) -> list[PullRequest]:
    unique: dict[tuple[str, int], PullRequest] = {}
    for pull_request in pull_requests:
        unique.setdefault(_sort_key(pull_request), pull_request)
    return [unique[key] for key in sorted(unique)]


class ReviewStatusAggregator:
    """Group pull requests by the team member who has to act on them."""

    def pending_reviews_by_person(
        self, team: Team, pull_requests: Iterable[PullRequest]
    ) -> dict[DirectoryPerson, list[PullRequest]]:
        """Pull requests awaiting each member's review.

        ``p`` is listed under ``u`` iff ``u`` is a required reviewer of ``p``
        and ``u``'s vote is ``NO_VOTE``.
        """
        ordered = _deduplicate(pull_requests)
        result: dict[DirectoryPerson, list[PullRequest]] = {}
        for member in team.members:
            pending = [pr for pr in ordered if pr.is_awaiting_review_from(member)]
            if pending:
                result[member] = pending
        return result

    def waiting_on_author_by_person(
        self, team: Team, pull_requests: Iterable[PullRequest]
    ) -> dict[DirectoryPerson, list[PullRequest]]:
        """Pull requests each member authored where a reviewer waits for them."""
        ordered = _deduplicate(pull_requests)
        result: dict[DirectoryPerson, list[PullRequest]] = {}
        for member in team.members:
            waiting = [pr for pr in ordered if pr.author == member and pr.reviewers_waiting_for_author()]
            if waiting:
                result[member] = waiting
        return result
