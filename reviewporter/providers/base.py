"""
Abstract base classes for the two external systems.

The engine only talks to these interfaces, so it can be exercised in tests
without network access. All methods are async; implementations raise
:class:`reviewporter.exceptions.ExternalServiceError` on failures.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable

from reviewporter.models.domain import (
    DirectoryPerson,
    MessagingPerson,
    PullRequest,
    Team,
    UserProfile,
)


class DirectoryClient(ABC):
    """Read/write facade over the source-control service (Azure DevOps)."""

    @abstractmethod
    async def list_teams(self) -> list[Team]:
        """List the project's teams.

        Returned teams carry no members; use :meth:`find_team_by_name` for a
        populated team.
        """
        pass

    @abstractmethod
    async def list_team_members(self, team_name: str) -> list[DirectoryPerson]:
        """List the human members of a team (group identities are dropped)."""
        pass

    async def find_team_by_name(self, name: str) -> Team | None:
        """Return the team called ``name`` with its members, or None."""
        teams = await self.list_teams()
        for team in teams:
            if team.name == name:
                members = await self.list_team_members(team.name)
                return Team(id=team.id, name=team.name, members=tuple(members))
        return None

    @abstractmethod
    async def list_repositories(self) -> list[str]:
        """List repository names in the project."""
        pass

    @abstractmethod
    async def list_pull_requests(self, repository: str) -> list[PullRequest]:
        """List active pull requests of a repository."""
        pass

    @abstractmethod
    async def get_pull_request(self, repository: str, pull_request_id: str) -> PullRequest:
        """Get a single pull request with its reviewers."""
        pass

    @abstractmethod
    async def add_required_reviewers(
        self,
        pull_request: PullRequest,
        required: Iterable[DirectoryPerson],
        optional: Iterable[DirectoryPerson] = (),
    ) -> None:
        """Add reviewers to a pull request in one write.

        ``required`` people are added with the required flag set, ``optional``
        people without it.
        """
        pass


class MessagingClient(ABC):
    """Facade over the messaging service (Slack)."""

    @abstractmethod
    async def list_usergroup_members(self, usergroup_id: str | None = None) -> list[MessagingPerson]:
        """List the members of a usergroup (the configured one by default)."""
        pass

    @abstractmethod
    async def get_user_profile(self, person: MessagingPerson) -> UserProfile:
        """Read a user's live profile, including vacation status."""
        pass

    @abstractmethod
    async def send_direct_message(self, person: MessagingPerson, text: str) -> None:
        """Send ``text`` to ``person`` as a direct message."""
        pass
