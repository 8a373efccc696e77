"""Slack provider implementation using the Slack Web API."""

import asyncio
from collections.abc import Iterable
from typing import Any

import httpx
import structlog

from reviewporter.exceptions import ExternalServiceError
from reviewporter.models.domain import MessagingPerson, UserProfile
from reviewporter.providers.base import MessagingClient
from reviewporter.utils.connection_pool import HTTPConnectionPool, get_pool
from reviewporter.utils.retry import async_retry

log = structlog.get_logger(__name__)

SLACK_API_URL = "https://slack.com/api/"


class SlackProvider(MessagingClient):
    """Slack implementation of :class:`MessagingClient`.

    Profiles read while listing the usergroup are kept for the lifetime of
    the provider instance, which is one CLI run.
    """

    def __init__(
        self,
        token: str,
        team_id: str,
        usergroup_id: str,
        vacation_statuses: Iterable[str] = ("Vacationing",),
        base_url: str = SLACK_API_URL,
    ):
        """Initialize Slack provider.

        Args:
            token: Bot token
            team_id: Workspace id, sent with every read request
            usergroup_id: Default usergroup for :meth:`list_usergroup_members`
            vacation_statuses: Status texts meaning "on vacation"
            base_url: Web API root
        """
        self.token = token.strip() if token else token
        self.team_id = team_id
        self.usergroup_id = usergroup_id
        self.vacation_statuses = frozenset(s.casefold() for s in vacation_statuses)
        self.base_url = base_url
        self._pool: HTTPConnectionPool | None = None
        self._profiles: dict[str, UserProfile] = {}

    async def connect(self) -> None:
        self._pool = await get_pool(
            service="slack",
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.token}",
                "Content-Type": "application/json; charset=utf-8",
            },
        )

    async def disconnect(self) -> None:
        """Clear pool reference (pool manager handles actual cleanup)."""
        self._pool = None

    async def __aenter__(self) -> "SlackProvider":
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.disconnect()

    async def _call(self, method: str, http_method: str = "GET", **kwargs: Any) -> dict[str, Any]:
        """Call a Web API method and check Slack's ``ok`` flag."""
        if self._pool is None:
            raise ConnectionError("Slack provider is not connected")

        data = await self._pool.request_json(http_method, method, **kwargs)
        if not data.get("ok", False):
            error = data.get("error", "unknown_error")
            raise ExternalServiceError(f"{method} failed: {error}", service="slack", response_text=error)
        return data

    @async_retry(max_attempts=3, backoff_factor=2.0, exceptions=(httpx.TransportError,))
    async def _list_usergroup_user_ids(self, usergroup_id: str) -> list[str]:
        data = await self._call(
            "usergroups.users.list",
            params={"usergroup": usergroup_id, "team_id": self.team_id},
        )
        return list(data.get("users", []))

    @async_retry(max_attempts=3, backoff_factor=2.0, exceptions=(httpx.TransportError,))
    async def _fetch_profile(self, user_id: str) -> UserProfile:
        data = await self._call("users.profile.get", params={"user": user_id, "team_id": self.team_id})
        profile = self._parse_profile(data.get("profile", {}))
        self._profiles[user_id] = profile
        return profile

    async def list_usergroup_members(self, usergroup_id: str | None = None) -> list[MessagingPerson]:
        usergroup_id = usergroup_id or self.usergroup_id
        log.info("list_usergroup_members", usergroup_id=usergroup_id)

        user_ids = await self._list_usergroup_user_ids(usergroup_id)
        profiles = await asyncio.gather(*(self._fetch_profile(user_id) for user_id in user_ids))
        return [
            MessagingPerson(source_id=user_id, display_name=profile.display_name)
            for user_id, profile in zip(user_ids, profiles, strict=True)
        ]

    async def get_user_profile(self, person: MessagingPerson) -> UserProfile:
        if person.source_id in self._profiles:
            return self._profiles[person.source_id]
        return await self._fetch_profile(person.source_id)

    async def send_direct_message(self, person: MessagingPerson, text: str) -> None:
        log.info("send_direct_message", user_id=person.source_id, name=person.display_name)
        await self._call("chat.postMessage", http_method="POST", json={"channel": person.source_id, "text": text})
        log.info("direct_message_sent", user_id=person.source_id)

    def _parse_profile(self, data: dict[str, Any]) -> UserProfile:
        status_text = data.get("status_text", "") or ""
        return UserProfile(
            display_name=data.get("real_name") or data.get("display_name") or "",
            on_vacation=status_text.strip().casefold() in self.vacation_statuses,
            status_text=status_text,
        )
