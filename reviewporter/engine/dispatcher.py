"""Send review reports to people over Slack.

Each person is handled on their own. An unresolved identity or a failed
send becomes that person's result and does not stop the others.
"""

import asyncio
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import cast

import httpx
import structlog

from reviewporter.engine.identity import IdentityMatcher
from reviewporter.engine.reports import render_review_report
from reviewporter.exceptions import ExternalServiceError
from reviewporter.models.domain import (
    DirectoryPerson,
    DispatchResult,
    DispatchStatus,
    MatchOutcome,
    MessagingPerson,
    PullRequest,
    SourceSystem,
)
from reviewporter.providers.base import MessagingClient

log = structlog.get_logger(__name__)


class NotificationDispatcher:
    """Turn per-person pull request lists into direct messages.

    Args:
        messaging: Slack client used for profiles and messages
        matcher: Matcher loaded with the Slack usergroup members
        skip_on_vacation: Do not message people whose profile says they are away
    """

    def __init__(
        self,
        messaging: MessagingClient,
        matcher: IdentityMatcher,
        skip_on_vacation: bool = True,
    ) -> None:
        self.messaging = messaging
        self.matcher = matcher
        self.skip_on_vacation = skip_on_vacation

    async def notify(
        self,
        pending_by_person: Mapping[DirectoryPerson, Sequence[PullRequest]],
        waiting_on_author: Mapping[DirectoryPerson, Sequence[PullRequest]] | None = None,
        now: datetime | None = None,
    ) -> list[DispatchResult]:
        """Send one report per person; results are ordered by display name."""
        waiting_on_author = waiting_on_author or {}
        now = now or datetime.now(UTC)
        people = sorted(
            {*pending_by_person, *waiting_on_author},
            key=lambda p: (p.display_name.casefold(), p.source_id),
        )

        results = await asyncio.gather(
            *(
                self._notify_one(
                    person,
                    pending_by_person.get(person, ()),
                    waiting_on_author.get(person, ()),
                    now,
                )
                for person in people
                if pending_by_person.get(person) or waiting_on_author.get(person)
            )
        )

        sent = sum(1 for r in results if r.status is DispatchStatus.SENT)
        log.info("reports_dispatched", sent=sent, total=len(results))
        return list(results)

    async def _notify_one(
        self,
        person: DirectoryPerson,
        pending: Sequence[PullRequest],
        waiting: Sequence[PullRequest],
        now: datetime,
    ) -> DispatchResult:
        match = self.matcher.match(person, SourceSystem.MESSAGING)
        if match.outcome is MatchOutcome.NOT_FOUND:
            log.warning("recipient_not_found", name=person.display_name)
            return DispatchResult(person=person, status=DispatchStatus.SKIPPED_NOT_FOUND)
        if match.outcome is MatchOutcome.AMBIGUOUS:
            log.warning(
                "recipient_ambiguous",
                name=person.display_name,
                candidates=[c.display_name for c in match.candidates],
            )
            return DispatchResult(person=person, status=DispatchStatus.SKIPPED_AMBIGUOUS)

        recipient = cast(MessagingPerson, match.unwrap())

        try:
            if self.skip_on_vacation:
                profile = await self.messaging.get_user_profile(recipient)
                if profile.on_vacation:
                    log.info("recipient_on_vacation", name=person.display_name)
                    return DispatchResult(
                        person=person, status=DispatchStatus.SKIPPED_ON_VACATION, recipient=recipient
                    )

            text = render_review_report(pending, waiting, now=now)
            await self.messaging.send_direct_message(recipient, text)
        except (ExternalServiceError, httpx.HTTPError) as e:
            log.error("report_send_failed", name=person.display_name, error=str(e))
            return DispatchResult(person=person, status=DispatchStatus.FAILED, recipient=recipient, error=str(e))

        return DispatchResult(person=person, status=DispatchStatus.SENT, recipient=recipient)
