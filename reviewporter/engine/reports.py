"""Slack message text for review reminders.

Messages use Slack mrkdwn: links are ``<url|text>`` and the characters
``&``, ``<`` and ``>`` in free text are HTML-escaped. The template is
rendered in a Jinja2 sandbox with ``StrictUndefined`` so a missing field
fails loudly instead of producing a half-empty reminder.
"""

import html
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from itertools import groupby

from jinja2 import StrictUndefined
from jinja2.sandbox import SandboxedEnvironment

from reviewporter.models.domain import PullRequest

REPORT_TEMPLATE = """\
Hey!
Just a friendly reminder that there are
{%- if review_groups %} Pull Requests waiting for your review:

{% for repository, pull_requests in review_groups %}
*{{ repository | slack_escape }}*
{% for pr in pull_requests %}
- {{ pr | slack_link }}. Author: {{ pr.author.display_name | slack_escape }}.{{ pr.created_at | age(now) }}
{% endfor %}

{% endfor %}
{%- endif %}
{%- if author_groups %}{% if review_groups %}
And there are{% endif %} Pull Requests where reviewers are waiting for you:

{% for repository, pull_requests in author_groups %}
*{{ repository | slack_escape }}*
{% for pr in pull_requests %}
- {{ pr | slack_link }}.{{ pr.created_at | age(now) }}
Waiting: {{ pr.reviewers_waiting_for_author() | map(attribute="display_name") | map("slack_escape") | join(", ") }}
{% endfor %}

{% endfor %}
{%- endif %}
"""


def slack_escape(text: str) -> str:
    return html.escape(text, quote=False)


def slack_link(pull_request: PullRequest) -> str:
    title = pull_request.title or f"Pull Request {pull_request.id}"
    return f"<{pull_request.url}|{slack_escape(title)}>"


def format_age(created_at: datetime, now: datetime) -> str:
    """Render the time since ``created_at`` as `` 2d 3h 5m ago``.

    Anything older than a day gets a fire mark.
    """
    elapsed = max(now - created_at, timedelta(0))
    days = elapsed.days
    hours = elapsed.seconds // 3600
    minutes = (elapsed.seconds // 60) % 60

    parts = [f"{value}{label}" for value, label in ((days, "d"), (hours, "h"), (minutes, "m")) if value > 0]
    if not parts:
        return " just now"
    age = " " + " ".join(parts) + " ago"
    if days > 0:
        age += " 🔥"
    return age


def _by_repository(pull_requests: Sequence[PullRequest]) -> list[tuple[str, list[PullRequest]]]:
    ordered = sorted(pull_requests, key=lambda pr: (pr.repository, pr.id))
    return [(repository, list(group)) for repository, group in groupby(ordered, key=lambda pr: pr.repository)]


_environment = SandboxedEnvironment(
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=False,
    autoescape=False,
)
_environment.filters["slack_escape"] = slack_escape
_environment.filters["slack_link"] = slack_link
_environment.filters["age"] = format_age
_template = _environment.from_string(REPORT_TEMPLATE)


def render_review_report(
    pending: Sequence[PullRequest],
    waiting_on_author: Sequence[PullRequest] = (),
    now: datetime | None = None,
) -> str:
    """Build the direct message for one person.

    Raises:
        ValueError: If both lists are empty
    """
    if not pending and not waiting_on_author:
        raise ValueError("A review report needs at least one pull request")

    text = _template.render(
        review_groups=_by_repository(pending),
        author_groups=_by_repository(waiting_on_author),
        now=now or datetime.now(UTC),
    )
    return text.strip() + "\n"
