"""Custom exception hierarchy for reviewporter.

Exception Hierarchy:
    ReviewporterError (base)
    ├── ConfigurationError
    ├── ExternalServiceError
    └── IdentityError
        ├── IdentityNotFoundError
        └── IdentityAmbiguousError

Identity errors are never fatal for a run. The matcher reports them as
outcomes and callers decide whether to skip a notification or treat a
reviewer as available. The exception types exist for callers that prefer
``MatchResult.unwrap()`` over inspecting the outcome.

Example Usage:
    >>> from reviewporter.exceptions import ConfigurationError
    >>> try:
    ...     settings = ReviewporterSettings.from_file(path)
    ... except ConfigurationError as e:
    ...     click.echo(f"Error: {e.message}", err=True)
"""

from collections.abc import Sequence
from typing import Any


class ReviewporterError(Exception):
    """Base exception for all reviewporter errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(ReviewporterError):
    """Configuration-related errors.

    Examples:
        - Configuration file not found
        - Invalid TOML/YAML syntax
        - Missing required configuration fields
        - Unset environment variable referenced from the file
    """

    pass


class ExternalServiceError(ReviewporterError):
    """Azure DevOps or Slack communication errors.

    Raised for non-2xx HTTP responses and for Slack responses that carry
    ``"ok": false``. The core never retries these; the run (or the single
    pull request being processed) is aborted and the error is surfaced.

    Attributes:
        service: Name of the service that failed ("azure", "slack")
        status_code: HTTP status code, if any
        response_text: Raw response body or Slack error code, if any
    """

    def __init__(
        self,
        message: str,
        service: str | None = None,
        status_code: int | None = None,
        response_text: str | None = None,
    ) -> None:
        self.service = service
        self.status_code = status_code
        self.response_text = response_text

        full_message = message
        if service:
            full_message = f"[{service}] {full_message}"
        if status_code:
            full_message = f"{full_message} (HTTP {status_code})"

        super().__init__(full_message)
        self.message = message


class IdentityError(ReviewporterError):
    """A person could not be mapped to the other system.

    Attributes:
        person: The person being matched (DirectoryPerson or MessagingPerson)
    """

    def __init__(self, message: str, person: Any = None) -> None:
        self.person = person
        super().__init__(message)


class IdentityNotFoundError(IdentityError):
    """No candidate in the target system matches the person's name."""

    pass


class IdentityAmbiguousError(IdentityError):
    """Several candidates match equally well.

    Operators fix these by renaming one of the colliding accounts, so the
    candidates are kept for the warning.
    """

    def __init__(self, message: str, person: Any = None, candidates: Sequence[Any] = ()) -> None:
        self.candidates = tuple(candidates)
        if self.candidates:
            names = ", ".join(c.display_name for c in self.candidates)
            message = f"{message} (candidates: {names})"
        super().__init__(message, person=person)
