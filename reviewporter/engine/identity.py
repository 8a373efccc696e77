"""Cross-system identity matching by display name.

Azure DevOps and Slack share no user key, so people are paired by name:

1. Names are normalized: diacritics and punctuation are removed, hyphens
   and underscores become spaces, case is folded and whitespace collapsed.
2. An exact normalized match wins. Several exact matches are ambiguous.
3. Otherwise a partial match is tried: one name is a substring of the other,
   or both share the surname and the given names share a prefix of at
   least two letters ("Mike Tyson" / "Michael Tyson"). A unique partial
   match wins. Several partial matches are ambiguous and no candidate is
   picked.

Example:
    >>> matcher = IdentityMatcher(directory_people, slack_people)
    >>> result = matcher.match(DirectoryPerson("u-1", "José  Álvarez"), SourceSystem.MESSAGING)
    >>> result.outcome
    <MatchOutcome.MATCHED: 'matched'>
"""

import re
import unicodedata
from collections.abc import Iterable

import structlog

from reviewporter.models.domain import (
    DirectoryPerson,
    MatchOutcome,
    MatchResult,
    MessagingPerson,
    SourceSystem,
)

log = structlog.get_logger(__name__)

_SEPARATORS = re.compile(r"[-_]")
_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")

MIN_GIVEN_NAME_PREFIX = 2


def normalize_name(name: str) -> str:
    """Normalize a display name for comparison.

    >>> normalize_name("  Zoë  O'Brien-Smith ")
    'zoe obrien smith'
    """
    decomposed = unicodedata.normalize("NFKD", name)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    separated = _SEPARATORS.sub(" ", stripped.casefold())
    without_punctuation = _PUNCTUATION.sub("", separated)
    return _WHITESPACE.sub(" ", without_punctuation).strip()


def _is_partial_match(source: str, candidate: str) -> bool:
    if source in candidate or candidate in source:
        return True

    source_tokens = source.split()
    candidate_tokens = candidate.split()
    if len(source_tokens) < 2 or len(candidate_tokens) < 2:
        return False
    if source_tokens[-1] != candidate_tokens[-1]:
        return False

    given, other = source_tokens[0], candidate_tokens[0]
    prefix = 0
    for a, b in zip(given, other, strict=False):
        if a != b:
            break
        prefix += 1
    return prefix >= MIN_GIVEN_NAME_PREFIX


class IdentityMatcher:
    """Resolve a person from one system to the same person in the other.

    Candidates are read once per run from both systems. Matching itself is
    pure and has no side effects apart from logging.
    """

    def __init__(
        self,
        directory_people: Iterable[DirectoryPerson] = (),
        messaging_people: Iterable[MessagingPerson] = (),
    ) -> None:
        self._candidates: dict[SourceSystem, list[tuple[str, DirectoryPerson | MessagingPerson]]] = {
            SourceSystem.DIRECTORY: [(normalize_name(p.display_name), p) for p in directory_people],
            SourceSystem.MESSAGING: [(normalize_name(p.display_name), p) for p in messaging_people],
        }

    def match(self, person: DirectoryPerson | MessagingPerson, target_system: SourceSystem) -> MatchResult:
        """Find ``person``'s counterpart in ``target_system``.

        Raises:
            ValueError: If ``target_system`` is the person's own system
        """
        if target_system is person.system:
            raise ValueError(f"Cannot match a {person.system} person against its own system")

        source = normalize_name(person.display_name)
        candidates = self._candidates[target_system]
        if not source:
            return MatchResult(source=person, outcome=MatchOutcome.NOT_FOUND)

        exact = [candidate for name, candidate in candidates if name == source]
        if exact:
            return self._result(person, exact)

        partial = [candidate for name, candidate in candidates if name and _is_partial_match(source, name)]
        return self._result(person, partial)

    @staticmethod
    def _result(
        person: DirectoryPerson | MessagingPerson, found: list[DirectoryPerson | MessagingPerson]
    ) -> MatchResult:
        unique = list(dict.fromkeys(found))
        if len(unique) == 1:
            return MatchResult(source=person, outcome=MatchOutcome.MATCHED, person=unique[0])
        if not unique:
            log.debug("identity_not_found", name=person.display_name, system=str(person.system))
            return MatchResult(source=person, outcome=MatchOutcome.NOT_FOUND)

        log.warning(
            "identity_ambiguous",
            name=person.display_name,
            candidates=[c.display_name for c in unique],
        )
        return MatchResult(source=person, outcome=MatchOutcome.AMBIGUOUS, candidates=tuple(unique))
