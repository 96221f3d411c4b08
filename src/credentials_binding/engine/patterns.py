"""Aggregate secret pattern construction.

Turns the secret values bound for one step into a single compiled regex that
finds any of them. Values are escaped, deduplicated and ordered longest first,
so at any position the longest matching secret wins and a short secret that is
a substring of a longer one can never leave part of the longer one exposed.

Example:
    >>> pattern = get_aggregate_secret_pattern(["p@ss", "s3cr3t", "p@ssword"])
    >>> pattern.sub("****", "s3cr3t and p@ssword")
    '**** and ****'
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

from .secrets.cipher import Secret

# Pattern text of the "matches nothing" sentinel (an empty lookahead never succeeds)
NEVER_MATCH_SOURCE = "(?!)"
NEVER_MATCH = re.compile(NEVER_MATCH_SOURCE)


def get_aggregate_secret_pattern(values: Iterable[str]) -> re.Pattern[str]:
    """Build one pattern matching any of the given secret values.

    Empty values are dropped (an empty alternative matches everywhere). Values
    of equal length are ordered lexicographically so the pattern is
    deterministic for a given set of secrets.

    Args:
        values: Secret values (not variable names); may contain regex metacharacters

    Returns:
        Compiled pattern, or NEVER_MATCH when no non-empty value remains
    """
    unique = {value for value in values if value}
    if not unique:
        return NEVER_MATCH

    ordered = sorted(unique, key=lambda value: (-len(value), value))
    return re.compile("|".join(re.escape(value) for value in ordered))


def is_never_match(pattern: re.Pattern[str]) -> bool:
    """Check whether pattern is the "matches nothing" sentinel."""
    return pattern.pattern in ("", NEVER_MATCH_SOURCE)


class SecretPattern:
    """Compiled aggregate pattern that never persists its text in plain form.

    Pickling stores the pattern source as an encrypted ``Secret``; unpickling
    recompiles the regex from the decrypted text.
    """

    __slots__ = ("_pattern",)

    def __init__(self, pattern: re.Pattern[str]) -> None:
        self._pattern = pattern

    @property
    def pattern(self) -> re.Pattern[str]:
        return self._pattern

    def search(self, text: str) -> re.Match[str] | None:
        return self._pattern.search(text)

    def sub(self, replacement: str, text: str) -> str:
        return self._pattern.sub(replacement, text)

    def __repr__(self) -> str:
        return "SecretPattern(<redacted>)"

    def __reduce__(self) -> tuple[Any, tuple[Secret]]:
        return (_restore_secret_pattern, (Secret(self._pattern.pattern),))


def _restore_secret_pattern(source: Secret) -> SecretPattern:
    if not isinstance(source, Secret):
        raise TypeError("SecretPattern can only be restored from a wrapped Secret")
    return SecretPattern(re.compile(source.get_secret_value()))


__all__ = [
    "NEVER_MATCH",
    "SecretPattern",
    "get_aggregate_secret_pattern",
    "is_never_match",
]
