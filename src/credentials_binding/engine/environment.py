"""Environment expansion chain.

An EnvironmentExpander applies overrides to an environment view. Expanders are
pure functions over the view they are given: they never keep a reference to it
and never observe each other. A step context carries one expander (possibly a
merged chain); the binding step appends its own overlay to that chain.

Example:
    >>> chain = merge_expanders(ConstantEnvironment({"PATH": "/bin"}), overlay)
    >>> env = chain.build(base=os.environ)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, MutableMapping

from .secrets.cipher import Secret


class EnvironmentExpander(ABC):
    """Applies environment overrides to a mutable environment view."""

    @abstractmethod
    def expand(self, env: MutableMapping[str, str]) -> None:
        """Apply this expander's overrides to env in place."""
        pass

    def build(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        """Return a new environment: a copy of base with this expander applied.

        The base mapping itself is never modified.
        """
        env = dict(base) if base is not None else {}
        self.expand(env)
        return env


class ConstantEnvironment(EnvironmentExpander):
    """Expander setting a fixed set of plain (non-secret) variables."""

    def __init__(self, values: Mapping[str, str]) -> None:
        self._values = dict(values)

    def expand(self, env: MutableMapping[str, str]) -> None:
        env.update(self._values)


class EnvironmentOverlay(EnvironmentExpander):
    """Ordered secret overrides contributed by bound credentials.

    Values are held as wrapped ``Secret``s and only unwrapped while expanding,
    so a pickled overlay carries encrypted values only.
    """

    def __init__(self, overrides: Mapping[str, str]) -> None:
        self._overrides: dict[str, Secret] = {
            name: Secret(value) for name, value in overrides.items()
        }

    @property
    def names(self) -> list[str]:
        """Variable names in insertion order."""
        return list(self._overrides)

    def __len__(self) -> int:
        return len(self._overrides)

    def expand(self, env: MutableMapping[str, str]) -> None:
        for name, secret in self._overrides.items():
            env[name] = secret.get_secret_value()

    def __repr__(self) -> str:
        return f"EnvironmentOverlay(names={self.names!r})"


class MergedEnvironmentExpander(EnvironmentExpander):
    """Applies a sequence of expanders in order (later ones win)."""

    def __init__(self, expanders: Iterable[EnvironmentExpander]) -> None:
        self._expanders = list(expanders)

    @property
    def expanders(self) -> list[EnvironmentExpander]:
        return list(self._expanders)

    def expand(self, env: MutableMapping[str, str]) -> None:
        for expander in self._expanders:
            expander.expand(env)


def merge_expanders(
    original: EnvironmentExpander | None, subsequent: EnvironmentExpander | None
) -> EnvironmentExpander | None:
    """Chain two expanders; subsequent is applied after (and wins over) original.

    Either side may be None, in which case the other is returned unchanged.
    """
    if original is None:
        return subsequent
    if subsequent is None:
        return original

    # Flatten so deep nesting never builds up across nested binding steps
    parts: list[EnvironmentExpander] = []
    for expander in (original, subsequent):
        if isinstance(expander, MergedEnvironmentExpander):
            parts.extend(expander.expanders)
        else:
            parts.append(expander)
    return MergedEnvironmentExpander(parts)


__all__ = [
    "ConstantEnvironment",
    "EnvironmentExpander",
    "EnvironmentOverlay",
    "MergedEnvironmentExpander",
    "merge_expanders",
]
