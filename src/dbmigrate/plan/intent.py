"""Intent - the ordered collection of actions pending for one or more tables."""

from __future__ import annotations

from typing import Iterable, Iterator

from dbmigrate.actions import Action


class Intent:
    """Actions in the order they were requested.

    The order is the input to planning; the Plan is free to reorder.
    """

    def __init__(self, actions: Iterable[Action] = ()) -> None:
        self._actions: list[Action] = list(actions)

    def add_action(self, action: Action) -> None:
        self._actions.append(action)

    @property
    def actions(self) -> list[Action]:
        return list(self._actions)

    def merge(self, other: Intent) -> None:
        """Append every action of *other*."""
        self._actions.extend(other.actions)

    def __iter__(self) -> Iterator[Action]:
        return iter(self._actions)

    def __len__(self) -> int:
        return len(self._actions)

    def __bool__(self) -> bool:
        return bool(self._actions)

    def __repr__(self) -> str:
        return f"Intent({len(self._actions)} action(s))"
