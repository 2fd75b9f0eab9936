"""
parsero.orchestrator.reducers

Reducers define how LangGraph merges node updates into flat state channels.

Why reducers:
- List-typed fields are declared with an append-reducing merge strategy.
- Actions return complete lists, so nodes emit only the appended suffix; a
  `Replace` wrapper covers updates that are not pure extensions (removal, reorder).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class Replace:
    """
    Update marker that bypasses appending and sets the channel value outright.
    """

    value: Any


def append_values(left: list[Any] | None, right: list[Any] | Replace | None) -> list[Any] | None:
    """
    Append-only reducer for list channels.

    Nodes should return `{"output_items": [new, ...]}` for appends and
    `{"output_items": Replace([...])}` when the list was rewritten.
    """

    if isinstance(right, Replace):
        return right.value
    if right is None:
        return left
    if not left:
        return list(right)
    return [*left, *right]


def list_update(before: Any, after: Any) -> tuple[bool, Any]:
    """
    Translate a full list value returned by an action into a channel update.

    Returns `(changed, update)`; `update` is either the appended suffix or a `Replace`.
    """

    if before == after:
        return False, None
    if isinstance(before, list) and isinstance(after, list) and after[: len(before)] == before:
        return True, after[len(before) :]
    if not before and isinstance(after, list):
        return True, list(after)
    return True, Replace(after)


# --- Module Notes -----------------------------------------------------------
# Non-list channels use LangGraph's default last-value channel (plain overwrite).
