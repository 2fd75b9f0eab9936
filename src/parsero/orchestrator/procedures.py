"""
parsero.orchestrator.procedures

Procedure model: the steps an agent walks through.

Responsibilities:
- Define the two procedure kinds (Action / Check) as a tagged union.
- Define the shared terminal marker and the state value shape passed to bodies.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias, TypedDict, TypeGuard

from langgraph.graph import END


class StateValues(TypedDict):
    input: dict[str, Any]
    output: dict[str, Any]


# Procedure bodies receive whatever model object (or name -> model mapping) the agent was given.
ActionRun: TypeAlias = Callable[[StateValues, Any], Awaitable[StateValues]]
CheckRun: TypeAlias = Callable[[StateValues, Any], Awaitable[str | None]]


@dataclass(frozen=True, slots=True)
class ActionProcedure:
    """
    May rewrite state. `run` gets a private copy and must return the complete
    `{input, output}` pair; the engine replaces both sections with it.

    `next_procedure`: a procedure name, `END`, or None for "next in list order".
    """

    name: str
    run: ActionRun
    next_procedure: str | None = None
    kind: Literal["action"] = field(default="action", init=False)


@dataclass(frozen=True, slots=True)
class CheckProcedure:
    """
    Read-only router. `run` returns the next procedure name, `END`, or None/""
    to stop the run.
    """

    name: str
    run: CheckRun
    kind: Literal["check"] = field(default="check", init=False)


Procedure: TypeAlias = ActionProcedure | CheckProcedure


def is_action(procedure: Procedure) -> TypeGuard[ActionProcedure]:
    return procedure.kind == "action"


def is_check(procedure: Procedure) -> TypeGuard[CheckProcedure]:
    return procedure.kind == "check"


def is_terminal(name: str | None) -> bool:
    # Empty check results stop the run just like END does.
    return not name or name == END


__all__ = [
    "END",
    "ActionProcedure",
    "CheckProcedure",
    "Procedure",
    "StateValues",
    "is_action",
    "is_check",
    "is_terminal",
]


# --- Module Notes -----------------------------------------------------------
# END is LangGraph's own terminal node id, so a procedure list means the same thing
# to the interpreter and to the compiled graph.
