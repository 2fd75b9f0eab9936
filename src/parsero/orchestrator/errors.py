"""
parsero.orchestrator.errors

Domain-specific exceptions raised by the orchestration engine.

Responsibilities:
- Signal configuration problems in a procedure list (duplicate names, broken chains).
- Signal runaway loops (iteration ceiling) and state shape violations.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass


class ParseroError(Exception):
    """
    Base class for every error the engine raises on its own behalf.
    Exceptions raised inside procedure bodies are never wrapped in it.
    """


class ProcedureNameError(ParseroError):
    def __init__(self, message: str, names: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.names: tuple[str, ...] = tuple(names)


class ProcedureChainError(ParseroError):
    def __init__(self, message: str, procedures: Iterable[str] = ()) -> None:
        super().__init__(message)
        # Action procedures that broke the chain rule (empty for iteration limits).
        self.procedures: tuple[str, ...] = tuple(procedures)


class IterationLimitError(ProcedureChainError):
    """
    Raised mid-run when the dispatch count reaches the configured ceiling.
    This is the only loop detection the engine performs.
    """

    def __init__(self, max_iterations: int) -> None:
        super().__init__(
            f"Agent reached the maximum of {max_iterations} iterations. "
            "Possible loop detected in the procedure graph."
        )
        self.max_iterations = max_iterations


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    # Dotted field path as reported by the schema validator ("" for the root).
    path: str
    message: str


class StateValidationError(ParseroError):
    def __init__(self, message: str, issues: Iterable[ValidationIssue] = ()) -> None:
        super().__init__(message)
        self.issues: tuple[ValidationIssue, ...] = tuple(issues)

    def __str__(self) -> str:
        base = super().__str__()
        if not self.issues:
            return base
        details = "; ".join(f"{i.path or '<root>'}: {i.message}" for i in self.issues)
        return f"{base} ({details})"


# --- Module Notes -----------------------------------------------------------
# All of these abort a run immediately. An unknown next-procedure name is not an
# error: the engine ends the run and logs a `procedure_not_found` warning instead.
