"""
parsero

Build AI agents as ordered lists of procedures over a typed input/output state.

Responsibilities:
- Expose the public surface (agent, state, procedures, codec, errors) and version metadata.
"""

from parsero.orchestrator.agent import Agent, RunContext, RunStatus
from parsero.orchestrator.codec import StateCodec, flatten, unflatten
from parsero.orchestrator.errors import (
    IterationLimitError,
    ParseroError,
    ProcedureChainError,
    ProcedureNameError,
    StateValidationError,
    ValidationIssue,
)
from parsero.orchestrator.graph import GraphBuild, ModelSelection, resolve_model
from parsero.orchestrator.procedures import (
    END,
    ActionProcedure,
    CheckProcedure,
    Procedure,
    StateValues,
)
from parsero.orchestrator.state import State, ValidationResult
from parsero.services.graph_execution import GraphExecutionService
from parsero.settings import Settings, get_settings

__all__ = [
    "END",
    "ActionProcedure",
    "Agent",
    "CheckProcedure",
    "GraphBuild",
    "GraphExecutionService",
    "IterationLimitError",
    "ModelSelection",
    "ParseroError",
    "Procedure",
    "ProcedureChainError",
    "ProcedureNameError",
    "RunContext",
    "RunStatus",
    "Settings",
    "State",
    "StateCodec",
    "StateValidationError",
    "StateValues",
    "ValidationIssue",
    "ValidationResult",
    "__version__",
    "flatten",
    "get_settings",
    "resolve_model",
    "unflatten",
]

__version__ = "1.0.0"


# --- Module Notes -----------------------------------------------------------
# Importing the package has no side effects: logging is configured only when the
# embedding application calls `parsero.observability.logging.configure_logging`.
