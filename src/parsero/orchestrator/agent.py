"""
parsero.orchestrator.agent

Orchestration engine: validates a procedure list and interprets it.

Responsibilities:
- Reject broken procedure lists before anything runs (duplicate names, incomplete chains).
- Walk the list: sequencing, explicit jumps, check routing, termination, iteration ceiling.
- Validate input on entry and output on exit.
- Expose the same procedure list compiled as a LangGraph graph.
"""

from __future__ import annotations

import enum
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Generic

from parsero.observability.logging import bind_run, get_logger
from parsero.orchestrator.codec import StateCodec
from parsero.orchestrator.errors import (
    IterationLimitError,
    ProcedureChainError,
    ProcedureNameError,
    StateValidationError,
)
from parsero.orchestrator.graph import GraphBuild, build_graph
from parsero.orchestrator.procedures import (
    END,
    ActionProcedure,
    CheckProcedure,
    Procedure,
    is_action,
    is_check,
    is_terminal,
)
from parsero.orchestrator.state import InputT, OutputT, State
from parsero.settings import Settings, get_settings

log = get_logger(__name__)


class RunStatus(enum.StrEnum):
    running = "RUNNING"
    completed = "COMPLETED"
    failed = "FAILED"


@dataclass(slots=True)
class RunContext:
    """
    Ephemeral bookkeeping for a single `Agent.run` call.
    """

    run_id: str
    index: dict[str, int]
    cursor: int | None
    iteration: int = 0
    status: RunStatus = RunStatus.running
    visited: list[str] = field(default_factory=list)


class Agent(Generic[InputT, OutputT]):
    """
    Runs a list of procedures over a typed `State`.

    - Action procedures rewrite state and may name the next procedure (or END).
    - Check procedures read state and return the next procedure name (or END / None).
    - Without any Check, actions that name no successor continue in list order.
    """

    def __init__(
        self,
        *,
        llm: Any,
        procedures: Sequence[Procedure],
        state: State[InputT, OutputT],
        settings: Settings | None = None,
    ) -> None:
        self.llm = llm
        self.procedures: list[Procedure] = list(procedures)
        self.state = state
        self.settings = settings or get_settings()
        self.codec = StateCodec(self.settings.state_separator)
        self.last_run: RunContext | None = None

    def validate_procedures(self) -> None:
        self._validate_names()
        self._validate_chain()

    def _validate_names(self) -> None:
        seen: set[str] = set()
        duplicates: list[str] = []
        for p in self.procedures:
            if p.name in seen and p.name not in duplicates:
                duplicates.append(p.name)
            seen.add(p.name)
        if duplicates:
            raise ProcedureNameError(
                f"Procedure names must be unique; duplicated: {', '.join(duplicates)}",
                duplicates,
            )

    def _validate_chain(self) -> None:
        # Once any check can jump anywhere, list order stops being a reliable continuation.
        if not any(is_check(p) for p in self.procedures):
            return
        missing = [p.name for p in self.procedures if is_action(p) and not p.next_procedure]
        if missing:
            raise ProcedureChainError(
                "When a 'check' procedure is present, every 'action' procedure must declare "
                f"its next procedure; missing on: {', '.join(missing)}",
                missing,
            )

    async def run(self, raw_input: Any) -> dict[str, Any]:
        """
        Executes the agent until a procedure ends the run or the list is exhausted.

        Raises:
        - ProcedureNameError / ProcedureChainError before any procedure runs
        - StateValidationError when the input or the final output does not fit its schema
        - IterationLimitError when the dispatch count reaches `max_iterations`
        """

        self.validate_procedures()

        parsed = self.state.validate_input(raw_input)
        if not parsed.success:
            raise StateValidationError("Input does not match the input schema.", parsed.issues)
        self.state.set_input(parsed.data or {})

        ctx = RunContext(
            run_id=str(uuid.uuid4()),
            index={p.name: i for i, p in enumerate(self.procedures)},
            cursor=0 if self.procedures else None,
        )
        self.last_run = ctx
        run_log = bind_run(log, self.settings, ctx.run_id)

        try:
            await self._interpret(ctx, run_log)
            result = self.state.validate_output(self.state.values["output"])
            if not result.success:
                raise StateValidationError(
                    "Output does not match the output schema.", result.issues
                )
        except BaseException:
            ctx.status = RunStatus.failed
            raise

        ctx.status = RunStatus.completed
        run_log.debug("run_completed", iterations=ctx.iteration, visited=ctx.visited)
        return result.data or {}

    async def _interpret(self, ctx: RunContext, run_log: Any) -> None:
        max_iterations = self.settings.max_iterations
        emit = run_log.info if self.settings.verbose else run_log.debug

        while ctx.cursor is not None:
            if max_iterations is not None and ctx.iteration >= max_iterations:
                run_log.warning("iteration_limit_reached", max_iterations=max_iterations)
                raise IterationLimitError(max_iterations)
            ctx.iteration += 1

            procedure = self.procedures[ctx.cursor]
            ctx.visited.append(procedure.name)
            emit(
                "procedure_dispatch",
                iteration=ctx.iteration,
                procedure=procedure.name,
                kind=procedure.kind,
            )

            match procedure:
                case ActionProcedure():
                    values = await procedure.run(self.state.snapshot(), self.llm)
                    self.state.set_input(values["input"])
                    self.state.set_output(values["output"])

                    if procedure.next_procedure == END:
                        ctx.cursor = None
                    elif procedure.next_procedure:
                        ctx.cursor = self._lookup(ctx, procedure.next_procedure, run_log)
                    else:
                        following = ctx.cursor + 1
                        ctx.cursor = following if following < len(self.procedures) else None
                case CheckProcedure():
                    target = await procedure.run(self.state.snapshot(), self.llm)
                    if is_terminal(target):
                        ctx.cursor = None
                    else:
                        ctx.cursor = self._lookup(ctx, target, run_log)

    def _lookup(self, ctx: RunContext, name: str, run_log: Any) -> int | None:
        position = ctx.index.get(name)
        if position is None:
            # Unknown names end the run instead of failing it.
            run_log.warning("procedure_not_found", procedure=name)
        return position

    def compile(self) -> GraphBuild:
        """
        Builds a fresh LangGraph graph for the procedure list (never cached).
        """

        self.validate_procedures()
        return build_graph(
            procedures=self.procedures,
            state=self.state,
            llm=self.llm,
            codec=self.codec,
            default_model_key=self.settings.default_model_key,
            max_iterations=self.settings.max_iterations,
        )

    @property
    def graph(self):
        """
        Compiled LangGraph runnable for advanced use cases; see `compile()` for diagnostics.
        """

        build = self.compile()
        for message in build.diagnostics:
            log.debug("graph_diagnostic", agent=self.settings.agent_name, message=message)
        return build.graph


# --- Module Notes -----------------------------------------------------------
# The interpreter never copies state defensively on the way out: actions must return
# the full `{input, output}` pair, and the container adopts it as-is.
