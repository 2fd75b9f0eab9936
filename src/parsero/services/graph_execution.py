"""
parsero.services.graph_execution

Runs an agent through its compiled LangGraph graph instead of the interpreter.

Responsibilities:
- Apply the same validation envelope as `Agent.run` (procedures, input, output).
- Encode state into graph channels, stream the graph, and decode the final flat state.
- Translate LangGraph's recursion limit into the engine's iteration-limit error.
"""

from __future__ import annotations

import sys
import uuid
from typing import Any

from langgraph.errors import GraphRecursionError

from parsero.observability.logging import bind_run, get_logger
from parsero.orchestrator.agent import Agent
from parsero.orchestrator.errors import IterationLimitError, StateValidationError
from parsero.orchestrator.graph import GraphBuild

log = get_logger(__name__)


class GraphExecutionService:
    def __init__(self, *, agent: Agent) -> None:
        self._agent = agent

    async def execute(self, raw_input: Any) -> dict[str, Any]:
        agent = self._agent
        settings = agent.settings

        build = agent.compile()

        parsed = agent.state.validate_input(raw_input)
        if not parsed.success:
            raise StateValidationError("Input does not match the input schema.", parsed.issues)
        agent.state.set_input(parsed.data or {})

        run_log = bind_run(log, settings, str(uuid.uuid4()))
        for message in build.diagnostics:
            run_log.warning("graph_diagnostic", message=message)

        initial = build.encode(agent.state.values)

        try:
            final = await self._stream(build, initial, run_log)
        except GraphRecursionError as e:
            limit = settings.max_iterations
            run_log.warning("iteration_limit_reached", max_iterations=limit)
            raise IterationLimitError(limit or sys.maxsize) from e

        values = build.decode(final)
        agent.state.set_input(values["input"])
        agent.state.set_output(values["output"])

        result = agent.state.validate_output(values["output"])
        if not result.success:
            raise StateValidationError("Output does not match the output schema.", result.issues)
        return result.data or {}

    async def _stream(
        self,
        build: GraphBuild,
        initial: dict[str, Any],
        run_log: Any,
    ) -> dict[str, Any]:
        """
        Streams updates so every executed action is logged like an interpreter dispatch.
        """

        settings = self._agent.settings
        emit = run_log.info if settings.verbose else run_log.debug
        config = {
            "recursion_limit": settings.max_iterations or sys.maxsize,
            "run_name": settings.agent_name,
            "metadata": {"service": settings.service_name, "agent": settings.agent_name},
        }

        last_state: dict[str, Any] = dict(initial)
        step = 0
        async for mode, chunk in build.graph.astream(
            initial, config=config, stream_mode=["updates", "values"]
        ):
            if mode == "values" and isinstance(chunk, dict):
                last_state = chunk
                continue
            if mode == "updates" and isinstance(chunk, dict):
                for node_name in chunk:
                    step += 1
                    emit("graph_step", iteration=step, procedure=node_name)

        run_log.debug("graph_completed", iterations=step)
        return last_state


# --- Module Notes -----------------------------------------------------------
# The recursion limit counts action supersteps only (checks are edge resolvers),
# so the ceiling is shared with the interpreter loosely; routing is identical.
