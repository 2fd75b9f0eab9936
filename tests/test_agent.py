"""
tests.test_agent

Interpreter behavior of the orchestration engine.

Responsibilities:
- Pre-run validation (names, chain, input) and post-run output validation.
- Control flow: sequencing, explicit jumps, check routing, termination, iteration ceiling.
- Model hand-off and logging of each dispatch.
"""

from __future__ import annotations

from unittest.mock import ANY, AsyncMock

import pytest
import structlog
from langchain_core.language_models import FakeListChatModel

from fakes import (
    NumberInput,
    ParityOutput,
    RecordingModel,
    TextInput,
    UppercaseOutput,
    route_to,
    set_output,
)
from parsero import (
    END,
    ActionProcedure,
    Agent,
    CheckProcedure,
    IterationLimitError,
    ProcedureChainError,
    ProcedureNameError,
    RunStatus,
    Settings,
    State,
    StateValidationError,
)


def _parity_procedures() -> list:
    async def check_number(state, llm):
        state["output"]["isEven"] = state["input"]["number"] % 2 == 0
        return state

    async def router(state, llm):
        return "processEven" if state["output"]["isEven"] else "processOdd"

    async def process_even(state, llm):
        state["output"]["description"] = f"{state['input']['number']} is even."
        return state

    async def process_odd(state, llm):
        state["output"]["description"] = f"{state['input']['number']} is odd."
        return state

    return [
        ActionProcedure("checkNumber", AsyncMock(side_effect=check_number), "router"),
        CheckProcedure("router", AsyncMock(side_effect=router)),
        ActionProcedure("processEven", AsyncMock(side_effect=process_even), END),
        ActionProcedure("processOdd", AsyncMock(side_effect=process_odd), END),
    ]


@pytest.mark.asyncio
async def test_check_routes_between_actions(description_state, model, settings) -> None:
    procedures = _parity_procedures()
    check_number, router, process_even, process_odd = procedures
    agent = Agent(llm=model, procedures=procedures, state=description_state, settings=settings)

    even = await agent.run({"number": 42})

    assert even == {"description": "42 is even.", "isEven": True}
    assert agent.last_run is not None
    assert agent.last_run.visited == ["checkNumber", "router", "processEven"]
    assert agent.last_run.status == RunStatus.completed
    process_odd.run.assert_not_awaited()

    odd = await agent.run({"number": 43})

    assert odd == {"description": "43 is odd.", "isEven": False}
    assert agent.last_run.visited == ["checkNumber", "router", "processOdd"]
    assert check_number.run.await_count == 2
    assert router.run.await_count == 2


@pytest.mark.asyncio
async def test_sequential_actions_run_once_in_declaration_order(
    description_state, model, settings
) -> None:
    calls: list[str] = []

    def step(name: str, **fields):
        body = set_output(**fields)

        async def _run(state, llm):
            calls.append(name)
            return await body(state, llm)

        return _run

    agent = Agent(
        llm=model,
        procedures=[
            ActionProcedure("first", step("first", isEven=True)),
            ActionProcedure("second", step("second")),
            ActionProcedure("third", step("third", description="done")),
        ],
        state=description_state,
        settings=settings,
    )

    result = await agent.run({"number": 2})

    assert calls == ["first", "second", "third"]
    assert result == {"description": "done", "isEven": True}
    assert agent.last_run.iteration == 3


@pytest.mark.asyncio
async def test_explicit_next_skips_procedures(description_state, model, settings) -> None:
    second = AsyncMock(side_effect=set_output(description="should not run"))
    agent = Agent(
        llm=model,
        procedures=[
            ActionProcedure("first", set_output(isEven=True), "third"),
            ActionProcedure("second", second),
            ActionProcedure("third", set_output(description="ran third"), END),
        ],
        state=description_state,
        settings=settings,
    )

    result = await agent.run({"number": 42})

    second.assert_not_awaited()
    assert result["description"] == "ran third"


@pytest.mark.asyncio
async def test_duplicate_names_fail_before_execution(description_state, model, settings) -> None:
    body = AsyncMock(side_effect=set_output())
    agent = Agent(
        llm=model,
        procedures=[
            ActionProcedure("sameName", body),
            CheckProcedure("sameName", route_to("next")),
        ],
        state=description_state,
        settings=settings,
    )

    with pytest.raises(ProcedureNameError) as exc:
        await agent.run({"number": 1})

    assert exc.value.names == ("sameName",)
    body.assert_not_awaited()


def test_duplicate_names_are_all_reported(description_state, model, settings) -> None:
    agent = Agent(
        llm=model,
        procedures=[
            ActionProcedure("a", set_output()),
            ActionProcedure("b", set_output()),
            ActionProcedure("a", set_output()),
            CheckProcedure("b", route_to(END)),
            ActionProcedure("a", set_output()),
        ],
        state=description_state,
        settings=settings,
    )

    with pytest.raises(ProcedureNameError) as exc:
        agent.validate_procedures()

    assert exc.value.names == ("a", "b")


@pytest.mark.asyncio
async def test_check_requires_every_action_to_declare_next(
    description_state, model, settings
) -> None:
    body = AsyncMock(side_effect=set_output())
    agent = Agent(
        llm=model,
        procedures=[
            ActionProcedure("actionWithoutNext", body),
            CheckProcedure("router", route_to("actionWithoutNext")),
        ],
        state=description_state,
        settings=settings,
    )

    with pytest.raises(ProcedureChainError) as exc:
        await agent.run({"number": 1})

    assert exc.value.procedures == ("actionWithoutNext",)
    body.assert_not_awaited()


@pytest.mark.asyncio
async def test_invalid_input_raises_before_any_procedure(
    description_state, model, settings
) -> None:
    body = AsyncMock(side_effect=set_output())
    agent = Agent(
        llm=model,
        procedures=[ActionProcedure("only", body)],
        state=description_state,
        settings=settings,
    )

    with pytest.raises(StateValidationError) as exc:
        await agent.run({"number": "not-a-number"})

    assert [issue.path for issue in exc.value.issues] == ["number"]
    body.assert_not_awaited()


@pytest.mark.asyncio
async def test_invalid_output_raises(description_state, model, settings) -> None:
    agent = Agent(
        llm=model,
        procedures=[ActionProcedure("bad", set_output(isEven="not-a-boolean", description=123))],
        state=description_state,
        settings=settings,
    )

    with pytest.raises(StateValidationError, match="Output does not match the output schema") as exc:
        await agent.run({"number": 1})

    assert agent.last_run.status == RunStatus.failed
    assert {issue.path for issue in exc.value.issues} == {"isEven", "description"}


@pytest.mark.asyncio
async def test_cycle_hits_iteration_limit(description_state, model) -> None:
    loop1 = AsyncMock(side_effect=lambda state, llm: state)
    loop2 = AsyncMock(side_effect=lambda state, llm: state)
    description_state.set_output({"description": "test", "isEven": True})
    agent = Agent(
        llm=model,
        procedures=[
            ActionProcedure("loop1", loop1, "loop2"),
            ActionProcedure("loop2", loop2, "loop1"),
        ],
        state=description_state,
        settings=Settings(env="test", max_iterations=5),
    )

    with pytest.raises(IterationLimitError, match="maximum of 5 iterations") as exc:
        await agent.run({"number": 1})

    assert exc.value.max_iterations == 5
    assert isinstance(exc.value, ProcedureChainError)
    assert loop1.await_count == 3
    assert loop2.await_count == 2
    assert agent.last_run.iteration == 5
    assert agent.last_run.status == RunStatus.failed


@pytest.mark.asyncio
async def test_unbounded_iterations_disable_the_ceiling(description_state, model) -> None:
    counter = {"n": 0}

    async def tick(state, llm):
        counter["n"] += 1
        return state

    async def again(state, llm):
        return "tick" if counter["n"] < 150 else END

    description_state.set_output({"description": "x", "isEven": False})
    agent = Agent(
        llm=model,
        procedures=[ActionProcedure("tick", tick, "again"), CheckProcedure("again", again)],
        state=description_state,
        settings=Settings(env="test", max_iterations=None),
    )

    await agent.run({"number": 1})

    assert counter["n"] == 150


@pytest.mark.asyncio
@pytest.mark.parametrize("answer", [END, None, ""])
async def test_check_can_stop_the_run(description_state, model, settings, answer) -> None:
    even = AsyncMock(side_effect=set_output(description="overwritten"))
    description_state.set_output({"description": "set before", "isEven": True})
    agent = Agent(
        llm=model,
        procedures=[
            ActionProcedure("initial", set_output(isEven=True), "stopper"),
            CheckProcedure("stopper", route_to(answer)),
            ActionProcedure("processEven", even, END),
        ],
        state=description_state,
        settings=settings,
    )

    result = await agent.run({"number": 42})

    even.assert_not_awaited()
    assert result["description"] == "set before"


@pytest.mark.asyncio
async def test_unknown_check_target_ends_run_silently(description_state, model, settings) -> None:
    even = AsyncMock(side_effect=set_output(description="overwritten"))
    description_state.set_output({"description": "initial value", "isEven": True})
    agent = Agent(
        llm=model,
        procedures=[
            ActionProcedure("initial", set_output(isEven=True), "invalidRouter"),
            CheckProcedure("invalidRouter", route_to("non-existent-procedure")),
            ActionProcedure("processEven", even, END),
        ],
        state=description_state,
        settings=settings,
    )

    with structlog.testing.capture_logs() as logs:
        result = await agent.run({"number": 42})

    even.assert_not_awaited()
    assert result["description"] == "initial value"
    assert agent.last_run.status == RunStatus.completed
    assert any(
        e["event"] == "procedure_not_found" and e["procedure"] == "non-existent-procedure"
        for e in logs
    )


@pytest.mark.asyncio
async def test_unknown_action_target_ends_run(description_state, model, settings) -> None:
    second = AsyncMock(side_effect=set_output())
    agent = Agent(
        llm=model,
        procedures=[
            ActionProcedure("first", set_output(description="d", isEven=False), "typo"),
            ActionProcedure("second", second),
        ],
        state=description_state,
        settings=settings,
    )

    assert await agent.run({"number": 3}) == {"description": "d", "isEven": False}
    second.assert_not_awaited()


@pytest.mark.asyncio
async def test_check_may_route_to_another_check(description_state, model, settings) -> None:
    agent = Agent(
        llm=model,
        procedures=[
            CheckProcedure("entry", route_to("second")),
            CheckProcedure("second", route_to("write")),
            ActionProcedure("write", set_output(description="via checks", isEven=True), END),
        ],
        state=description_state,
        settings=settings,
    )

    result = await agent.run({"number": 4})

    assert result["description"] == "via checks"
    assert agent.last_run.visited == ["entry", "second", "write"]


@pytest.mark.asyncio
async def test_empty_procedure_list_completes_immediately(description_state, model, settings) -> None:
    description_state.set_output({"description": "untouched", "isEven": True})
    agent = Agent(llm=model, procedures=[], state=description_state, settings=settings)

    assert await agent.run({"number": 1}) == {"description": "untouched", "isEven": True}
    assert agent.last_run.iteration == 0


@pytest.mark.asyncio
async def test_check_cannot_mutate_container(description_state, model, settings) -> None:
    async def sneaky(state, llm):
        state["output"]["description"] = "mutated by check"
        return END

    description_state.set_output({"description": "original", "isEven": True})
    agent = Agent(
        llm=model,
        procedures=[
            ActionProcedure("noop", passthrough(), "sneaky"),
            CheckProcedure("sneaky", sneaky),
        ],
        state=description_state,
        settings=settings,
    )

    result = await agent.run({"number": 1})

    assert result["description"] == "original"


def passthrough():
    async def _run(state, llm):
        return state

    return _run


@pytest.mark.asyncio
async def test_action_edits_only_count_when_returned(description_state, model, settings) -> None:
    async def mutate_but_return_fresh(state, llm):
        state["output"]["description"] = "lost"
        return {"input": state["input"], "output": {"description": "kept", "isEven": True}}

    agent = Agent(
        llm=model,
        procedures=[ActionProcedure("only", mutate_but_return_fresh)],
        state=description_state,
        settings=settings,
    )

    assert await agent.run({"number": 1}) == {"description": "kept", "isEven": True}


@pytest.mark.asyncio
async def test_procedure_errors_propagate_unwrapped(description_state, model, settings) -> None:
    async def boom(state, llm):
        raise RuntimeError("API error")

    agent = Agent(
        llm=model,
        procedures=[ActionProcedure("boom", boom)],
        state=description_state,
        settings=settings,
    )

    with pytest.raises(RuntimeError, match="API error"):
        await agent.run({"number": 1})

    assert agent.last_run.status == RunStatus.failed


@pytest.mark.asyncio
async def test_model_mapping_is_passed_through_whole(description_state, settings) -> None:
    models = {"default": RecordingModel("a"), "summarizer": RecordingModel("b")}

    async def use_default(state, llm):
        await llm["default"].ainvoke("using default")
        state["output"]["isEven"] = state["input"]["number"] % 2 == 0
        return state

    async def use_summarizer(state, llm):
        await llm["summarizer"].ainvoke("using summarizer")
        state["output"]["description"] = "summarized"
        return state

    first = AsyncMock(side_effect=use_default)
    second = AsyncMock(side_effect=use_summarizer)
    agent = Agent(
        llm=models,
        procedures=[ActionProcedure("defaultProc", first), ActionProcedure("summarizerProc", second)],
        state=description_state,
        settings=settings,
    )

    result = await agent.run({"number": 42})

    assert result == {"description": "summarized", "isEven": True}
    first.assert_awaited_with(ANY, models)
    second.assert_awaited_with(ANY, models)
    assert models["default"].prompts == ["using default"]
    assert models["summarizer"].prompts == ["using summarizer"]


@pytest.mark.asyncio
async def test_verbose_logs_each_dispatch_at_info(description_state, model) -> None:
    agent = Agent(
        llm=model,
        procedures=_parity_procedures()[:3],
        state=description_state,
        settings=Settings(env="test", verbose=True),
    )

    with structlog.testing.capture_logs() as logs:
        await agent.run({"number": 42})

    dispatches = [e for e in logs if e["event"] == "procedure_dispatch"]
    assert [(e["iteration"], e["procedure"]) for e in dispatches] == [
        (1, "checkNumber"),
        (2, "router"),
        (3, "processEven"),
    ]
    assert {e["log_level"] for e in dispatches} == {"info"}
    assert {e["agent"] for e in dispatches} == {"agent"}


@pytest.mark.asyncio
async def test_quiet_logs_dispatch_at_debug(description_state, model, settings) -> None:
    agent = Agent(
        llm=model,
        procedures=_parity_procedures()[:3],
        state=description_state,
        settings=settings,
    )

    with structlog.testing.capture_logs() as logs:
        await agent.run({"number": 42})

    assert {e["log_level"] for e in logs if e["event"] == "procedure_dispatch"} == {"debug"}


@pytest.mark.asyncio
async def test_odd_even_scenario_with_chat_model(settings) -> None:
    llm = FakeListChatModel(responses=["odd", "11 leaves a remainder of 1 when divided by 2."])

    async def classify(state, llm):
        answer = await llm.ainvoke(f"Is {state['input']['number']} odd or even?")
        state["output"]["class"] = answer.content.strip()
        return state

    async def router(state, llm):
        return "isOdd" if state["output"]["class"] == "odd" else "isEven"

    async def explain(state, llm):
        answer = await llm.ainvoke(f"Explain the parity of {state['input']['number']}.")
        state["output"]["explanation"] = answer.content
        return state

    is_odd = AsyncMock(side_effect=explain)
    is_even = AsyncMock(side_effect=explain)
    agent = Agent(
        llm=llm,
        procedures=[
            ActionProcedure("classify", classify, "router"),
            CheckProcedure("router", router),
            ActionProcedure("isOdd", is_odd, END),
            ActionProcedure("isEven", is_even, END),
        ],
        state=State(input_schema=NumberInput, output_schema=ParityOutput),
        settings=settings,
    )

    result = await agent.run({"number": 11})

    assert result == {"class": "odd", "explanation": "11 leaves a remainder of 1 when divided by 2."}
    assert agent.last_run.visited == ["classify", "router", "isOdd"]
    is_even.assert_not_awaited()
    ParityOutput.model_validate(result)


@pytest.mark.asyncio
async def test_single_action_uppercase_scenario(model, settings) -> None:
    async def uppercase(state, llm):
        state["output"]["uppercase"] = state["input"]["text"].upper()
        return state

    agent = Agent(
        llm=model,
        procedures=[ActionProcedure("uppercase", uppercase)],
        state=State(input_schema=TextInput, output_schema=UppercaseOutput),
        settings=settings,
    )

    assert await agent.run({"text": "parsero"}) == {"uppercase": "PARSERO"}
    assert agent.last_run.visited == ["uppercase"]


def test_agent_falls_back_to_cached_settings(description_state, model) -> None:
    agent = Agent(llm=model, procedures=[], state=description_state)
    assert agent.settings.max_iterations == 100


# --- Module Notes -----------------------------------------------------------
# AsyncMock wrappers are used where a test needs call counts; plain coroutine
# functions are used everywhere else.
