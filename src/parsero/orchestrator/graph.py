"""
parsero.orchestrator.graph

Compiles a procedure list into a LangGraph `StateGraph`.

Responsibilities:
- Declare one flat channel per top-level schema field (list fields get an append reducer),
  plus one overflow channel per section for keys the schema does not declare.
- Add one node per action procedure; checks become conditional-edge resolvers.
- Reproduce the interpreter's routing: END, explicit jumps, list order, lookup misses.
- Pick a single chat model for the graph and report the choice as diagnostics.
"""

from __future__ import annotations

import copy
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Annotated, Any, TypedDict

from langgraph.graph import END, START, StateGraph

from parsero.orchestrator.codec import SECTIONS, StateCodec
from parsero.orchestrator.errors import IterationLimitError
from parsero.orchestrator.procedures import (
    ActionProcedure,
    CheckProcedure,
    Procedure,
    StateValues,
    is_action,
    is_check,
    is_terminal,
)
from parsero.orchestrator.reducers import append_values, list_update
from parsero.orchestrator.state import State

FlatState = dict[str, Any]

# Pydantic rejects field names with a leading underscore, so this never shadows a field.
OVERFLOW_FIELD = "__extra__"


@dataclass(frozen=True, slots=True)
class ModelSelection:
    model: Any
    key: str | None
    diagnostics: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class GraphBuild:
    graph: Any
    model_key: str | None
    # Declared field channels; overflow channels are not listed here.
    channels: tuple[str, ...]
    encode: Callable[[StateValues], FlatState]
    decode: Callable[[FlatState], StateValues]
    diagnostics: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class _Layout:
    channels: tuple[str, ...]
    lists: frozenset[str]
    declared: Mapping[str, frozenset[str]]
    overflow: Mapping[str, str]

    @property
    def keys(self) -> tuple[str, ...]:
        return (*self.channels, *(self.overflow[s] for s in SECTIONS))


def resolve_model(llm: Any, default_key: str = "default") -> ModelSelection:
    """
    LangGraph nodes get exactly one model: `default_key` if present, else the first entry.
    """

    if not isinstance(llm, Mapping):
        return ModelSelection(model=llm, key=None)

    keys = list(llm.keys())
    if not keys:
        raise ValueError("No model was provided; graph compilation needs at least one model.")

    key = default_key if default_key in llm else keys[0]
    diagnostics: tuple[str, ...] = ()
    if len(keys) > 1:
        ignored = ", ".join(k for k in keys if k != key)
        diagnostics = (
            f'Graph compilation uses only the model "{key}"; ignored models: {ignored}.',
        )
    return ModelSelection(model=llm[key], key=key, diagnostics=diagnostics)


def build_graph(
    *,
    procedures: Sequence[Procedure],
    state: State,
    llm: Any,
    codec: StateCodec,
    default_model_key: str = "default",
    max_iterations: int | None = None,
) -> GraphBuild:
    """
    Returns a compiled LangGraph runnable plus build diagnostics.

    No procedure body runs here; bodies only run when the compiled graph is invoked.
    """

    selection = resolve_model(llm, default_model_key)
    layout = _layout(state, codec)
    diagnostics = [*selection.diagnostics, *_separator_diagnostics(state, codec)]

    graph = StateGraph(_flat_state_schema(layout))
    by_name = {p.name: p for p in procedures}
    actions = [p.name for p in procedures if is_action(p)]
    path_map = {**{name: name for name in actions}, END: END}

    def encode(values: StateValues) -> FlatState:
        return _encode(values, codec, layout)

    def decode(flat: FlatState) -> StateValues:
        return _decode(flat, codec, layout, state.template())

    def router(check: CheckProcedure) -> Callable[[FlatState], Awaitable[str]]:
        return _bind_router(check, by_name, decode, selection.model, max_iterations)

    def connect(source: str, target: str | None) -> None:
        # Mirrors the interpreter: unknown names and exhausted lists end the run.
        proc = by_name.get(target) if target else None
        if proc is None:
            graph.add_edge(source, END)
        elif is_check(proc):
            graph.add_conditional_edges(source, router(proc), path_map)
        else:
            graph.add_edge(source, proc.name)

    for procedure in procedures:
        if is_action(procedure):
            graph.add_node(
                procedure.name,
                _bind_action(procedure, decode, encode, layout, selection.model),
            )

    connect(START, procedures[0].name if procedures else None)

    for i, procedure in enumerate(procedures):
        if not is_action(procedure):
            continue
        if procedure.next_procedure == END:
            graph.add_edge(procedure.name, END)
        elif procedure.next_procedure:
            connect(procedure.name, procedure.next_procedure)
        else:
            following = procedures[i + 1].name if i + 1 < len(procedures) else None
            connect(procedure.name, following)

    return GraphBuild(
        graph=graph.compile(),
        model_key=selection.key,
        channels=layout.channels,
        encode=encode,
        decode=decode,
        diagnostics=tuple(diagnostics),
    )


def _encode(values: Mapping[str, Any], codec: StateCodec, layout: _Layout) -> FlatState:
    # Declared fields are channels of their own and are never decomposed.
    flat = codec.flatten(values, layout.channels)
    out: FlatState = {key: flat.get(key) for key in layout.channels}
    for section in SECTIONS:
        data = values.get(section) or {}
        out[layout.overflow[section]] = {
            k: copy.deepcopy(v) for k, v in data.items() if k not in layout.declared[section]
        }
    return out


def _decode(
    flat: Mapping[str, Any], codec: StateCodec, layout: _Layout, template: StateValues
) -> StateValues:
    decoded = codec.unflatten({k: flat[k] for k in layout.channels if k in flat})
    values = template
    for section in SECTIONS:
        values[section].update(decoded[section])
        values[section].update(flat.get(layout.overflow[section]) or {})
    return copy.deepcopy(values)


def _bind_action(
    procedure: ActionProcedure,
    decode: Callable[[FlatState], StateValues],
    encode: Callable[[StateValues], FlatState],
    layout: _Layout,
    model: Any,
) -> Callable[[FlatState], Awaitable[FlatState]]:
    async def _node(flat: FlatState) -> FlatState:
        values = await procedure.run(decode(flat), model)
        return _channel_updates(flat, encode(values), layout)

    _node.__name__ = f"action_{procedure.name}"
    return _node


def _bind_router(
    check: CheckProcedure,
    by_name: Mapping[str, Procedure],
    decode: Callable[[FlatState], StateValues],
    model: Any,
    max_iterations: int | None,
) -> Callable[[FlatState], Awaitable[str]]:
    async def _route(flat: FlatState) -> str:
        values = decode(flat)
        current = check
        hops = 0
        while True:
            hops += 1
            if max_iterations is not None and hops > max_iterations:
                raise IterationLimitError(max_iterations)
            target = await current.run(copy.deepcopy(values), model)
            if is_terminal(target):
                return END
            nxt = by_name.get(target)
            if nxt is None:
                return END
            if is_action(nxt):
                return nxt.name
            # A check may hand over to another check; evaluate it against the same state.
            current = nxt

    _route.__name__ = f"route_{check.name}"
    return _route


def _channel_updates(before: FlatState, after: FlatState, layout: _Layout) -> FlatState:
    # Every channel is written, so fields an action cleared or dropped do not linger.
    updates: FlatState = {}
    for key in layout.keys:
        if key in layout.lists:
            changed, update = list_update(before.get(key), after.get(key))
            if changed:
                updates[key] = update
        else:
            updates[key] = after.get(key)
    return updates


def _layout(state: State, codec: StateCodec) -> _Layout:
    channels: list[str] = []
    lists: set[str] = set()
    declared: dict[str, frozenset[str]] = {}
    for section in SECTIONS:
        fields = state.fields(section)
        declared[section] = frozenset(f.name for f in fields)
        for f in fields:
            key = codec.key(section, (f.name,))
            channels.append(key)
            if f.is_list:
                lists.add(key)
    return _Layout(
        channels=tuple(channels),
        lists=frozenset(lists),
        declared=declared,
        overflow={s: codec.key(s, (OVERFLOW_FIELD,)) for s in SECTIONS},
    )


def _flat_state_schema(layout: _Layout) -> type:
    fields: dict[str, Any] = {
        key: Annotated[list, append_values] if key in layout.lists else Any
        for key in layout.keys
    }
    return TypedDict("FlatState", fields, total=False)  # type: ignore[operator]


def _separator_diagnostics(state: State, codec: StateCodec) -> list[str]:
    out: list[str] = []
    for section in SECTIONS:
        for f in state.fields(section):
            if codec.separator in f.name:
                out.append(
                    f'Field "{section}.{f.name}" contains the state separator '
                    f'"{codec.separator}"; it will not decode back to the same path.'
                )
    return out


# --- Module Notes -----------------------------------------------------------
# Checks are not graph nodes, so LangGraph's recursion limit counts action supersteps
# only; chained check hops are bounded separately by `max_iterations`.
