"""
parsero.orchestrator.state

Runtime state container for one agent.

Responsibilities:
- Own the current `{input, output}` values for a run (initialized with every declared field = None).
- Delegate shape checks to the pydantic schemas supplied by the caller.
- Describe the declared top-level fields so the graph compiler can declare one channel each.
"""

from __future__ import annotations

import copy
import types
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar, Union, get_args, get_origin

from pydantic import BaseModel, ValidationError

from parsero.orchestrator.errors import ValidationIssue
from parsero.orchestrator.procedures import StateValues

InputT = TypeVar("InputT", bound=BaseModel)
OutputT = TypeVar("OutputT", bound=BaseModel)


@dataclass(frozen=True, slots=True)
class ValidationResult:
    success: bool
    data: dict[str, Any] | None = None
    issues: tuple[ValidationIssue, ...] = ()


@dataclass(frozen=True, slots=True)
class FieldSpec:
    # Top-level field of a section, under its serialization alias.
    name: str
    is_list: bool = False
    is_mapping: bool = False
    is_model: bool = False


@dataclass(slots=True)
class _Runtime:
    input: dict[str, Any] = field(default_factory=dict)
    output: dict[str, Any] = field(default_factory=dict)


class State(Generic[InputT, OutputT]):
    """
    Holds the state of one agent between and during runs.

    `values` is returned by reference: anything mutated through it is visible to the
    next run. The engine itself hands procedure bodies a `snapshot()` instead.
    """

    def __init__(self, *, input_schema: type[InputT], output_schema: type[OutputT]) -> None:
        self.input_schema = input_schema
        self.output_schema = output_schema
        template = self.template()
        self._runtime = _Runtime(input=template["input"], output=template["output"])

    @property
    def values(self) -> StateValues:
        return {"input": self._runtime.input, "output": self._runtime.output}

    def snapshot(self) -> StateValues:
        return copy.deepcopy(self.values)

    def template(self) -> StateValues:
        return {
            "input": {name: None for name in _field_names(self.input_schema)},
            "output": {name: None for name in _field_names(self.output_schema)},
        }

    def set_input(self, value: dict[str, Any]) -> None:
        self._runtime.input = value

    def set_output(self, value: dict[str, Any]) -> None:
        self._runtime.output = value

    def validate_input(self, raw: Any) -> ValidationResult:
        return _validate(self.input_schema, raw)

    def validate_output(self, raw: Any) -> ValidationResult:
        return _validate(self.output_schema, raw)

    def schema_for(self, section: str) -> type[BaseModel]:
        if section == "input":
            return self.input_schema
        if section == "output":
            return self.output_schema
        raise ValueError(f"Unknown state section: {section!r}")

    def fields(self, section: str) -> list[FieldSpec]:
        return list(_declared_fields(self.schema_for(section)))

    def free_form_fields(self, section: str) -> list[str]:
        # Mapping-typed fields whose nested keys are not known ahead of a run.
        return [f.name for f in self.fields(section) if f.is_mapping]


def _validate(schema: type[BaseModel], raw: Any) -> ValidationResult:
    try:
        parsed = schema.model_validate(raw)
    except ValidationError as e:
        issues = tuple(
            ValidationIssue(path=".".join(str(p) for p in err["loc"]), message=err["msg"])
            for err in e.errors()
        )
        return ValidationResult(success=False, issues=issues)
    return ValidationResult(success=True, data=parsed.model_dump(by_alias=True))


def _field_names(schema: type[BaseModel]) -> list[str]:
    return [_alias(name, info) for name, info in schema.model_fields.items()]


def _alias(name: str, info: Any) -> str:
    return info.serialization_alias or info.alias or name


def _declared_fields(schema: type[BaseModel]):
    # Nested models stay whole: their value may become None or lose keys as a unit.
    for name, info in schema.model_fields.items():
        annotation = _unwrap_optional(info.annotation)
        origin = get_origin(annotation) or annotation
        yield FieldSpec(
            name=_alias(name, info),
            is_list=origin in (list, tuple, set, frozenset),
            is_mapping=isinstance(origin, type) and issubclass(origin, Mapping),
            is_model=isinstance(origin, type) and issubclass(origin, BaseModel),
        )


def _unwrap_optional(annotation: Any) -> Any:
    if get_origin(annotation) in (Union, types.UnionType):
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


# --- Module Notes -----------------------------------------------------------
# One State instance belongs to one in-flight run at a time: actions replace its
# sections without locking, so concurrent runs must use separate containers.
