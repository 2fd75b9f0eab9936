"""
parsero.orchestrator.codec

Flat state codec shared by the interpreter and the LangGraph adapter.

Responsibilities:
- Encode the two-section `{input, output}` state into flat, prefix-addressed keys.
- Decode flat keys back into nested sections.

Encoding rules:
- `{"input": {"user": {"name": "x"}}}` -> `{"input_user_name": "x"}`
- Lists, None, scalars and empty dicts are leaves; lists are never decomposed.
- On decode, keys without a section prefix are ignored.
- Path collisions resolve as "later write wins": a scalar found where a dict is
  needed is replaced by a dict, and a later scalar replaces an earlier dict.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping
from typing import Any

from parsero.orchestrator.procedures import StateValues

SECTIONS: tuple[str, ...] = ("input", "output")


class StateCodec:
    def __init__(self, separator: str = "_") -> None:
        if not separator:
            raise ValueError("separator must be a non-empty string")
        self.separator = separator

    def key(self, section: str, path: Iterable[str]) -> str:
        return self.separator.join([section, *path])

    def flatten(
        self, values: Mapping[str, Any], atomic: Collection[str] = frozenset()
    ) -> dict[str, Any]:
        """
        `atomic` lists flat keys stored verbatim even when their value is a mapping.
        """

        flat: dict[str, Any] = {}
        for section in SECTIONS:
            data = values.get(section)
            if not isinstance(data, Mapping):
                continue
            for k, v in data.items():
                self._walk(flat, (section, str(k)), v, atomic)
        return flat

    def _walk(
        self,
        flat: dict[str, Any],
        path: tuple[str, ...],
        value: Any,
        atomic: Collection[str],
    ) -> None:
        key = self.separator.join(path)
        if isinstance(value, Mapping) and value and key not in atomic:
            for k, v in value.items():
                self._walk(flat, (*path, str(k)), v, atomic)
            return
        # Empty mappings stay leaves so the key survives a round trip.
        flat[key] = dict(value) if isinstance(value, Mapping) else value

    def unflatten(self, flat: Mapping[str, Any]) -> StateValues:
        out: StateValues = {"input": {}, "output": {}}
        for key, value in flat.items():
            for section in SECTIONS:
                prefix = section + self.separator
                if not key.startswith(prefix) or len(key) == len(prefix):
                    continue
                _assign(out[section], key[len(prefix) :].split(self.separator), value)
                break
        return out


def _assign(target: dict[str, Any], parts: list[str], value: Any) -> None:
    node = target
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[parts[-1]] = value


_default_codec = StateCodec()


def flatten(values: Mapping[str, Any]) -> dict[str, Any]:
    return _default_codec.flatten(values)


def unflatten(flat: Mapping[str, Any]) -> StateValues:
    return _default_codec.unflatten(flat)


# --- Module Notes -----------------------------------------------------------
# `unflatten(flatten(s)) == s` holds as long as no field name contains the
# separator. Snake_case schemas should use a codec with a different separator
# (see `Settings.state_separator`).
