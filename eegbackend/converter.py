"""Conversion between dataclass records and plain dictionaries."""

from __future__ import annotations

import inspect
import types
from collections.abc import Mapping
from dataclasses import MISSING, fields, is_dataclass
from typing import Any, Union, get_args, get_origin

_UNIONS = {Union, types.UnionType}
_LIST_NAMES = {"list", "List", "Sequence", "MutableSequence"}
_UNION_NAMES = {"Optional", "Union"}


def _to_plain(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return convert_struct_to_map(value)
    if isinstance(value, list):
        return [_to_plain(item) for item in value]
    return value


def convert_struct_to_map(obj: Any) -> dict[str, Any]:
    """Map each field name of a dataclass instance to its value, nested records included."""
    if not is_dataclass(obj) or isinstance(obj, type):
        raise TypeError(f"expected a dataclass instance, got {type(obj).__name__}")
    return {f.name: _to_plain(getattr(obj, f.name)) for f in fields(obj)}


def _split_top_level(text: str, separator: str) -> list[str]:
    """Split ``text`` on ``separator`` wherever it is not inside brackets."""
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    for char in text:
        if char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
        if char == separator and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    parts.append("".join(current))
    return [part.strip() for part in parts if part.strip()]


def _string_options(text: str, module: Any) -> list[tuple[str, Any]]:
    text = text.strip().strip("'\"")
    parts = _split_top_level(text, "|")
    if len(parts) > 1:
        return [option for part in parts for option in _string_options(part, module)]
    head, bracket, _ = text.partition("[")
    if bracket and text.endswith("]"):
        inner = text[len(head) + 1 : -1]
        name = head.strip().rpartition(".")[2]
        if name in _UNION_NAMES:
            return [
                option
                for part in _split_top_level(inner, ",")
                for option in _string_options(part, module)
            ]
        if name in _LIST_NAMES:
            return [("list", inner.strip())]
        return []
    name = text.rpartition(".")[2]
    target = getattr(module, name, None) if module is not None else None
    if isinstance(target, type) and is_dataclass(target):
        return [("record", target)]
    return []


def _options(hint: Any, module: Any) -> list[tuple[str, Any]]:
    """Describe the record and list shapes a field annotation allows."""
    if isinstance(hint, str):
        return _string_options(hint, module)
    if get_origin(hint) in _UNIONS:
        return [option for arg in get_args(hint) for option in _options(arg, module)]
    if get_origin(hint) is list:
        args = get_args(hint)
        return [("list", args[0] if args else Any)]
    if isinstance(hint, type) and is_dataclass(hint):
        return [("record", hint)]
    return []


def _coerce(hint: Any, value: Any, module: Any) -> Any:
    options = _options(hint, module)
    if isinstance(value, Mapping):
        for kind, target in options:
            if kind == "record":
                return convert_map_to_struct(value, target)
    elif isinstance(value, list):
        for kind, item_hint in options:
            if kind == "list":
                return [_coerce(item_hint, item, module) for item in value]
    return value


def _field_hint(field: Any) -> Any:
    """Prefer the record type produced by a field's default factory, else its annotation."""
    if field.default_factory is not MISSING:
        try:
            sample = field.default_factory()
        except TypeError:
            sample = None
        if is_dataclass(sample) and not isinstance(sample, type):
            return type(sample)
    return field.type


def convert_map_to_struct(mapping: Mapping[str, Any], cls: type) -> Any:
    """Build an instance of dataclass ``cls`` from a dictionary keyed by field name.

    Missing keys keep their defaults, unknown keys are ignored and nested
    dictionaries become nested records.
    """
    if not (isinstance(cls, type) and is_dataclass(cls)):
        raise TypeError(f"expected a dataclass type, got {cls!r}")
    if not isinstance(mapping, Mapping):
        raise TypeError(f"expected a mapping, got {type(mapping).__name__}")
    module = inspect.getmodule(cls)
    values = {
        f.name: _coerce(_field_hint(f), mapping[f.name], module)
        for f in fields(cls)
        if f.init and f.name in mapping
    }
    return cls(**values)