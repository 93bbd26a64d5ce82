# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/config/values.py

from __future__ import annotations

import copy
import re
from typing import Any, Dict, Iterable, List

from besu_stack.errors import ConfigurationError

_INDEXED = re.compile(r"^(?P<key>[^\[\]]*)\[(?P<idx>\d+)\]$")
_INT = re.compile(r"^-?[1-9][0-9]*$|^0$")


def deep_merge(a: dict, b: dict) -> dict:
    out = dict(a)
    for k, v in b.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = deep_merge(out[k], v)
        else:
            out[k] = copy.deepcopy(v)
    return out


def merge_all(layers: Iterable[dict]) -> dict:
    """Merge value layers in order; later layers win on conflicting keys."""
    merged: dict = {}
    for layer in layers:
        merged = deep_merge(merged, layer or {})
    return merged


# ---------------------------------------------------------------------
# --set parsing (helm strvals subset)
# ---------------------------------------------------------------------
def _split_unescaped(text: str, sep: str, *, respect_braces: bool = False) -> List[str]:
    parts: List[str] = []
    buf: List[str] = []
    depth = 0
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "\\" and i + 1 < len(text):
            buf.append(text[i : i + 2])
            i += 2
            continue
        if respect_braces and ch == "{":
            depth += 1
        elif respect_braces and ch == "}":
            depth -= 1
        if ch == sep and depth == 0:
            parts.append("".join(buf))
            buf = []
        else:
            buf.append(ch)
        i += 1
    parts.append("".join(buf))
    return parts


def _unescape(text: str) -> str:
    return re.sub(r"\\(.)", r"\1", text)


def parse_set_value(raw: str) -> Any:
    """
    Coerce a --set scalar the way helm does:
    true/false -> bool, null -> None, integers without leading zeros -> int,
    {a,b} -> list, anything else stays a string.
    """
    if raw.startswith("{") and raw.endswith("}"):
        inner = raw[1:-1]
        if not inner:
            return []
        return [parse_set_value(x) for x in _split_unescaped(inner, ",", respect_braces=True)]

    if raw in ("true", "false"):
        return raw == "true"
    if raw == "null":
        return None
    if _INT.match(raw):
        return int(raw)
    return _unescape(raw)


def _path_segments(path: str) -> List[Any]:
    segments: List[Any] = []
    for part in _split_unescaped(path, "."):
        m = _INDEXED.match(part)
        if m:
            if m.group("key"):
                segments.append(_unescape(m.group("key")))
            segments.append(int(m.group("idx")))
        else:
            if not part:
                raise ConfigurationError(f"Empty key segment in --set path '{path}'")
            segments.append(_unescape(part))
    return segments


def _assign(target: Any, segments: List[Any], value: Any) -> Any:
    head, rest = segments[0], segments[1:]

    if isinstance(head, int):
        if target is None:
            target = []
        if not isinstance(target, list):
            raise ConfigurationError(f"Cannot index non-list value with [{head}]")
        while len(target) <= head:
            target.append(None)
        target[head] = value if not rest else _assign(target[head], rest, value)
        return target

    if target is None:
        target = {}
    if not isinstance(target, dict):
        raise ConfigurationError(f"Cannot set key '{head}' on a non-mapping value")
    target[head] = value if not rest else _assign(target.get(head), rest, value)
    return target


def apply_set(values: Dict[str, Any], expression: str) -> Dict[str, Any]:
    """
    Apply one --set expression (``a.b=1``, ``a[0].c=x``, ``a=1,b=2``) to a copy
    of *values* and return it.
    """
    out = copy.deepcopy(values)
    for assignment in _split_unescaped(expression, ",", respect_braces=True):
        if not assignment.strip():
            continue
        key, sep, raw = assignment.partition("=")
        if not sep or not key.strip():
            raise ConfigurationError(f"Invalid --set expression '{assignment}' (expected key=value)")
        out = _assign(out, _path_segments(key.strip()), parse_set_value(raw))
    return out


def apply_sets(values: Dict[str, Any], expressions: Iterable[str]) -> Dict[str, Any]:
    for expr in expressions:
        values = apply_set(values, expr)
    return values
