from __future__ import annotations

import json
import logging
from typing import Any, Optional, TYPE_CHECKING

import yaml

from luatyped.luatyped_datatypes import Kind
from luatyped.luatyped_stack import LuaStack, classify

if TYPE_CHECKING:
    from luatyped.luatyped_runtime import ContainerHandle

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 64


# --------------------------
# Helpers
# --------------------------

def _norm_text(data: bytes | bytearray | str, *, encoding: Optional[str] = None) -> str:
    if isinstance(data, (bytes, bytearray)):
        enc = encoding or 'utf-8'
        try:
            return data.decode(enc, errors='replace')
        except LookupError:
            return data.decode('utf-8', errors='replace')
    if isinstance(data, str):
        return data
    return str(data)


def _as_sequence(table: dict) -> Optional[list]:
    n = len(table)
    if n == 0:
        return None
    if all(isinstance(k, int) and not isinstance(k, bool) for k in table):
        if set(table) == set(range(1, n + 1)):
            return [table[i] for i in range(1, n + 1)]
    return None


def _snapshot_at(stack: LuaStack, pos: int, depth: int) -> Any:
    out: dict = {}
    for raw_key, value in stack.items_at(pos):
        if isinstance(raw_key, bool) or not isinstance(raw_key, (int, str, bytes)):
            logger.debug("snapshot skips a %s key at stack slot %d", classify(raw_key).value, pos)
            continue
        key = stack.decode(raw_key)
        kind = classify(value)
        if kind is Kind.CONTAINER:
            if depth <= 0:
                raise ValueError("table nesting is too deep to snapshot (or the table is cyclic)")
            # the raw key, since undecodable bytes do not survive a round trip
            push = stack.push_index if isinstance(raw_key, int) else stack.push_field
            push(pos, raw_key)
            try:
                out[key] = _snapshot_at(stack, stack.top_index(), depth - 1)
            finally:
                stack.pop()
        elif kind is Kind.OTHER:
            out[key] = None
        else:
            out[key] = stack.decode(value)
    seq = _as_sequence(out)
    return seq if seq is not None else out


def detect_format(data_hint: Optional[str] = None) -> Optional[str]:
    """
    Returns 'json' or 'yaml' from simple data sniffing, or None for empty input.
    """
    if data_hint is None:
        return None
    s = data_hint.lstrip()
    if not s:
        return None
    if s.startswith('{') or s.startswith('['):
        # Try JSON first; if it fails, YAML is a superset
        return 'json'
    return 'yaml'


# --------------------------
# Public API
# --------------------------

def snapshot(handle: "ContainerHandle", max_depth: Optional[int] = None) -> Any:
    """
    Copy the table behind `handle` into plain Python data.

    Tables keyed exactly by 1..n become lists, every other table a dict.
    Functions, userdata and threads become None; keys that are neither
    strings nor integers are skipped. The stack is left as it was found.
    """
    handle.ensure_valid()
    stack = handle.session.stack
    if max_depth is None:
        max_depth = handle.session.options.max_snapshot_depth
    return _snapshot_at(stack, handle.position, max_depth)


def deserialize(data: bytes | bytearray | str,
                *,
                fmt: Optional[str] = None) -> Any:
    """
    Convert JSON or YAML text to native Python structures.
    If fmt is None, the format is sniffed from the data.
    """
    text = _norm_text(data)
    f = (fmt or detect_format(text) or 'yaml').lower()
    if f == 'json':
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            # Fallback to YAML if declared JSON but content is actually YAML-like
            return yaml.safe_load(text)
    if f == 'yaml':
        return yaml.safe_load(text)
    raise ValueError(f"Unsupported serialization format: {fmt!r}")


def serialize(value: Any, *, fmt: str, pretty: bool = True) -> str:
    """
    Convert a native Python value into a textual representation.
    - fmt: 'json' | 'yaml'
    """
    f = (fmt or '').lower()
    if f == 'json':
        return json.dumps(value, ensure_ascii=False, indent=2 if pretty else None)
    if f == 'yaml':
        return yaml.safe_dump(value, sort_keys=False, default_flow_style=not pretty)
    raise ValueError(f"Unsupported serialization format: {fmt!r}")


def dump(handle: "ContainerHandle", fmt: str = 'json', *, pretty: bool = True) -> str:
    """Serialize the snapshot of the table behind `handle`."""
    return serialize(snapshot(handle), fmt=fmt, pretty=pretty)


__all__ = [
    "snapshot",
    "deserialize",
    "serialize",
    "detect_format",
    "dump",
    "DEFAULT_MAX_DEPTH",
]
