"""
Typed retrieval: push a value, check its kind, convert it, pop it.

One generic operation, `fetch`, serves every retrieval in the package. It is
parameterized by *where* the key is resolved (`Where`) and by *what* the
caller expects (`ValueType`). Both are closed sets, so the behaviour for each
is looked up in a table instead of being spread over subclasses.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from luatyped.luatyped_datatypes import ValueType, TypeMismatchError
from luatyped.luatyped_stack import LuaStack


class Where(Enum):
    """Where a retrieval key is resolved."""
    GLOBAL = "global"
    FIELD = "field"
    INDEX = "index"
    PROBE = "probe"


def _push_global(stack: LuaStack, key, container_pos: int) -> None:
    stack.push_global(key)

def _push_field(stack: LuaStack, key, container_pos: int) -> None:
    stack.push_field(container_pos, key)

def _push_index(stack: LuaStack, key, container_pos: int) -> None:
    stack.push_index(container_pos, key)

def _push_probe(stack: LuaStack, key, container_pos: int) -> None:
    stack.push_probe(container_pos, key)


_PUSHERS: Dict[Where, Callable[[LuaStack, Any, int], None]] = {
    Where.GLOBAL: _push_global,
    Where.FIELD: _push_field,
    Where.INDEX: _push_index,
    Where.PROBE: _push_probe,
}


def describe_key(where: Where, key: Any) -> str:
    """Human-readable key text used in mismatch messages."""
    if where is Where.INDEX:
        return str(int(key))
    if where is Where.PROBE:
        # Probes are not name-addressable; every probe renders the same way.
        return "function()"
    if isinstance(key, bytes):
        return key.decode('utf-8', errors='replace')
    return str(key)


@dataclass(frozen=True)
class Conversion:
    """How one value type is validated and converted from the stack top."""
    check: Callable[[LuaStack], bool]
    convert: Optional[Callable[[LuaStack], Any]]
    expected: str


CONVERSIONS: Dict[ValueType, Conversion] = {
    ValueType.INTEGER: Conversion(
        lambda s: s.is_integer(), lambda s: s.to_integer(), "integer"),
    ValueType.NUMBER: Conversion(
        lambda s: s.is_number(), lambda s: s.to_number(),
        "number or string convertible to number"),
    ValueType.STRING: Conversion(
        lambda s: s.is_string(), lambda s: s.to_string(), "string or number"),
    ValueType.BOOLEAN: Conversion(
        lambda s: s.is_boolean(), lambda s: s.to_boolean(), "boolean"),
    ValueType.KIND: Conversion(
        lambda s: True, lambda s: s.kind_of_top(), "kind"),
    # Containers are never converted; they stay on the stack behind a handle.
    ValueType.CONTAINER: Conversion(
        lambda s: s.is_table(), None, "table"),
}


def fetch(stack: LuaStack,
          where: Where,
          key: Any,
          value_type: ValueType,
          container_pos: int = 0,
          make_handle: Optional[Callable[[int], Any]] = None) -> Any:
    """
    Resolve `key`, validate the pushed value against `value_type` and return it.

    Scalar retrievals leave the stack exactly as they found it, on success and
    on failure. A CONTAINER retrieval leaves the value pushed and returns
    ``make_handle(position)``; the handle owns the new slot from then on.
    `container_pos` is ignored for `Where.GLOBAL`.
    """
    value_type = ValueType(value_type)
    conversion = CONVERSIONS[value_type]
    _PUSHERS[where](stack, key, container_pos)

    try:
        matches = conversion.check(stack)
    except Exception:
        stack.pop()
        raise
    if not matches:
        stack.pop()
        raise TypeMismatchError(describe_key(where, key), conversion.expected)

    if value_type is ValueType.CONTAINER:
        position = stack.top_index()
        if make_handle is None:
            stack.pop()
            raise ValueError("container retrieval requires a handle factory")
        try:
            return make_handle(position)
        except Exception:
            stack.pop()
            raise

    try:
        return conversion.convert(stack)
    finally:
        stack.pop()


__all__ = ["Where", "Conversion", "CONVERSIONS", "describe_key", "fetch"]
