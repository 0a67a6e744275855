"""
Positional access to a session's shared value stack.

`LuaStack` is the only place that touches runtime values directly. Every
other part of the package addresses values through stack positions, the
same way a host program drives the runtime's C API: push, inspect the top,
convert, pop. Positions are 1-based; negative indices count down from the
top (-1 is the top).

Runtime strings are byte strings. The runtime is opened without automatic
decoding, so they reach Python as `bytes`; `LuaStack` encodes `str` keys on
the way in and decodes text only when a caller asks for it.
"""
import itertools
import logging
from typing import Any, Callable, List, Optional, Tuple, Union

import lupa

from luatyped.luatyped_datatypes import Kind, StackIndexError

logger = logging.getLogger(__name__)

_LENGTH_PROBE_SOURCE = "function(t) return #t end"


def classify(value: Any) -> Kind:
    """Classify a single runtime value."""
    if value is None:
        return Kind.NIL
    # bool is a subclass of int, so check it before int
    if isinstance(value, bool):
        return Kind.BOOLEAN
    if isinstance(value, int):
        return Kind.INTEGER
    if isinstance(value, float):
        return Kind.FLOAT
    if isinstance(value, (str, bytes)):
        return Kind.STRING
    if lupa.lua_type(value) == 'table':
        return Kind.CONTAINER
    return Kind.OTHER


class _Slot:
    __slots__ = ("value", "serial")

    def __init__(self, value, serial):
        self.value = value
        self.serial = serial


class LuaStack:
    """A LIFO sequence of runtime values addressed by absolute position."""

    def __init__(self, lua: "lupa.LuaRuntime", encoding: str = "UTF-8"):
        self._lua = lua
        self.encoding = encoding
        self._globals = lua.globals()
        # Conversion primitives are captured before any chunk can rebind them.
        self._tostring = self._globals[b"tostring"]
        self._tonumber = self._globals[b"tonumber"]
        self.length_probe = lua.eval(_LENGTH_PROBE_SOURCE)
        self._slots: List[_Slot] = []
        self._serials = itertools.count(1)

    def __len__(self) -> int:
        return len(self._slots)

    def __repr__(self):
        return f"<LuaStack top={len(self._slots)}>"

    # --- Text ---

    def encode(self, key: Any) -> Any:
        """Turn a `str` key into the runtime's byte string; other keys pass through."""
        if isinstance(key, str):
            return key.encode(self.encoding)
        return key

    def decode(self, value: Any) -> Any:
        """Turn a runtime byte string into `str`; undecodable bytes are replaced."""
        if isinstance(value, (bytes, bytearray)):
            return bytes(value).decode(self.encoding, errors='replace')
        return value

    # --- Positions ---

    def top_index(self) -> int:
        return len(self._slots)

    def _resolve(self, index: int) -> int:
        top = len(self._slots)
        pos = top + 1 + index if index < 0 else index
        if pos < 1 or pos > top:
            raise StackIndexError(f"stack index {index} out of range (top is {top})")
        return pos

    def _value(self, index: int) -> Any:
        return self._slots[self._resolve(index) - 1].value

    def slot_serial(self, index: int) -> int:
        """The serial stamped on the slot when its value was pushed."""
        return self._slots[self._resolve(index) - 1].serial

    def _container_at(self, pos: int):
        top = len(self._slots)
        if pos > top:
            raise StackIndexError(f"container position {pos} is above the stack top {top}")
        value = self._value(pos)
        if lupa.lua_type(value) != 'table':
            raise StackIndexError(f"stack slot {pos} does not hold a table")
        return value

    # --- Push / pop ---

    def _push(self, value: Any) -> None:
        self._slots.append(_Slot(value, next(self._serials)))

    def push_global(self, name: Union[str, bytes]) -> None:
        self._push(self._globals[self.encode(name)])

    def push_field(self, container_pos: int, name: Union[str, bytes]) -> None:
        container = self._container_at(container_pos)
        self._push(container[self.encode(name)])

    def push_index(self, container_pos: int, key: int) -> None:
        if isinstance(key, bool) or not isinstance(key, int):
            raise TypeError(f"index keys must be integers, got {type(key).__name__}")
        container = self._container_at(container_pos)
        self._push(container[key])

    def push_probe(self, container_pos: int, probe: Callable[[Any], Any]) -> None:
        """Push the result of applying `probe` to the container at `container_pos`."""
        container = self._container_at(container_pos)
        self._push(probe(container))

    def pop(self) -> None:
        if not self._slots:
            raise StackIndexError("pop from an empty stack")
        self._slots.pop()

    def remove_at(self, pos: int) -> None:
        """Remove the value at `pos`; everything above shifts down by one."""
        del self._slots[self._resolve(pos) - 1]

    def clear(self) -> None:
        self._slots.clear()

    # --- Inspection ---

    def kind_at(self, index: int = -1) -> Kind:
        return classify(self._value(index))

    def kind_of_top(self) -> Kind:
        return self.kind_at(-1)

    def is_integer(self, index: int = -1) -> bool:
        return self.kind_at(index) is Kind.INTEGER

    def is_number(self, index: int = -1) -> bool:
        kind = self.kind_at(index)
        if kind in (Kind.INTEGER, Kind.FLOAT):
            return True
        return kind is Kind.STRING and self._tonumber(self._value(index)) is not None

    def is_string(self, index: int = -1) -> bool:
        return self.kind_at(index) in (Kind.STRING, Kind.INTEGER, Kind.FLOAT)

    def is_boolean(self, index: int = -1) -> bool:
        return self.kind_at(index) is Kind.BOOLEAN

    def is_table(self, index: int = -1) -> bool:
        return self.kind_at(index) is Kind.CONTAINER

    # --- Conversion ---
    # Each converter returns None when the value has no such representation,
    # so callers are expected to check with the matching predicate first.

    def to_integer(self, index: int = -1) -> Optional[int]:
        value = self._value(index)
        kind = classify(value)
        if kind is Kind.STRING:
            value = self._tonumber(value)
            kind = classify(value)
        if kind is Kind.INTEGER:
            return value
        if kind is Kind.FLOAT and value.is_integer():
            return int(value)
        return None

    def to_number(self, index: int = -1) -> Optional[float]:
        value = self._value(index)
        kind = classify(value)
        if kind is Kind.STRING:
            value = self._tonumber(value)
            kind = classify(value)
        if kind in (Kind.INTEGER, Kind.FLOAT):
            return float(value)
        return None

    def to_string(self, index: int = -1) -> Optional[str]:
        value = self._value(index)
        kind = classify(value)
        if kind is Kind.STRING:
            return self.decode(value)
        if kind in (Kind.INTEGER, Kind.FLOAT):
            return self.decode(self._tostring(value))
        return None

    def to_boolean(self, index: int = -1) -> bool:
        # Runtime truthiness: only nil and false are false.
        value = self._value(index)
        return value is not None and value is not False

    def items_at(self, pos: int) -> List[Tuple[Any, Any]]:
        """
        Raw key/value pairs of the table at `pos`, in the runtime's traversal
        order. String keys and values come back as `bytes`.
        """
        container = self._container_at(pos)
        return list(container.items())


__all__ = ["LuaStack", "classify"]
