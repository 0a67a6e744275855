"""
Defines the core data types shared by the typed access layer.

This module provides the retrievable value categories, the runtime value
classification, the exception hierarchy and the structured result of a
chunk run.
"""

from enum import Enum
from typing import NamedTuple

# =================================================================
# Exceptions
# =================================================================

class LuaTypedError(Exception):
    """Base class for every error raised by the access layer."""


class RuntimeInitError(LuaTypedError, RuntimeError):
    """The runtime context could not be created."""


class SessionClosedError(LuaTypedError):
    """An operation was attempted on a session that was already closed."""


class ScriptError(LuaTypedError):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class TypeMismatchError(LuaTypedError, TypeError):
    """A retrieved value does not satisfy the requested value type."""
    def __init__(self, key: str, expected: str):
        super().__init__(f"variable {key} is not {expected}")
        self.key = key
        self.expected = expected


class StackIndexError(LuaTypedError, IndexError):
    """A stack position is no longer valid for the operation attempted."""


# =================================================================
# Type tags
# =================================================================

class ValueType(Enum):
    """The closed set of value categories a caller can ask for."""
    INTEGER = "integer"
    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"
    KIND = "kind"
    CONTAINER = "table"

    @property
    def is_scalar(self) -> bool:
        return self is not ValueType.CONTAINER


class Kind(Enum):
    """Classification of a single runtime value."""
    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"
    BOOLEAN = "boolean"
    CONTAINER = "table"
    NIL = "nil"
    OTHER = "other"


# =================================================================
# Chunk results
# =================================================================

class ChunkResult(NamedTuple):
    """Outcome of running a source chunk; unpacks as ``(ok, message)``."""
    ok: bool
    message: str = ""

    def raise_for_error(self) -> None:
        if not self.ok:
            raise ScriptError(self.message)


__all__ = [
    "LuaTypedError",
    "RuntimeInitError",
    "SessionClosedError",
    "ScriptError",
    "TypeMismatchError",
    "StackIndexError",
    "ValueType",
    "Kind",
    "ChunkResult",
]
