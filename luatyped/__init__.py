"""
luatyped - typed access to the value stack of an embedded Lua runtime.

Exports:
- Session: owns one runtime state; runs chunks and reads globals
- ContainerHandle: a table kept on the session stack for nested reads
- ValueType / Kind: what to retrieve, and what a value turned out to be
"""

from luatyped.luatyped_datatypes import (
    LuaTypedError,
    RuntimeInitError,
    SessionClosedError,
    ScriptError,
    TypeMismatchError,
    StackIndexError,
    ValueType,
    Kind,
    ChunkResult,
)
from luatyped.luatyped_config import SessionOptions
from luatyped.luatyped_runtime import Session, ContainerHandle

__version__ = "0.1.0"

__all__ = [
    "Session",
    "ContainerHandle",
    "SessionOptions",
    "ValueType",
    "Kind",
    "ChunkResult",
    "LuaTypedError",
    "RuntimeInitError",
    "SessionClosedError",
    "ScriptError",
    "TypeMismatchError",
    "StackIndexError",
]
