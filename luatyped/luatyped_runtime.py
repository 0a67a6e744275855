# luatyped_runtime.py

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

import lupa

from luatyped.luatyped_config import SessionOptions
from luatyped.luatyped_datatypes import (
    ChunkResult, RuntimeInitError, SessionClosedError, StackIndexError, ValueType,
)
from luatyped.luatyped_dispatch import Where, fetch
from luatyped.luatyped_stack import LuaStack

logger = logging.getLogger(__name__)

TypeArg = Union[ValueType, str]

# ===================================================================
# 1. Container handles
# ===================================================================


@dataclass
class _Frame:
    """Bookkeeping for one table slot owned by a handle."""
    position: int
    serial: int
    released: bool = False


class ContainerHandle:
    """
    A table resident on the session stack.

    The table must already be on top of the stack when the handle is built;
    the handle records that position and owns the slot until it is released.
    A child handle keeps its parent alive, so garbage collection always
    releases children first.
    """

    def __init__(self, session: 'Session', position: int, parent: Optional['ContainerHandle'] = None):
        self._session = session
        self._parent = parent
        self._frame = session._open_frame(position)

    @property
    def session(self) -> 'Session':
        return self._session

    @property
    def parent(self) -> Optional['ContainerHandle']:
        return self._parent

    @property
    def position(self) -> int:
        return self._frame.position

    @property
    def released(self) -> bool:
        return self._frame.released

    def ensure_valid(self) -> None:
        """Raise StackIndexError unless this handle's slot is still on the stack."""
        if self._frame.released:
            raise StackIndexError("table handle was already released")
        stack = self._session.stack
        pos, top = self._frame.position, stack.top_index()
        if pos > top:
            raise StackIndexError(f"table position {pos} is above the stack top {top}")
        if stack.slot_serial(pos) != self._frame.serial:
            raise StackIndexError(f"stack slot {pos} no longer holds this table")

    def _fetch(self, where: Where, key: Any, value_type: TypeArg) -> Any:
        self.ensure_valid()
        return self._session._fetch(where, key, value_type, self._frame.position, parent=self)

    def get_field(self, name: str, value_type: TypeArg) -> Any:
        return self._fetch(Where.FIELD, name, value_type)

    def get_index(self, index: int, value_type: TypeArg) -> Any:
        return self._fetch(Where.INDEX, index, value_type)

    def length(self) -> int:
        """The table's length as the runtime's `#` operator reports it."""
        return self._fetch(Where.PROBE, self._session.stack.length_probe, ValueType.INTEGER)

    def __len__(self) -> int:
        return self.length()

    def __bool__(self) -> bool:
        return True

    def release(self) -> None:
        self._session._release_frame(self._frame)

    def __enter__(self) -> 'ContainerHandle':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def __del__(self):
        frame = getattr(self, "_frame", None)
        if frame is not None and not frame.released:
            self._session._release_frame(frame)

    def __repr__(self):
        state = "released" if self._frame.released else f"at {self._frame.position}"
        return f"<ContainerHandle {state}>"


# ===================================================================
# 2. Sessions
# ===================================================================


class Session:
    """Owns one runtime state and the value stack every handle reads through."""

    def __init__(self, options: Optional[SessionOptions] = None, **overrides: Any):
        self.options = (options or SessionOptions()).merged(**overrides)
        try:
            # Strings are exchanged as raw bytes; LuaStack does the text handling.
            self._lua = lupa.LuaRuntime(
                encoding=None,
                source_encoding=self.options.encoding,
                register_eval=False,
                register_builtins=False,
                max_memory=self.options.max_memory,
            )
            self._stack = LuaStack(self._lua, self.options.encoding)
            # Both are computed by running code that needs the standard library.
            self._lua_version = tuple(self._lua.lua_version)
            self._lua_implementation = self._stack.decode(self._lua.lua_implementation)
        except (MemoryError, lupa.LuaError) as e:
            raise RuntimeInitError(f"cannot create lua state: {e}") from e

        # A fresh state starts bare; the standard library is installed on request.
        g = self._lua.globals()
        self._library: Dict[bytes, Any] = dict(g.items())
        for name in self._library:
            g[name] = None
        # The Python bridge is not part of the standard library.
        self._library.pop(b"python", None)
        self._libs_loaded = False
        self._frames: Dict[int, _Frame] = {}
        logger.debug("opened %s session", self._lua_implementation)

        if self.options.load_libs:
            self.load_standard_library()

    @classmethod
    def open(cls, options: Optional[SessionOptions] = None, **overrides: Any) -> 'Session':
        return cls(options, **overrides)

    # --- Properties ---

    @property
    def stack(self) -> LuaStack:
        return self._stack

    @property
    def closed(self) -> bool:
        return self._lua is None

    @property
    def libs_loaded(self) -> bool:
        return self._libs_loaded

    @property
    def lua_version(self) -> Tuple[int, int]:
        self._require_open()
        return self._lua_version

    @property
    def lua_implementation(self) -> str:
        self._require_open()
        return self._lua_implementation

    def _require_open(self) -> 'lupa.LuaRuntime':
        if self._lua is None:
            raise SessionClosedError("session is closed")
        return self._lua

    # --- Lifecycle ---

    def load_standard_library(self) -> None:
        """Install the runtime's built-in libraries into the global table."""
        lua = self._require_open()
        if self._libs_loaded:
            return
        g = lua.globals()
        for name, value in self._library.items():
            g[name] = value
        self._libs_loaded = True
        logger.debug("standard library loaded (%d globals)", len(self._library))

    def close(self) -> None:
        if self._lua is None:
            return
        self._stack.clear()
        self._frames.clear()
        self._lua = None
        logger.debug("session closed")

    def __enter__(self) -> 'Session':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --- Script execution ---

    def run_chunk(self, source: str) -> ChunkResult:
        """Compile and run `source` at the top level; failures come back in the result."""
        lua = self._require_open()
        logger.debug("running chunk (%d chars)", len(source))
        try:
            lua.execute(source)
        except lupa.LuaError as e:
            message = str(self._stack.decode(e.args[0])) if e.args else ""
            message = message or e.__class__.__name__
            logger.info("chunk failed: %s", message)
            return ChunkResult(False, message)
        return ChunkResult(True, "")

    # --- Retrieval ---

    def get_global(self, name: str, value_type: TypeArg) -> Any:
        return self._fetch(Where.GLOBAL, name, value_type)

    def _fetch(self, where: Where, key: Any, value_type: TypeArg,
               container_pos: int = 0, parent: Optional[ContainerHandle] = None) -> Any:
        self._require_open()

        def make_handle(position: int) -> ContainerHandle:
            return ContainerHandle(self, position, parent)

        try:
            return fetch(self._stack, where, key, value_type, container_pos, make_handle)
        finally:
            self._collapse()

    # --- Frame table ---

    def _open_frame(self, position: int) -> _Frame:
        frame = _Frame(position, self._stack.slot_serial(position))
        self._frames[position] = frame
        logger.debug("table acquired at stack slot %d", position)
        return frame

    def _release_frame(self, frame: _Frame) -> None:
        if frame.released:
            return
        frame.released = True
        if self._lua is None:
            return
        stack = self._stack
        if frame.position > stack.top_index() or stack.slot_serial(frame.position) != frame.serial:
            logger.warning("table slot %d was already removed from the stack", frame.position)
            if self._frames.get(frame.position) is frame:
                del self._frames[frame.position]
            return
        self._collapse()

    def _collapse(self) -> None:
        """Pop released table slots off the top until a live slot is reached."""
        stack = self._stack
        while stack.top_index() > 0:
            top = stack.top_index()
            frame = self._frames.get(top)
            if frame is None or not frame.released or stack.slot_serial(top) != frame.serial:
                break
            stack.pop()
            del self._frames[top]
            logger.debug("released table slot %d", top)


__all__ = ["Session", "ContainerHandle"]
