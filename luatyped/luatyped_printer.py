"""
A pretty-printer that renders retrieved values as Lua literal source.
"""
import collections.abc
import re

from luatyped.luatyped_datatypes import Kind

_IDENT = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_KEYWORDS = frozenset("""
    and break do else elseif end false for function goto if in local nil not
    or repeat return then true until while
""".split())
_ESCAPES = {
    "\\": "\\\\", '"': '\\"', "\n": "\\n", "\r": "\\r", "\t": "\\t", "\0": "\\0",
}


class Printer:
    """Formats plain Python data (as produced by snapshots) into Lua source."""

    def __init__(self, indent_width=2, width=72):
        self._indent_char = " " * indent_width
        self._width = width
        self._handlers = self._create_handlers()

    def pformat(self, obj, level=0):
        """Public entry point to format an object."""
        handler = self._get_handler(obj)
        return handler(obj, level)

    def _get_handler(self, obj):
        """Dispatcher to find the correct formatting method."""
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        if isinstance(obj, Kind): return self._pformat_kind
        if isinstance(obj, collections.abc.Mapping): return self._pformat_table
        if isinstance(obj, (list, tuple)): return self._pformat_sequence
        # Default to Python's repr for unknown types
        return lambda o, l: repr(o)

    def _create_handlers(self):
        return {
            str: self._pformat_str,
            bytes: self._pformat_bytes,
            int: self._pformat_int,
            float: self._pformat_float,
            bool: self._pformat_bool,
            type(None): self._pformat_nil,
            dict: self._pformat_table,
            list: self._pformat_sequence,
            tuple: self._pformat_sequence,
        }

    def _pformat_int(self, obj, level):
        return str(obj)

    def _pformat_float(self, obj, level):
        if obj != obj:
            return "(0/0)"
        if obj in (float("inf"), float("-inf")):
            return "math.huge" if obj > 0 else "-math.huge"
        return repr(obj)

    def _pformat_str(self, obj, level):
        return '"' + "".join(_ESCAPES.get(ch, ch) for ch in obj) + '"'

    def _pformat_bytes(self, obj, level):
        return self._pformat_str(obj.decode("utf-8", errors="replace"), level)

    def _pformat_bool(self, obj, level):
        return 'true' if obj else 'false'

    def _pformat_nil(self, obj, level):
        return 'nil'

    def _pformat_kind(self, obj, level):
        return obj.value

    def _pformat_key(self, key, level):
        if isinstance(key, str) and _IDENT.match(key) and key not in _KEYWORDS:
            return key
        return f"[{self.pformat(key, level)}]"

    def _pformat_sequence(self, obj, level):
        return self._pformat_block([self.pformat(v, level + 1) for v in obj], level)

    def _pformat_table(self, obj, level):
        entries = [
            f"{self._pformat_key(k, level)} = {self.pformat(v, level + 1)}"
            for k, v in obj.items()
        ]
        return self._pformat_block(entries, level)

    def _pformat_block(self, entries, level):
        if not entries:
            return "{}"
        flat = "{" + ", ".join(entries) + "}"
        if "\n" not in flat and len(flat) + len(self._indent_char) * level <= self._width:
            return flat
        outer_indent = self._indent_char * level
        inner_indent = self._indent_char * (level + 1)
        lines = [f"{inner_indent}{entry}," for entry in entries]
        return "{\n" + "\n".join(lines) + f"\n{outer_indent}}}"


__all__ = ["Printer"]
