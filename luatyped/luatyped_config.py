from __future__ import annotations

import codecs
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from luatyped.luatyped_serialize import DEFAULT_MAX_DEPTH, deserialize


@dataclass(frozen=True)
class SessionOptions:
    """Settings used when a session creates its runtime."""
    encoding: str = "UTF-8"
    max_memory: Optional[int] = None
    load_libs: bool = False
    max_snapshot_depth: int = DEFAULT_MAX_DEPTH

    def __post_init__(self):
        # Names are encoded and strings decoded with it, so it must be a real codec.
        if not isinstance(self.encoding, str):
            raise ValueError(f"encoding must be a codec name, got {self.encoding!r}")
        try:
            codecs.lookup(self.encoding)
        except LookupError:
            raise ValueError(f"unknown encoding: {self.encoding!r}") from None

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "SessionOptions":
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"unknown session option(s): {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def load(cls, path: str | Path) -> "SessionOptions":
        """Read options from a YAML or JSON file."""
        try:
            data = deserialize(Path(path).read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ValueError(f"{path}: {e}") from e
        if data is not None and not isinstance(data, Mapping):
            raise ValueError(f"{path}: session options must be a mapping")
        return cls.from_mapping(data)

    def merged(self, **overrides: Any) -> "SessionOptions":
        unknown = sorted(set(overrides) - {f.name for f in fields(self)})
        if unknown:
            raise ValueError(f"unknown session option(s): {', '.join(unknown)}")
        return replace(self, **overrides)


__all__ = ["SessionOptions"]
