"""Immutable execution context threaded through node handlers."""

import copy
from typing import Any, Dict, Iterator, Mapping, Optional


class _Unset:
    """Marker for a path that does not resolve in the context."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET = _Unset()


class ExecutionContext(Mapping):
    """Read-only key/value mapping passed from node to node.

    Handlers never mutate a context; ``merge`` returns a new one. Branches
    receive a deep copy via ``branch`` so that sibling paths cannot observe
    each other's updates.
    """

    __slots__ = ("_data",)

    def __init__(self, data: Optional[Mapping[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(dict(data or {}))

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"ExecutionContext({self._data!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ExecutionContext):
            return self._data == other._data
        if isinstance(other, Mapping):
            return self._data == dict(other)
        return NotImplemented

    __hash__ = None

    def merge(self, updates: Optional[Mapping[str, Any]] = None, **kwargs) -> "ExecutionContext":
        """Return a new context with ``updates`` layered over this one."""
        merged = dict(self._data)
        if updates:
            merged.update(updates)
        merged.update(kwargs)
        return ExecutionContext(merged)

    def branch(self) -> "ExecutionContext":
        """Independent copy handed to one outgoing branch."""
        return ExecutionContext(self._data)

    def get_path(self, path: str) -> Any:
        """Resolve a dotted path such as ``user.address.city`` or ``items.0``.

        Returns ``UNSET`` when any segment is missing.
        """
        current: Any = self._data
        for segment in path.split("."):
            if isinstance(current, Mapping):
                if segment not in current:
                    return UNSET
                current = current[segment]
            elif isinstance(current, (list, tuple)):
                try:
                    current = current[int(segment)]
                except (ValueError, IndexError):
                    return UNSET
            else:
                return UNSET
        return current

    def to_dict(self) -> Dict[str, Any]:
        """Deep copy of the underlying data, safe to hand to callers."""
        return copy.deepcopy(self._data)
