"""Baggage propagation restricted to an explicit allow list of field names."""

from __future__ import annotations

from typing import Iterator, Optional


class Baggage:
    """Baggage fields limited to a registry of allowed, case-insensitive keys.

    The instance built from key names acts as the handler; ``new`` returns a
    fresh, empty container sharing the same registry.
    """

    def __init__(self, *args: str) -> None:
        self._registry: frozenset[str] = frozenset(key.lower() for key in args)
        self._fields: dict[str, list[str]] = {}

    @classmethod
    def _with_registry(cls, registry: frozenset[str]) -> "Baggage":
        fresh = cls()
        fresh._registry = registry
        return fresh

    def new(self) -> "Baggage":
        """Return an empty container for the same allowed keys."""
        return Baggage._with_registry(self._registry)

    def get(self, key: str) -> Optional[list[str]]:
        """Return the values stored under ``key``, or None."""
        values = self._fields.get(key.lower())
        return list(values) if values is not None else None

    def add(self, key: str, *args: str) -> bool:
        """Append values to ``key``; False if none given or key not allowed."""
        if not args:
            return False
        key = key.lower()
        if key not in self._registry:
            return False
        self._fields.setdefault(key, []).extend(args)
        return True

    def set(self, key: str, *args: str) -> bool:
        """Replace the values of ``key``; False if none given or key not allowed."""
        if not args:
            return False
        key = key.lower()
        if key not in self._registry:
            return False
        self._fields[key] = list(args)
        return True

    def delete(self, key: str) -> bool:
        """Remove ``key``; False if the key is not allowed."""
        key = key.lower()
        if key not in self._registry:
            return False
        self._fields.pop(key, None)
        return True

    def iterate(self) -> Iterator[tuple[str, list[str]]]:
        """Yield each stored key with a copy of its values."""
        for key, values in list(self._fields.items()):
            yield key, list(values)

    def keys(self) -> Iterator[str]:
        """Yield every allowed key."""
        yield from self._registry