"""Per-call identity bookkeeping for writing and reading object graphs."""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Final

logger = logging.getLogger(__name__)


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Final = _Missing()


@dataclass(frozen=True, slots=True)
class Tracked:
    """Result of tracking an object on the write path."""

    new: bool
    id: int


class IdentityRegistry:
    """Maps object identity to document ids and back.

    One registry lives for exactly one write or read call. On the write path
    objects are keyed by ``id(obj)``; the registry keeps each tracked object
    alive so an ``id()`` value is never reused during the call. On the read
    path ids map to materialized instances.

    Example:
        registry = IdentityRegistry()
        registry.track(obj)  # Tracked(new=True, id=1)
        registry.track(obj)  # Tracked(new=False, id=1)

    """

    def __init__(self, *, intern_limit: int = 0) -> None:
        self._ids: dict[int, int] = {}
        self._keep: list[Any] = []
        self._counts: dict[int, int] = {}
        self._instances: dict[int, Any] = {}
        self._canonical: dict[str, str] = {}
        self._intern_limit = intern_limit
        self._next_id = 1

    # -------------------------------------------------------------------------
    # Write path
    # -------------------------------------------------------------------------

    def track(self, obj: Any) -> Tracked:
        """Record a visit to a referenceable object."""
        key = id(obj)
        existing = self._ids.get(key)
        if existing is not None:
            return Tracked(new=False, id=existing)
        assigned = self._next_id
        self._next_id += 1
        self._ids[key] = assigned
        self._keep.append(obj)
        return Tracked(new=True, id=assigned)

    def id_of(self, obj: Any) -> int | None:
        """Id assigned to an object, if it has been tracked."""
        return self._ids.get(id(obj))

    def trace(
        self,
        root: Any,
        children: Callable[[Any], Iterable[Any]],
        referenceable: Callable[[Any], bool],
    ) -> None:
        """Count the edges reaching each referenceable object.

        ``children`` yields the direct children of a value. Traversal is
        iterative so long chains do not exhaust the stack during this pass.
        """
        pending = [root]
        while pending:
            value = pending.pop()
            if not referenceable(value):
                pending.extend(children(value))
                continue
            key = id(value)
            seen = self._counts.get(key, 0)
            self._counts[key] = seen + 1
            if seen:
                continue
            self._keep.append(value)
            pending.extend(children(value))
        shared = sum(1 for count in self._counts.values() if count > 1)
        logger.debug("Traced %d objects, %d shared", len(self._counts), shared)

    def is_shared(self, obj: Any) -> bool:
        """Whether more than one edge reaches the object (after :meth:`trace`)."""
        return self._counts.get(id(obj), 0) > 1

    # -------------------------------------------------------------------------
    # Read path
    # -------------------------------------------------------------------------

    def register(self, ref_id: int, instance: Any) -> None:
        """Bind a document id to its materialized instance.

        Raises:
            ValueError: If the id is already bound

        """
        if ref_id in self._instances:
            msg = f"Id {ref_id} is already registered"
            raise ValueError(msg)
        self._instances[ref_id] = instance

    def resolve(self, ref_id: int) -> Any:
        """Instance bound to an id, or ``MISSING``."""
        return self._instances.get(ref_id, MISSING)

    def __contains__(self, ref_id: object) -> bool:
        return ref_id in self._instances

    def ids(self) -> tuple[int, ...]:
        return tuple(sorted(self._instances))

    def canonical(self, value: Any) -> Any:
        """Return one shared instance per equal short string."""
        if not isinstance(value, str) or len(value) > self._intern_limit:
            return value
        return self._canonical.setdefault(value, sys.intern(value))
