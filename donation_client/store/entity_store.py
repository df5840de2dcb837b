"""
Local Entity Store

Insertion-ordered, id-keyed cache of the last-known entities of one
resource type.

INVARIANTS:
===========
1. At most one entry per id
2. upsert() is idempotent and keeps an existing entry's position
3. replace_all() leaves no stale entries behind
4. A write tagged with a request sequence older than the last applied
   sequence for that id is rejected (last request wins)
5. A removal is not undone by a refresh issued before it

All mutators are synchronous; under a single event loop each one runs
to completion between awaits, so writes to one id never interleave.
"""

from __future__ import annotations
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Tuple, TypeVar
import itertools
import logging

from ..observability import AuditLog, AuditEventType


logger = logging.getLogger(__name__)

E = TypeVar('E')

Listener = Callable[[str, Tuple[Any, ...]], None]

# Process-wide so sequences from different stores are still comparable.
_sequence_counter = itertools.count(1)


def next_sequence() -> int:
    """Issue a monotonically increasing request sequence number."""
    return next(_sequence_counter)


class EntityStore(Generic[E]):
    """
    Cache for one resource type.

    Entities must expose an `id` attribute. Listeners are called with
    (action, affected ids) after every change that altered state.
    """

    def __init__(self, name: str, audit: Optional[AuditLog] = None):
        self._name = name
        self._entities: Dict[Any, E] = {}
        self._sequences: Dict[Any, int] = {}
        self._listeners: List[Listener] = []
        self._audit = audit or AuditLog()

    @property
    def name(self) -> str:
        return self._name

    # =========================================================================
    # READS
    # =========================================================================

    def get_all(self) -> Tuple[E, ...]:
        return tuple(self._entities.values())

    def get_by_id(self, entity_id: Any) -> Optional[E]:
        return self._entities.get(entity_id)

    def ids(self) -> Tuple[Any, ...]:
        return tuple(self._entities.keys())

    def __contains__(self, entity_id: Any) -> bool:
        return entity_id in self._entities

    def __len__(self) -> int:
        return len(self._entities)

    def last_sequence(self, entity_id: Any) -> int:
        return self._sequences.get(entity_id, 0)

    next_sequence = staticmethod(next_sequence)

    # =========================================================================
    # WRITES
    # =========================================================================

    def upsert(self, entity: E, sequence: Optional[int] = None) -> bool:
        """
        Insert or update by id.

        Returns False when the write was rejected as stale. An identical
        entity is accepted without notifying listeners.
        """
        entity_id = getattr(entity, "id")
        if not self._accept(entity_id, sequence, "upsert"):
            return False
        previous = self._entities.get(entity_id)
        self._entities[entity_id] = entity
        if previous != entity:
            self._notify("upsert", (entity_id,))
        return True

    def upsert_many(self, entities: Iterable[E], sequence: Optional[int] = None) -> List[Any]:
        """Upsert in order; returns ids that were not present before."""
        added = []
        changed = []
        for entity in entities:
            entity_id = getattr(entity, "id")
            if not self._accept(entity_id, sequence, "upsert"):
                continue
            previous = self._entities.get(entity_id)
            if entity_id not in self._entities:
                added.append(entity_id)
            self._entities[entity_id] = entity
            if previous != entity:
                changed.append(entity_id)
        if changed:
            self._notify("upsert", tuple(changed))
        return added

    def insert_at_head(self, entity: E, sequence: Optional[int] = None) -> bool:
        """
        Insert before every other entry.

        Skipped (returns False) when the id is already present.
        """
        entity_id = getattr(entity, "id")
        if entity_id in self._entities:
            return False
        if not self._accept(entity_id, sequence, "insert_at_head"):
            return False
        self._entities = {entity_id: entity, **self._entities}
        self._notify("insert", (entity_id,))
        return True

    def swap(self, old_id: Any, entity: E, sequence: Optional[int] = None) -> bool:
        """
        Replace the entry `old_id` with `entity` at the same position.

        If old_id is absent the entity is upserted at the end.
        """
        new_id = getattr(entity, "id")
        if old_id not in self._entities:
            return self.upsert(entity, sequence)
        if not self._accept(new_id, sequence, "swap"):
            return False
        rebuilt: Dict[Any, E] = {}
        for key, value in self._entities.items():
            if key == old_id:
                rebuilt[new_id] = entity
            elif key != new_id:
                rebuilt[key] = value
        self._entities = rebuilt
        self._sequences.pop(old_id, None)
        self._notify("swap", (old_id, new_id))
        return True

    def remove(self, entity_id: Any, sequence: Optional[int] = None) -> bool:
        """Remove by id. Returns False if absent or stale."""
        if entity_id not in self._entities:
            return False
        if not self._accept(entity_id, sequence, "remove"):
            return False
        del self._entities[entity_id]
        self._notify("remove", (entity_id,))
        return True

    def replace_all(self, entities: Iterable[E], sequence: Optional[int] = None):
        """
        Replace the whole collection (full list refresh).

        Entries not in `entities` are discarded. Entries whose id saw a
        newer write than `sequence` keep that newer value; an id removed
        by a newer write stays removed.
        """
        rebuilt: Dict[Any, E] = {}
        tombstones = set()
        for entity in entities:
            entity_id = getattr(entity, "id")
            if entity_id in rebuilt or entity_id in tombstones:
                continue
            if sequence is not None and self._sequences.get(entity_id, 0) > sequence:
                if entity_id in self._entities:
                    rebuilt[entity_id] = self._entities[entity_id]
                else:
                    tombstones.add(entity_id)
                    self._audit.record(
                        AuditEventType.STORE, "store", "replace_all", entity_id,
                        outcome="stale", store=self._name, sequence=sequence,
                        last=self._sequences[entity_id]
                    )
                continue
            rebuilt[entity_id] = entity
            if sequence is not None:
                self._sequences[entity_id] = sequence
        for stale_id in set(self._sequences) - set(rebuilt):
            # Removals newer than this refresh must keep fencing older writes.
            if sequence is not None and stale_id not in self._entities \
                    and self._sequences[stale_id] > sequence:
                continue
            del self._sequences[stale_id]
        self._entities = rebuilt
        self._notify("replace_all", tuple(rebuilt.keys()))

    def clear(self):
        """Teardown: drop all entities and sequence history."""
        logger.debug("Clearing store %s (%d entities)", self._name, len(self._entities))
        self._entities.clear()
        self._sequences.clear()
        self._notify("clear", ())

    # =========================================================================
    # SUBSCRIPTIONS
    # =========================================================================

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _accept(self, entity_id: Any, sequence: Optional[int], action: str) -> bool:
        if sequence is None:
            return True
        last = self._sequences.get(entity_id, 0)
        if sequence < last:
            self._audit.record(
                AuditEventType.STORE, "store", action, entity_id,
                outcome="stale", store=self._name, sequence=sequence, last=last
            )
            return False
        self._sequences[entity_id] = sequence
        return True

    def _notify(self, action: str, ids: Tuple[Any, ...]):
        for listener in list(self._listeners):
            listener(action, ids)
