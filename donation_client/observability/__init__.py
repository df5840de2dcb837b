"""
Observability & Audit Layer

RESPONSIBILITY: Record what the client did, for inspection and debugging
OUTPUTS: AuditEntry records, stdlib log lines

WHAT THIS LAYER MUST NOT DO:
============================
- Modify client behaviour
- Filter or interpret events (only record them)
- Block other layers

Every recorded entry is also forwarded to the stdlib logger of
the layer that produced it.
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Deque, Dict, List, Optional, Tuple
from enum import Enum
import logging


class AuditEventType(Enum):
    REQUEST = "request"
    STORE = "store"
    INTERACTION = "interaction"
    FEED = "feed"
    SESSION = "session"


@dataclass(frozen=True)
class AuditEntry:
    """One immutable audit record."""
    sequence: int
    event_type: AuditEventType
    layer: str
    action: str
    timestamp: datetime
    entity_id: Optional[str] = None
    outcome: str = "success"
    metadata: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)


class AuditLog:
    """
    Append-only audit collector shared by all layers.

    Entries are never modified or removed except by clear(), which
    is part of session teardown.
    """

    def __init__(self, max_entries: int = 10_000):
        self._entries: Deque[AuditEntry] = deque(maxlen=max_entries)
        self._sequence: int = 0

    def record(
        self,
        event_type: AuditEventType,
        layer: str,
        action: str,
        entity_id: Optional[object] = None,
        outcome: str = "success",
        **metadata: object
    ) -> AuditEntry:
        self._sequence += 1
        entry = AuditEntry(
            sequence=self._sequence,
            event_type=event_type,
            layer=layer,
            action=action,
            timestamp=datetime.now(timezone.utc),
            entity_id=None if entity_id is None else str(entity_id),
            outcome=outcome,
            metadata=tuple(sorted((k, str(v)) for k, v in metadata.items()))
        )
        self._entries.append(entry)

        level = logging.DEBUG if outcome == "success" else logging.WARNING
        logging.getLogger(f"donation_client.{layer}").log(
            level, "%s %s entity=%s outcome=%s %s",
            event_type.value, action, entry.entity_id, outcome,
            dict(entry.metadata)
        )
        return entry

    def entries(
        self,
        event_type: Optional[AuditEventType] = None,
        layer: Optional[str] = None
    ) -> List[AuditEntry]:
        """Get entries, optionally filtered."""
        result = self._entries
        if event_type:
            result = [e for e in result if e.event_type == event_type]
        if layer:
            result = [e for e in result if e.layer == layer]
        return list(result)

    def summary(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for entry in self._entries:
            key = f"{entry.layer}.{entry.action}.{entry.outcome}"
            counts[key] = counts.get(key, 0) + 1
        return counts

    def clear(self):
        self._entries.clear()

    @property
    def entry_count(self) -> int:
        return len(self._entries)


def configure_logging(level: int = logging.INFO) -> None:
    """Install a basic console handler for the client's loggers."""
    logger = logging.getLogger("donation_client")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s"
        ))
        logger.addHandler(handler)
    logger.setLevel(level)


__all__ = ['AuditEventType', 'AuditEntry', 'AuditLog', 'configure_logging']
