"""
Onboarding Session State.

Holds the accumulated answers and the current step pointer for one wizard
session. Pure data: the store performs no I/O, it only tells its listeners
(the persistence coordinator) that something changed.
"""

import copy
import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping


@dataclass
class SessionRecord:
    """
    Snapshot of a wizard session.

    Only step_index and data are persisted (the "envelope"); the timestamp
    is bookkeeping for the current process.
    """
    step_index: int = 0
    data: dict[str, Any] = field(default_factory=dict)
    last_persisted_at: str | None = None

    def to_envelope(self) -> dict:
        """Serialize to the envelope written to each persistence channel."""
        return {"step_index": self.step_index, "data": self.data}

    @classmethod
    def from_envelope(cls, envelope: Any) -> "SessionRecord":
        """
        Deserialize an envelope.

        Raises ValueError if the envelope doesn't have the expected shape.
        """
        if not isinstance(envelope, dict):
            raise ValueError(f"Envelope must be an object, got {type(envelope).__name__}")
        step_index = envelope.get("step_index", 0)
        data = envelope.get("data", {})
        if isinstance(step_index, bool) or not isinstance(step_index, int):
            raise ValueError(f"Invalid step_index: {step_index!r}")
        if not isinstance(data, dict):
            raise ValueError("Envelope data must be an object")
        return cls(step_index=step_index, data=data)

    def to_json(self) -> str:
        return json.dumps(self.to_envelope())

    @classmethod
    def from_json(cls, json_str: str) -> "SessionRecord":
        """Parse a JSON envelope. Raises ValueError on bad JSON or shape."""
        return cls.from_envelope(json.loads(json_str))


Listener = Callable[[SessionRecord], None]


class SessionStore:
    """
    In-memory owner of a session's answers and step pointer.

    Every mutation notifies listeners synchronously with a fresh snapshot.
    """

    def __init__(self, record: SessionRecord | None = None):
        self._record = record if record is not None else SessionRecord()
        self._listeners: list[Listener] = []

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @property
    def data(self) -> Mapping[str, Any]:
        """Read-only view of the current answers."""
        return MappingProxyType(self._record.data)

    @property
    def step_index(self) -> int:
        return self._record.step_index

    def snapshot(self) -> SessionRecord:
        """Deep copy of the current record. No side effects."""
        return copy.deepcopy(self._record)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def update(self, partial: Mapping[str, Any]) -> None:
        """
        Shallow-merge answers into the session.

        Keys not mentioned in partial are never touched or removed.
        """
        self._record.data.update(copy.deepcopy(dict(partial)))
        self._notify()

    def set_step_index(self, index: int) -> None:
        self._record.step_index = index
        self._notify()

    def hydrate(self, record: SessionRecord) -> None:
        """Replace the record after a load. Does not notify (nothing new to save)."""
        self._record = copy.deepcopy(record)

    def mark_persisted(self, timestamp: str) -> None:
        self._record.last_persisted_at = timestamp

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a mutation listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)
