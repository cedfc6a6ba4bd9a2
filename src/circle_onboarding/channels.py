"""
Persistence and lookup channels.

The wizard engine only talks to these protocols. Concrete implementations:

- MemoryCache / FileCache: the fast channel (local, synchronous)
- SupabaseProgressStore: the durable channel (onboarding_progress table)
- SupabaseEquipmentLookup: equipment name → catalog id resolution
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from supabase import Client

logger = logging.getLogger(__name__)


@dataclass
class RemoteProgressRecord:
    """What the durable channel knows about a user's onboarding."""
    step_index: int = 0
    data: dict[str, Any] = field(default_factory=dict)
    completed: bool = False


# =============================================================================
# Protocols
# =============================================================================

class LocalCache(Protocol):
    """Synchronous key/value slot scoped to one user on one device."""

    def get(self) -> str | None: ...

    def set(self, value: str) -> None: ...

    def clear(self) -> None: ...


class RemoteProgress(Protocol):
    """Durable, server-backed progress store."""

    async def read(self) -> RemoteProgressRecord | None: ...

    async def write(self, step_index: int, data: dict) -> None: ...

    async def complete(self, payload: dict) -> None: ...


class EquipmentLookup(Protocol):
    """Resolves equipment names to catalog ids. Unknown names are omitted."""

    async def lookup_ids(self, names: list[str]) -> dict[str, str]: ...


# =============================================================================
# Fast Channel
# =============================================================================

class MemoryCache:
    """Process-local cache slot. Used in tests and for anonymous sessions."""

    def __init__(self, value: str | None = None):
        self._value = value

    def get(self) -> str | None:
        return self._value

    def set(self, value: str) -> None:
        self._value = value

    def clear(self) -> None:
        self._value = None


class FileCache:
    """
    One JSON file per user under the cache directory.

    The file holds the raw envelope text; parsing is the coordinator's job so
    it can tell a missing cache from a corrupt one.
    """

    def __init__(self, user_id: str, directory: str | Path):
        self.path = Path(directory) / f"{user_id}.json"

    def get(self) -> str | None:
        if not self.path.exists():
            return None
        return self.path.read_text(encoding="utf-8")

    def set(self, value: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Write-then-rename so a crash mid-write never leaves half an envelope
        tmp_path = self.path.with_suffix(".tmp")
        tmp_path.write_text(value, encoding="utf-8")
        tmp_path.replace(self.path)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


# =============================================================================
# Durable Channel (Supabase)
# =============================================================================

def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SupabaseProgressStore:
    """
    Durable channel backed by the onboarding_progress table.

    One row per user (upsert on user_id). A non-null completed_at marks the
    whole flow as finished.
    """

    def __init__(self, user_id: str, client: Client | None = None, table: str | None = None):
        from .config import settings

        self.user_id = user_id
        self._client = client
        self.table = table or settings.progress_table

    @property
    def client(self) -> Client:
        if self._client is None:
            from .db import get_service_client
            self._client = get_service_client()
        return self._client

    async def read(self) -> RemoteProgressRecord | None:
        result = (
            self.client.table(self.table)
            .select("*")
            .eq("user_id", self.user_id)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None

        row = result.data[0]
        if row.get("completed_at"):
            return RemoteProgressRecord(completed=True)

        data = row.get("extracted_data") or {}
        if not isinstance(data, dict):
            raise ValueError(f"extracted_data for {self.user_id} is not an object")
        return RemoteProgressRecord(
            step_index=int(row.get("phase_index") or 0),
            data=data,
        )

    async def write(self, step_index: int, data: dict) -> None:
        self.client.table(self.table).upsert(
            {
                "user_id": self.user_id,
                "current_phase": f"section_{step_index}",
                "phase_index": step_index,
                "extracted_data": data,
                "updated_at": _utc_now(),
            },
            on_conflict="user_id",
        ).execute()

    async def complete(self, payload: dict) -> None:
        now = _utc_now()
        self.client.table(self.table).upsert(
            {
                "user_id": self.user_id,
                "current_phase": "complete",
                "phase_index": 100,
                "extracted_data": payload,
                "completed_at": now,
                "updated_at": now,
            },
            on_conflict="user_id",
        ).execute()
        logger.info(f"Onboarding marked complete for user {self.user_id}")


class SupabaseEquipmentLookup:
    """
    Equipment catalog lookup against the equipment table.

    Selections are matched exactly against key_column (the slug by default,
    since the wizard stores option ids like "pull_up_bar").
    """

    def __init__(self, client: Client | None = None, table: str | None = None, key_column: str = "slug"):
        from .config import settings

        self._client = client
        self.table = table or settings.equipment_table
        self.key_column = key_column

    @property
    def client(self) -> Client:
        if self._client is None:
            from .db import get_service_client
            self._client = get_service_client()
        return self._client

    async def lookup_ids(self, names: list[str]) -> dict[str, str]:
        if not names:
            return {}
        result = (
            self.client.table(self.table)
            .select(f"id, {self.key_column}")
            .in_(self.key_column, names)
            .execute()
        )
        return {row[self.key_column]: row["id"] for row in result.data or []}
