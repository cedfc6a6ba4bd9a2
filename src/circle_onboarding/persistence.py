"""
Persistence Coordinator.

Keeps two channels eventually consistent with the session store:

- fast channel: written synchronously on every mutation (crash safety net)
- durable channel: written once the session has been quiet for the debounce
  window, so bursts of edits coalesce into a single remote write

Loads read durable → fast → fresh. Durable-channel errors and corrupt local
envelopes are logged and degrade to the next source; they never reach the user.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal

from .channels import LocalCache, RemoteProgress
from .state import SessionRecord, SessionStore
from .steps import check_branch_fields, clamp_index, sequence

logger = logging.getLogger(__name__)


LoadSource = Literal["durable", "fast", "fresh"]


@dataclass
class LoadResult:
    """
    Outcome of a load.

    completed=True means the durable channel says onboarding is already done
    and the caller should leave the wizard instead of resuming.
    """
    record: SessionRecord
    source: LoadSource
    completed: bool = False


def clamp_record(record: SessionRecord) -> SessionRecord:
    """
    Pull step_index back into the effective sequence for the record's data.

    Raises ValueError when a branch field has the wrong shape.
    """
    check_branch_fields(record.data)
    steps = sequence(record.data)
    clamped = clamp_index(record.step_index, steps)
    if clamped != record.step_index:
        logger.info(f"Clamped persisted step_index {record.step_index} -> {clamped}")
        record.step_index = clamped
    return record


class PersistenceCoordinator:
    """Dual-channel save/load for one wizard session."""

    def __init__(
        self,
        fast: LocalCache,
        durable: RemoteProgress | None = None,
        debounce_seconds: float | None = None,
    ):
        if debounce_seconds is None:
            from .config import settings
            debounce_seconds = settings.durable_write_debounce_seconds

        self.fast = fast
        self.durable = durable
        self.debounce_seconds = debounce_seconds

        self._store: SessionStore | None = None
        self._unsubscribe = None
        self._pending_task: asyncio.Task | None = None
        self._pending_envelope: dict | None = None
        self._closed = False

    # -------------------------------------------------------------------------
    # Wiring
    # -------------------------------------------------------------------------

    def attach(self, store: SessionStore) -> None:
        """Start listening to a store's mutations."""
        self.detach()
        self._store = store
        self._unsubscribe = store.subscribe(self.notify)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def has_pending_write(self) -> bool:
        return self._pending_envelope is not None

    # -------------------------------------------------------------------------
    # Save path
    # -------------------------------------------------------------------------

    def notify(self, record: SessionRecord) -> None:
        """Called by the store after every mutation."""
        if self._closed:
            logger.debug("Ignoring mutation on a closed session")
            return

        envelope = record.to_envelope()
        self._write_fast(record)
        self._schedule_durable(envelope)

    def _write_fast(self, record: SessionRecord) -> None:
        try:
            self.fast.set(record.to_json())
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Fast-channel write failed: {e}")

    def _schedule_durable(self, envelope: dict) -> None:
        if self.durable is None:
            return

        self._pending_envelope = envelope
        self._cancel_timer()

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop (CLI, sync tests): keep it pending until flush()
            logger.debug("No running event loop, durable write deferred")
            return

        self._pending_task = loop.create_task(self._debounced_write())

    async def _debounced_write(self) -> None:
        await asyncio.sleep(self.debounce_seconds)
        # Past the window: a new mutation schedules a fresh timer instead of
        # cancelling this write mid-flight
        self._pending_task = None
        await self._write_durable()

    async def _write_durable(self) -> None:
        envelope = self._pending_envelope
        if envelope is None or self.durable is None:
            return
        self._pending_envelope = None

        try:
            await self.durable.write(envelope["step_index"], envelope["data"])
        except Exception as e:
            # Not retried here; the next mutation schedules a new write
            logger.warning(f"Durable-channel write failed: {e}")
            return

        if self._store is not None:
            self._store.mark_persisted(datetime.now(timezone.utc).isoformat())

    def _cancel_timer(self) -> None:
        if self._pending_task is not None and not self._pending_task.done():
            self._pending_task.cancel()
        self._pending_task = None

    async def flush(self) -> None:
        """Write any pending envelope to the durable channel now."""
        self._cancel_timer()
        await self._write_durable()

    # -------------------------------------------------------------------------
    # Load path
    # -------------------------------------------------------------------------

    async def load(self) -> LoadResult:
        """Load a session: durable channel, then fast channel, then fresh."""
        if self.durable is not None:
            try:
                remote = await self.durable.read()
            except Exception as e:
                logger.warning(f"Durable-channel read failed, falling back to local cache: {e}")
                remote = None

            if remote is not None:
                if remote.completed:
                    logger.info("Onboarding already completed, nothing to resume")
                    return LoadResult(record=SessionRecord(), source="durable", completed=True)
                try:
                    record = clamp_record(
                        SessionRecord(step_index=remote.step_index, data=dict(remote.data))
                    )
                except (TypeError, ValueError) as e:
                    logger.warning(f"Ignoring unreadable durable progress, falling back to local cache: {e}")
                else:
                    return LoadResult(record=record, source="durable")

        cached = None
        try:
            cached = self.fast.get()
        except OSError as e:
            logger.warning(f"Fast-channel read failed: {e}")

        if cached:
            try:
                record = clamp_record(SessionRecord.from_json(cached))
            except (TypeError, ValueError) as e:
                logger.warning(f"Discarding corrupt local envelope: {e}")
                self._clear_fast()
            else:
                return LoadResult(record=record, source="fast")

        return LoadResult(record=SessionRecord(), source="fresh")

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    def _clear_fast(self) -> None:
        try:
            self.fast.clear()
        except OSError as e:
            logger.warning(f"Fast-channel clear failed: {e}")

    def clear(self) -> None:
        """
        Drop this session from both channels after a successful submission.

        The durable progress row has already been superseded by the completion
        record, so clearing it means making sure no pending write lands on top.
        """
        self._cancel_timer()
        self._pending_envelope = None
        self._clear_fast()
        self._closed = True
        self.detach()

    def close(self) -> None:
        """Teardown: cancel the pending debounce timer and stop listening."""
        self._cancel_timer()
        self._closed = True
        self.detach()
