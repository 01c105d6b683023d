"""
Debounced cloud sync, one orchestrator per account.

State machine:

    IDLE --notify_change()--> PENDING --quiet for `debounce` s--> SYNCING
    SYNCING --merged == local--> SYNCED            (nothing written)
    SYNCING --changed meanwhile--> PENDING         (next cycle pushes it)
    SYNCING --merged != local--> SYNCED            (local store replaced)
    SYNCING --SyncError / timeout--> ERROR         (local store untouched)
    any --sync key gone or changed--> IDLE         (nothing sent or written)

A change that arrives while a request is in flight does not cancel it; the
background task runs one more debounce cycle afterwards because the payload
that went out may already be stale.

Replacing the local store with the merged result never calls notify_change(),
and an identical result isn't written at all, so a sync can't trigger
another sync by itself.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable

import database.database as db
from config import SYNC_DEBOUNCE_SECONDS, SYNC_TIMEOUT_SECONDS
from sync.merge import merge
from sync.remote import SyncError, merge_with_remote
from sync.snapshot import snapshots_equal
from utils.dates import utc_now

logger = logging.getLogger(__name__)


class SyncStatus(Enum):
    IDLE = 'idle'          # no sync key / nothing pending
    PENDING = 'pending'    # local change waiting for the debounce window
    SYNCING = 'syncing'    # request in flight
    SYNCED = 'synced'
    ERROR = 'error'        # last attempt failed, local data untouched


class SyncOrchestrator:
    def __init__(
        self,
        user_id: int,
        sync_key: str,
        store,
        debounce: float = SYNC_DEBOUNCE_SECONDS,
        timeout: float = SYNC_TIMEOUT_SECONDS,
        on_applied: Callable[[int, dict], None] | None = None,
    ):
        self.user_id = user_id
        self.sync_key = sync_key
        self.store = store
        self.debounce = debounce
        self.timeout = timeout
        self.on_applied = on_applied

        self.status = SyncStatus.IDLE
        self.last_error: str | None = None
        self.last_synced_at = None

        self._changes = 0
        self._dirty = asyncio.Event()
        self._lock = asyncio.Lock()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def notify_change(self) -> None:
        """Record a local mutation. Must be called from the event loop."""
        self._changes += 1
        self._dirty.set()
        if self.status is not SyncStatus.SYNCING:
            self.status = SyncStatus.PENDING
        if not self.running:
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while self._dirty.is_set():
            await self._wait_until_quiet()
            await self.sync_now()

    async def _wait_until_quiet(self) -> None:
        """Return once no change has arrived for `debounce` seconds."""
        while True:
            self._dirty.clear()
            try:
                await asyncio.wait_for(self._dirty.wait(), timeout=self.debounce)
            except asyncio.TimeoutError:
                return

    async def sync_now(self) -> bool:
        """
        One sync attempt. Returns True if the merged result was written to
        the local store.
        """
        async with self._lock:
            if not self._key_current():
                return False
            self.status = SyncStatus.SYNCING
            changes_seen = self._changes
            local = db.export_snapshot(self.user_id)

            try:
                merged = await asyncio.wait_for(
                    asyncio.to_thread(merge_with_remote, self.store, self.sync_key, local),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError:
                return self._fail(f"timed out after {self.timeout:g}s")
            except SyncError as e:
                return self._fail(str(e))

            # Sync turned off or re-keyed while the request was out
            if not self._key_current():
                return False

            current = db.export_snapshot(self.user_id)
            if not snapshots_equal(current, local):
                # Edits made while the request was in flight; the follow-up
                # cycle pushes them, meanwhile keep them locally.
                merged = merge(merged, current)
                local = current

            applied = False
            if snapshots_equal(local, merged):
                logger.info(f"Sync for user {self.user_id}: no changes")
            else:
                db.replace_snapshot(self.user_id, merged)
                applied = True
                logger.info(f"Sync for user {self.user_id}: applied merged data")
                if self.on_applied:
                    self.on_applied(self.user_id, merged)

            # A change during the request gets its own cycle
            self.status = SyncStatus.PENDING if self._changes != changes_seen else SyncStatus.SYNCED
            self.last_error = None
            self.last_synced_at = utc_now()
            return applied

    async def load_from_cloud(self) -> bool:
        """
        Replace local data with the cloud copy (first login on a new device).
        Returns False if the cloud has nothing under this key.
        """
        async with self._lock:
            self.status = SyncStatus.SYNCING
            try:
                cloud = await asyncio.wait_for(
                    asyncio.to_thread(self.store.get_snapshot, self.sync_key),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError:
                self._fail(f"timed out after {self.timeout:g}s")
                raise SyncError("Loading from the cloud timed out")
            except SyncError as e:
                self._fail(str(e))
                raise

            if cloud is not None:
                db.replace_snapshot(self.user_id, cloud)
            self.status = SyncStatus.SYNCED
            self.last_error = None
            self.last_synced_at = utc_now()
            return cloud is not None

    async def close(self) -> None:
        if self.running:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    def _key_current(self) -> bool:
        if db.get_sync_key(self.user_id) == self.sync_key:
            return True
        logger.info(f"Sync for user {self.user_id} skipped: key {self.sync_key!r} no longer active")
        self.status = SyncStatus.IDLE
        return False

    def _fail(self, message: str) -> bool:
        logger.warning(f"Sync for user {self.user_id} failed: {message}")
        self.status = SyncStatus.ERROR
        self.last_error = message
        return False


class SyncRegistry:
    """Hands out the orchestrator of an account, if that account syncs at all."""

    def __init__(self, store, debounce: float = SYNC_DEBOUNCE_SECONDS, timeout: float = SYNC_TIMEOUT_SECONDS):
        self.store = store
        self.debounce = debounce
        self.timeout = timeout
        self._by_user: dict[int, SyncOrchestrator] = {}

    def get(self, user_id: int) -> SyncOrchestrator | None:
        if self.store is None:
            return None
        sync_key = db.get_sync_key(user_id)
        if not sync_key:
            return None

        orchestrator = self._by_user.get(user_id)
        if orchestrator is None or orchestrator.sync_key != sync_key:
            if orchestrator is not None and orchestrator.running:
                orchestrator._task.cancel()
            orchestrator = SyncOrchestrator(
                user_id, sync_key, self.store, debounce=self.debounce, timeout=self.timeout
            )
            self._by_user[user_id] = orchestrator
        return orchestrator

    def notify_change(self, user_id: int) -> None:
        orchestrator = self.get(user_id)
        if orchestrator:
            orchestrator.notify_change()

    def status(self, user_id: int) -> SyncStatus:
        orchestrator = self.get(user_id)
        return orchestrator.status if orchestrator else SyncStatus.IDLE

    async def drop(self, user_id: int) -> None:
        """Stop and forget the account's orchestrator, e.g. after sync is turned off."""
        orchestrator = self._by_user.pop(user_id, None)
        if orchestrator is not None:
            await orchestrator.close()

    async def close(self) -> None:
        for orchestrator in self._by_user.values():
            await orchestrator.close()
        self._by_user.clear()
