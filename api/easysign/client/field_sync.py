import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Set, Tuple

from ..config import FIELD_UPDATE_DEBOUNCE_SECONDS
from .api import EasySignClient
from .errors import EasySignError
from .types import PlacedSignature, QueuedOperation, generate_local_id

logger = logging.getLogger(__name__)


class FieldSyncEngine:
    """Keeps local signature fields in step with the persisted ones.

    Fields get a local id the moment they are placed. The server id only
    exists once the create call returns, so anything done to a field while
    its create is in flight is queued and replayed afterwards. Geometry
    updates are debounced per field; only the last scheduled one is sent.
    """

    def __init__(self, api: EasySignClient, document_id: str,
                 debounce: float = FIELD_UPDATE_DEBOUNCE_SECONDS):
        self.api = api
        self.document_id = document_id
        self.debounce = debounce

        self.pending_creates: Set[str] = set()
        self.synced_fields: Dict[str, str] = {}
        self.operation_queue: List[QueuedOperation] = []

        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._scheduled: Dict[str, Tuple[str, Dict[str, Any]]] = {}
        self._in_flight: Dict[str, Dict[str, Any]] = {}
        self._trailing: Dict[str, Dict[str, Any]] = {}
        self._tasks: Set[asyncio.Task] = set()

    # ---------- bookkeeping ----------

    @staticmethod
    def generate_field_id() -> str:
        return generate_local_id("field")

    def is_pending(self, field_id: str) -> bool:
        return field_id in self.pending_creates

    def is_tracked(self, field_id: str) -> bool:
        return field_id in self.pending_creates or field_id in self.synced_fields

    def resolve_id(self, field_id: str) -> str:
        return self.synced_fields.get(field_id, field_id)

    @property
    def synced_count(self) -> int:
        return len(self.synced_fields)

    @property
    def pending_count(self) -> int:
        return len(self.pending_creates)

    def _take_queued(self, field_id: str) -> List[QueuedOperation]:
        queued = [op for op in self.operation_queue if op.field_id == field_id]
        self.operation_queue = [op for op in self.operation_queue if op.field_id != field_id]
        return queued

    def _cancel_timer(self, field_id: str) -> None:
        handle = self._timers.pop(field_id, None)
        if handle is not None:
            handle.cancel()
        self._scheduled.pop(field_id, None)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ---------- operations ----------

    async def load_fields(self) -> List[Dict[str, Any]]:
        records = await self.api.list_fields(self.document_id)
        for record in records:
            self.synced_fields.setdefault(record["id"], record["id"])
        logger.debug("loaded %d fields for document %s", len(records), self.document_id)
        return records

    async def create_field(self, field: PlacedSignature, signer_id: str) -> Optional[str]:
        local_id = field.id
        self.pending_creates.add(local_id)
        try:
            record = await self.api.create_field(self.document_id, field.to_create_payload(signer_id))
        except (Exception, asyncio.CancelledError):
            self.pending_creates.discard(local_id)
            self._take_queued(local_id)
            raise

        server_id = record["id"]
        if local_id not in self.pending_creates:
            dropped = self._take_queued(local_id)
            logger.warning(
                "field %s was deleted while being created; server field %s left untracked (%d queued updates dropped)",
                local_id, server_id, len(dropped),
            )
            return None

        self.pending_creates.discard(local_id)
        self.synced_fields[local_id] = server_id
        for op in self._take_queued(local_id):
            self.update_field(op.data, immediate=True)
        return server_id

    def update_field(self, field: PlacedSignature, immediate: bool = False) -> None:
        local_id = field.id
        if local_id in self.pending_creates:
            self.operation_queue.append(
                QueuedOperation(field_id=local_id, operation="update", data=field.model_copy(), timestamp=time.time())
            )
            return

        server_id = self.resolve_id(local_id)
        self._cancel_timer(local_id)
        delay = 0 if immediate else self.debounce
        self._scheduled[local_id] = (server_id, field.to_update_payload())
        self._timers[local_id] = asyncio.get_running_loop().call_later(delay, self._fire, local_id)

    def _fire(self, field_id: str) -> None:
        self._timers.pop(field_id, None)
        scheduled = self._scheduled.pop(field_id, None)
        if scheduled is None:
            return
        server_id, payload = scheduled
        self._spawn(self._send_update(field_id, server_id, payload))

    async def _send_update(self, field_id: str, server_id: str, payload: Dict[str, Any]) -> None:
        key = f"update:{server_id}"
        in_flight = self._in_flight.get(key)
        if in_flight is not None:
            if payload == in_flight:
                self._trailing.pop(key, None)
                logger.debug("skipping duplicate update for field %s", field_id)
            else:
                self._trailing[key] = payload
            return

        self._in_flight[key] = payload
        try:
            while payload is not None:
                try:
                    await self.api.update_field(self.document_id, server_id, payload)
                except EasySignError as exc:
                    logger.warning("failed to update field %s (%s): %s", field_id, server_id, exc)
                payload = self._trailing.pop(key, None)
                if payload is not None:
                    self._in_flight[key] = payload
        finally:
            self._in_flight.pop(key, None)

    async def delete_field(self, field_id: str) -> None:
        if field_id in self.pending_creates:
            # the create is still running; it will see the field is gone
            self._cancel_timer(field_id)
            self.pending_creates.discard(field_id)
            self._take_queued(field_id)
            return

        server_id = self.resolve_id(field_id)
        key = f"update:{server_id}"
        scheduled = self._scheduled.get(field_id)
        trailing = self._trailing.pop(key, None)
        self._cancel_timer(field_id)
        try:
            await self.api.delete_field(self.document_id, server_id)
        except (Exception, asyncio.CancelledError):
            self._restore_updates(field_id, server_id, scheduled, trailing)
            raise
        self.synced_fields.pop(field_id, None)

    def _restore_updates(self, field_id: str, server_id: str,
                         scheduled: Optional[Tuple[str, Dict[str, Any]]],
                         trailing: Optional[Dict[str, Any]]) -> None:
        # failed delete: resend the geometry it cancelled
        key = f"update:{server_id}"
        if trailing is not None:
            if key in self._in_flight:
                self._trailing.setdefault(key, trailing)
            else:
                self._spawn(self._send_update(field_id, server_id, trailing))
        if scheduled is not None and field_id not in self._scheduled:
            self._scheduled[field_id] = scheduled
            self._timers[field_id] = asyncio.get_running_loop().call_later(0, self._fire, field_id)

    def forget(self, field_id: str) -> None:
        """Stop tracking a field whose server record is already gone."""
        self._cancel_timer(field_id)
        self.pending_creates.discard(field_id)
        self._take_queued(field_id)
        server_id = self.synced_fields.pop(field_id, None)
        if server_id is not None:
            self._trailing.pop(f"update:{server_id}", None)

    async def flush(self) -> None:
        """Send every debounced update now and wait for all requests to finish."""
        for field_id, handle in list(self._timers.items()):
            handle.cancel()
            self._fire(field_id)
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def aclose(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._scheduled.clear()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
