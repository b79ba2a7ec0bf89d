import asyncio
import logging
from typing import Any, Dict, List, Optional

from ..utils import normalize_email
from .api import EasySignClient
from .errors import SignerUnavailableError
from .field_sync import FieldSyncEngine
from .geometry import Box, PageSize, clamp_font_size, clamp_position_to_page, resize_field
from .signature_operations import SignatureOperations
from .signer_registry import SignerRegistry
from .types import PlacedSignature, Recipient, SyncStatus

logger = logging.getLogger(__name__)


class FieldManager:
    """Editing session for the signature fields of one document.

    Owns the field list and wires the signer registry, the sync engine and
    the optimistic operations together. Use :meth:`open` to construct and
    load in one step.
    """

    def __init__(
        self,
        api: EasySignClient,
        document_id: str,
        num_pages: Optional[int] = None,
        signer_mappings: Optional[Dict[str, str]] = None,
        registry: Optional[SignerRegistry] = None,
        sync: Optional[FieldSyncEngine] = None,
    ):
        self.api = api
        self.document_id = document_id
        self.registry = registry or SignerRegistry(api, document_id)
        self.sync = sync or FieldSyncEngine(api, document_id)
        self.signer_mappings = {normalize_email(k): v for k, v in (signer_mappings or {}).items()}
        self._recipients: Dict[str, Recipient] = {}
        self._signatures: List[PlacedSignature] = []
        self.operations = SignatureOperations(self._signatures, self.sync, num_pages, self.signer_id_for_email)

    @classmethod
    async def open(cls, api: EasySignClient, document_id: str, **kwargs) -> "FieldManager":
        manager = cls(api, document_id, **kwargs)
        await manager.load()
        return manager

    async def load(self) -> List[PlacedSignature]:
        records, signers = await asyncio.gather(self.sync.load_fields(), self.registry.load())
        known = {s.id for s in self._signatures}
        self._signatures.extend(PlacedSignature.from_record(r) for r in records if r["id"] not in known)
        for info in signers:
            self._recipients.setdefault(
                info.recipient_id, Recipient(id=info.recipient_id, email=info.email, name=info.name)
            )
        logger.info("opened document %s: %d fields, %d signers", self.document_id, len(records), len(signers))
        return self.signatures

    # ---------- state ----------

    @property
    def signatures(self) -> List[PlacedSignature]:
        return list(self._signatures)

    @property
    def recipients(self) -> List[Recipient]:
        return list(self._recipients.values())

    @property
    def num_pages(self) -> Optional[int]:
        return self.operations.num_pages

    @num_pages.setter
    def num_pages(self, value: Optional[int]) -> None:
        self.operations.num_pages = value

    @property
    def sync_status(self) -> SyncStatus:
        return SyncStatus(synced_count=self.sync.synced_count, pending_count=self.sync.pending_count)

    def is_field_pending(self, field_id: str) -> bool:
        return self.sync.is_pending(field_id)

    def get_signature(self, field_id: str) -> Optional[PlacedSignature]:
        return self.operations.find(field_id)

    def signer_id_for_email(self, email: str) -> Optional[str]:
        mapped = self.signer_mappings.get(normalize_email(email))
        if mapped:
            return mapped
        return self.registry.get_signer_id_by_email(email)

    def _recipient_for_email(self, email: str) -> Optional[Recipient]:
        wanted = normalize_email(email)
        return next((r for r in self._recipients.values() if normalize_email(r.email) == wanted), None)

    # ---------- recipients ----------

    async def add_recipient(self, recipient: Recipient, persist: bool = True) -> Optional[str]:
        """Track ``recipient``; with ``persist`` also make sure a signer exists for it."""
        self._recipients[recipient.id] = recipient
        if not persist:
            return None
        return await self.registry.ensure_signer(recipient)

    async def remove_recipient(self, recipient_id: str) -> List[str]:
        recipient = self._recipients.pop(recipient_id, None)
        if recipient is None:
            return []
        info = self.registry.get(recipient_id)
        cascaded = bool(info and info.signer_id)
        try:
            await self.registry.delete_signer(recipient_id)
        except Exception:
            self._recipients[recipient_id] = recipient
            raise
        # deleting a signer deletes its fields on the server
        return await self.operations.remove_signatures_by_email(recipient.email, remote=not cascaded)

    # ---------- fields ----------

    async def create_signature_with_signer(self, field: PlacedSignature,
                                           recipient: Optional[Recipient] = None) -> str:
        signer_id = self.signer_id_for_email(field.email)
        if not signer_id:
            recipient = recipient or self._recipient_for_email(field.email)
            if recipient is not None:
                signer_id = await self.registry.ensure_signer(recipient)
        if not signer_id:
            raise SignerUnavailableError(f"No signer available for {field.email}")
        return await self.operations.create_signature(field, signer_id=signer_id)

    async def create_signature(self, field: PlacedSignature) -> str:
        return await self.operations.create_signature(field)

    def update_signature(self, field_id: str, changes: Dict[str, Any]) -> Optional[PlacedSignature]:
        return self.operations.update_signature(field_id, changes)

    async def delete_signature(self, field_id: str) -> None:
        await self.operations.delete_signature(field_id)

    async def duplicate_signature(self, field_id: str) -> Optional[str]:
        return await self.operations.duplicate_signature(field_id)

    async def copy_signature_to_all_pages(self, field_id: str) -> List[str]:
        return await self.operations.copy_signature_to_all_pages(field_id)

    def update_signature_font_size(self, field_id: str, font_size: float) -> Optional[PlacedSignature]:
        return self.operations.update_signature_font_size(field_id, clamp_font_size(font_size))

    async def remove_signatures_by_email(self, email: str) -> List[str]:
        return await self.operations.remove_signatures_by_email(email)

    def move_signature(self, field_id: str, x: float, y: float, page: PageSize) -> Optional[PlacedSignature]:
        field = self.operations.find(field_id)
        if field is None:
            return None
        x, y = clamp_position_to_page(x, y, field.width, field.height, page.width, page.height)
        return self.update_signature(field_id, {"x": x, "y": y})

    def resize_signature(self, field_id: str, handle: str, dx: float, dy: float, page: PageSize,
                         start: Optional[Box] = None) -> Optional[PlacedSignature]:
        field = self.operations.find(field_id)
        if field is None:
            return None
        box = resize_field(start or Box(field.x, field.y, field.width, field.height), handle, dx, dy, page)
        return self.update_signature(field_id, box._asdict())

    # ---------- lifecycle ----------

    async def flush(self) -> None:
        await self.sync.flush()

    async def aclose(self) -> None:
        await self.sync.aclose()
