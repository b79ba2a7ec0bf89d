"""Optimistic edits to the field list.

Every mutation is applied to the local list first and then handed to the
sync engine. Each one is a small command object that remembers enough to put
the list back the way it was, so a failed create or delete can be undone.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..utils import normalize_email
from .field_sync import FieldSyncEngine
from .geometry import DUPLICATE_OFFSET
from .types import PlacedSignature, generate_local_id

logger = logging.getLogger(__name__)


class InsertFields:
    def __init__(self, fields: Iterable[PlacedSignature]):
        self.fields = list(fields)

    def apply(self, signatures: List[PlacedSignature]) -> None:
        signatures.extend(self.fields)

    def undo(self, signatures: List[PlacedSignature]) -> None:
        ids = {f.id for f in self.fields}
        signatures[:] = [s for s in signatures if s.id not in ids]


class RemoveField:
    def __init__(self, field_id: str):
        self.field_id = field_id
        self.removed: Optional[PlacedSignature] = None
        self.index = 0

    def apply(self, signatures: List[PlacedSignature]) -> Optional[PlacedSignature]:
        for index, signature in enumerate(signatures):
            if signature.id == self.field_id:
                self.index = index
                self.removed = signatures.pop(index)
                return self.removed
        return None

    def undo(self, signatures: List[PlacedSignature]) -> None:
        if self.removed is None or any(s.id == self.field_id for s in signatures):
            return
        signatures.insert(min(self.index, len(signatures)), self.removed)


class MergeField:
    def __init__(self, field_id: str, changes: Dict[str, Any]):
        unknown = set(changes) - set(PlacedSignature.model_fields)
        if "id" in changes or unknown:
            raise ValueError(f"Cannot update field attributes: {sorted(unknown | ({'id'} & set(changes)))}")
        self.field_id = field_id
        self.changes = changes
        self.previous: Optional[PlacedSignature] = None

    def apply(self, signatures: List[PlacedSignature]) -> Optional[PlacedSignature]:
        for index, signature in enumerate(signatures):
            if signature.id == self.field_id:
                self.previous = signature
                signatures[index] = signature.model_copy(update=self.changes)
                return signatures[index]
        return None

    def undo(self, signatures: List[PlacedSignature]) -> None:
        if self.previous is None:
            return
        for index, signature in enumerate(signatures):
            if signature.id == self.field_id:
                signatures[index] = self.previous
                return


class SignatureOperations:
    def __init__(
        self,
        signatures: List[PlacedSignature],
        sync: FieldSyncEngine,
        num_pages: Optional[int] = None,
        signer_id_for_email: Optional[Callable[[str], Optional[str]]] = None,
    ):
        self.signatures = signatures
        self.sync = sync
        self.num_pages = num_pages
        self.signer_id_for_email = signer_id_for_email

    def find(self, field_id: str) -> Optional[PlacedSignature]:
        return next((s for s in self.signatures if s.id == field_id), None)

    def _resolve_signer(self, email: str) -> Optional[str]:
        if self.signer_id_for_email is None:
            return None
        return self.signer_id_for_email(email)

    async def create_signature(self, field: PlacedSignature, signer_id: Optional[str] = None) -> str:
        command = InsertFields([field])
        command.apply(self.signatures)
        signer_id = signer_id or self._resolve_signer(field.email)
        if signer_id:
            try:
                await self.sync.create_field(field, signer_id)
            except Exception:
                command.undo(self.signatures)
                raise
        return field.id

    def update_signature(self, field_id: str, changes: Dict[str, Any]) -> Optional[PlacedSignature]:
        command = MergeField(field_id, changes)
        updated = command.apply(self.signatures)
        if updated is None or not self.sync.is_tracked(field_id):
            return updated
        # send failures are logged by the sync engine; the local change stays
        self.sync.update_field(updated)
        return updated

    async def delete_signature(self, field_id: str) -> None:
        command = RemoveField(field_id)
        if command.apply(self.signatures) is None:
            return
        if not self.sync.is_tracked(field_id):
            return
        try:
            await self.sync.delete_field(field_id)
        except Exception:
            command.undo(self.signatures)
            raise

    async def duplicate_signature(self, field_id: str) -> Optional[str]:
        source = self.find(field_id)
        if source is None:
            return None
        clone = source.model_copy(update={
            "id": generate_local_id("sig"),
            "x": source.x + DUPLICATE_OFFSET,
            "y": source.y + DUPLICATE_OFFSET,
            "value": None,
            "signed_at": None,
        })
        return await self.create_signature(clone)

    async def copy_signature_to_all_pages(self, field_id: str) -> List[str]:
        source = self.find(field_id)
        if source is None or not self.num_pages:
            return []

        clones = [
            source.model_copy(update={"id": generate_local_id("sig"), "page": page, "value": None, "signed_at": None})
            for page in range(1, self.num_pages + 1)
            if page != source.page
        ]
        InsertFields(clones).apply(self.signatures)

        signer_id = self._resolve_signer(source.email)
        if signer_id and clones:
            results = await asyncio.gather(
                *(self.sync.create_field(clone, signer_id) for clone in clones), return_exceptions=True
            )
            for clone, result in zip(clones, results):
                if isinstance(result, Exception):
                    logger.warning("copy of field %s to page %d failed: %s", field_id, clone.page, result)
        return [clone.id for clone in clones]

    def update_signature_font_size(self, field_id: str, font_size: float) -> Optional[PlacedSignature]:
        return self.update_signature(field_id, {"font_size": font_size})

    async def remove_signatures_by_email(self, email: str, remote: bool = True) -> List[str]:
        wanted = normalize_email(email)
        removed = [s for s in self.signatures if normalize_email(s.email) == wanted]
        if not removed:
            return []
        self.signatures[:] = [s for s in self.signatures if normalize_email(s.email) != wanted]

        tracked = [s.id for s in removed if self.sync.is_tracked(s.id)]
        if not remote:
            # server records went with their signer
            for fid in tracked:
                self.sync.forget(fid)
            return [s.id for s in removed]
        results = await asyncio.gather(
            *(self.sync.delete_field(fid) for fid in tracked), return_exceptions=True
        )
        for fid, result in zip(tracked, results):
            if isinstance(result, Exception):
                logger.warning("failed to delete field %s of removed recipient %s: %s", fid, email, result)
        return [s.id for s in removed]
