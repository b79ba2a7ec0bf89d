import asyncio
import logging
from typing import Dict, List, Optional

from ..config import SIGNER_WAIT_TIMEOUT_SECONDS
from ..utils import normalize_email
from .api import EasySignClient
from .errors import EasySignError, SignerUnavailableError
from .types import Recipient, SignerInfo, SyncSummary

logger = logging.getLogger(__name__)


class SignerRegistry:
    """Recipients of one document and the signers persisted for them.

    A field can only be created once its recipient exists as a signer on the
    server, so callers go through :meth:`ensure_signer` before placing one.
    """

    def __init__(self, api: EasySignClient, document_id: str,
                 wait_timeout: float = SIGNER_WAIT_TIMEOUT_SECONDS):
        self.api = api
        self.document_id = document_id
        self.wait_timeout = wait_timeout
        self._signers: Dict[str, SignerInfo] = {}
        self._creating: Dict[str, asyncio.Future] = {}

    @property
    def signers(self) -> List[SignerInfo]:
        return list(self._signers.values())

    def get(self, recipient_id: str) -> Optional[SignerInfo]:
        return self._signers.get(recipient_id)

    async def load(self) -> List[SignerInfo]:
        records = await self.api.list_signers(self.document_id)
        known = {info.signer_id for info in self._signers.values() if info.signer_id}
        for record in records:
            if record["id"] in known:
                continue
            self._signers[record["id"]] = SignerInfo(
                recipient_id=record["id"],
                email=record["email"],
                name=record["name"],
                signer_id=record["id"],
            )
        return self.signers

    async def create_signer(self, recipient: Recipient) -> str:
        existing = self._signers.get(recipient.id)
        if existing and existing.signer_id:
            return existing.signer_id

        # registered before the first await so concurrent callers find it
        future = asyncio.get_running_loop().create_future()
        self._creating[recipient.id] = future
        self._signers[recipient.id] = SignerInfo(
            recipient_id=recipient.id, email=recipient.email, name=recipient.name, is_creating=True,
        )
        signer_id = None
        try:
            record = await self.api.create_signer(
                self.document_id, recipient.email, recipient.name, recipient.signing_order
            )
        except (Exception, asyncio.CancelledError) as exc:
            logger.warning("failed to create signer for %s: %s", recipient.email, exc)
            self._signers[recipient.id] = SignerInfo(
                recipient_id=recipient.id, email=recipient.email, name=recipient.name, error=str(exc),
            )
            raise
        else:
            signer_id = record["id"]
            self._signers[recipient.id] = SignerInfo(
                recipient_id=recipient.id, email=record["email"], name=record["name"], signer_id=signer_id,
            )
            logger.info("created signer %s for recipient %s", signer_id, recipient.id)
            return signer_id
        finally:
            self._creating.pop(recipient.id, None)
            future.set_result(signer_id)

    async def ensure_signer(self, recipient: Recipient) -> Optional[str]:
        info = self._signers.get(recipient.id)
        if info and info.signer_id:
            return info.signer_id

        future = self._creating.get(recipient.id)
        if future is not None:
            try:
                return await asyncio.wait_for(asyncio.shield(future), self.wait_timeout)
            except asyncio.TimeoutError:
                logger.warning("timed out waiting for signer of %s", recipient.email)
                return None

        try:
            return await self.create_signer(recipient)
        except EasySignError:
            return None

    def get_signer_id_by_email(self, email: str) -> Optional[str]:
        wanted = normalize_email(email)
        for info in self._signers.values():
            if info.signer_id and normalize_email(info.email) == wanted:
                return info.signer_id
        return None

    async def sync_recipients(self, recipients: List[Recipient]) -> SyncSummary:
        results = await asyncio.gather(
            *(self.ensure_signer(r) for r in recipients), return_exceptions=True
        )
        successful = sum(1 for r in results if isinstance(r, str))
        return SyncSummary(successful=successful, failed=len(results) - successful, total=len(recipients))

    async def update_signer(self, recipient_id: str, **changes) -> SignerInfo:
        info = self._signers.get(recipient_id)
        if not info or not info.signer_id:
            raise SignerUnavailableError(f"No signer has been created for recipient {recipient_id}")
        record = await self.api.update_signer(self.document_id, info.signer_id, **changes)
        info = info.model_copy(update={"email": record["email"], "name": record["name"]})
        self._signers[recipient_id] = info
        return info

    async def delete_signer(self, recipient_id: str) -> None:
        info = self._signers.get(recipient_id)
        if not info or not info.signer_id:
            return
        await self.api.delete_signer(self.document_id, info.signer_id)
        self._signers.pop(recipient_id, None)
