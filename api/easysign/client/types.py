import random
import string
import time
from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

from ..schemas import Alignment, FieldType

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_local_id(prefix: str) -> str:
    """``<prefix>-<epoch ms>-<9 random base36 chars>``, unique within a session."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{prefix}-{int(time.time() * 1000)}-{suffix}"


class Recipient(BaseModel):
    id: str
    email: str
    name: str
    is_current_user: bool = False
    signing_order: int = Field(default=0, ge=0)


class SignerInfo(BaseModel):
    recipient_id: str
    email: str
    name: str
    signer_id: Optional[str] = None
    is_creating: bool = False
    error: Optional[str] = None


class PlacedSignature(BaseModel):
    """A signature field as the editor sees it.

    ``x``/``y`` are the centre of the box; all geometry is in units of a page
    rendered 700 wide.
    """

    id: str
    email: str

    x: float
    y: float
    width: float
    height: float
    page: int = Field(ge=1)

    font_size: float = 14
    font_family: Optional[str] = "Arial"
    color: str = "#000000"
    alignment: Alignment = "left"

    field_type: FieldType = "signature"
    required: bool = True
    placeholder: Optional[str] = None

    value: Optional[str] = None
    signed_at: Optional[datetime] = None

    def to_create_payload(self, signer_id: str) -> Dict[str, Any]:
        payload = self.to_update_payload()
        payload.update(signer_id=signer_id, field_type=self.field_type)
        payload["font_family"] = self.font_family or "Arial"
        return payload

    def to_update_payload(self) -> Dict[str, Any]:
        return {
            "page_number": self.page,
            "x_position": self.x,
            "y_position": self.y,
            "width": self.width,
            "height": self.height,
            "font_size": self.font_size,
            "font_family": self.font_family,
            "color": self.color,
            "alignment": self.alignment,
            "placeholder": self.placeholder,
            "required": self.required,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "PlacedSignature":
        signer = record.get("signer") or {}
        return cls(
            id=record["id"],
            email=signer.get("email") or "",
            x=record["x_position"],
            y=record["y_position"],
            width=record["width"],
            height=record["height"],
            page=record["page_number"],
            font_size=record.get("font_size", 14),
            font_family=record.get("font_family"),
            color=record.get("color") or "#000000",
            alignment=record.get("alignment") or "left",
            field_type=record.get("field_type") or "signature",
            required=record.get("required", True),
            placeholder=record.get("placeholder"),
            value=record.get("value"),
            signed_at=record.get("signed_at") or None,
        )


class QueuedOperation(BaseModel):
    field_id: str
    operation: Literal["update"]
    data: PlacedSignature
    timestamp: float


class SyncStatus(BaseModel):
    synced_count: int
    pending_count: int


class SyncSummary(BaseModel):
    successful: int
    failed: int
    total: int
