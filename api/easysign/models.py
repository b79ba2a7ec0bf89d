import uuid
from typing import Optional
from datetime import datetime
from sqlmodel import SQLModel, Field as ORMField

def _new_id() -> str:
    return uuid.uuid4().hex

def _new_token() -> str:
    return str(uuid.uuid4())

class Document(SQLModel, table=True):
    id: str = ORMField(default_factory=_new_id, primary_key=True)
    filename: str
    s3_key: str
    file_size: int = 0
    page_count: Optional[int] = None
    subject: Optional[str] = None
    message: Optional[str] = None
    status: str = "draft"  # draft|pending|completed
    created_at: datetime = ORMField(default_factory=datetime.utcnow)

class Signer(SQLModel, table=True):
    id: str = ORMField(default_factory=_new_id, primary_key=True)
    document_id: str = ORMField(index=True)
    email: str
    name: str
    order: int = 0
    status: str = "draft"  # draft|pending|seen|signed
    signing_token: str = ORMField(default_factory=_new_token, unique=True, index=True)
    created_at: datetime = ORMField(default_factory=datetime.utcnow)
    updated_at: datetime = ORMField(default_factory=datetime.utcnow)

class SignatureField(SQLModel, table=True):
    id: str = ORMField(default_factory=_new_id, primary_key=True)
    document_id: str = ORMField(index=True)
    signer_id: str = ORMField(index=True)
    page_number: int
    x_position: float
    y_position: float
    width: float
    height: float
    field_type: str = "signature"  # signature|initials|date|text|checkbox
    required: bool = True
    font_size: float = 14
    font_family: str = "Arial"
    color: str = "#000000"
    alignment: str = "left"
    placeholder: Optional[str] = None
    value: Optional[str] = None
    signed_at: Optional[datetime] = None
    created_at: datetime = ORMField(default_factory=datetime.utcnow)
    updated_at: datetime = ORMField(default_factory=datetime.utcnow)

class AuditEvent(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    document_id: str = ORMField(index=True)
    actor: str  # system|signer:<id>|user:<role>
    action: str  # signer_added|signer_deleted|document_finalized|invitations_sent|document_viewed|document_signed|document_completed
    meta_json: str = "{}"
    ip: Optional[str] = None
    ua: Optional[str] = None
    at: datetime = ORMField(default_factory=datetime.utcnow)
    prev_hash: Optional[str] = None
    hash: Optional[str] = None
