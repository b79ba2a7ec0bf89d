from typing import Optional

from fastapi import Request
from sqlmodel import Session, select

from .models import AuditEvent
from .utils import canonical_json, sha256_bytes

def append_event(session: Session, document_id: str, actor: str, action: str, meta: dict,
                 request: Optional[Request] = None, commit: bool = True) -> AuditEvent:
    last = session.exec(
        select(AuditEvent).where(AuditEvent.document_id == document_id).order_by(AuditEvent.id.desc())
    ).first()
    prev_hash = last.hash if last else "0" * 64
    payload = {"actor": actor, "action": action, "meta": meta}
    event = AuditEvent(
        document_id=document_id,
        actor=actor,
        action=action,
        meta_json=canonical_json(payload),
        prev_hash=prev_hash,
        ip=(request.headers.get("x-forwarded-for") or (request.client.host if request.client else None)) if request else None,
        ua=request.headers.get("user-agent") if request else None,
    )
    event.hash = sha256_bytes((prev_hash + event.meta_json).encode())
    session.add(event)
    if commit:
        session.commit()
    else:
        session.flush()
    return event
