from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlmodel import Session, select, delete, func
from ..audit import append_event
from ..auth import require_admin_access
from ..db import get_session
from ..models import Signer, SignatureField
from ..schemas import SignerCreate, SignerUpdate
from ..utils import is_valid_email, normalize_email
from .documents import ensure_document

router = APIRouter()

def _field_count(session: Session, signer_id: str) -> int:
    return session.exec(
        select(func.count()).select_from(SignatureField).where(SignatureField.signer_id == signer_id)
    ).one()

def _serialize_signer(session: Session, signer: Signer):
    return {
        "id": signer.id,
        "document_id": signer.document_id,
        "email": signer.email,
        "name": signer.name,
        "order": signer.order,
        "status": signer.status,
        "signing_token": signer.signing_token,
        "field_count": _field_count(session, signer.id),
        "created_at": signer.created_at,
        "updated_at": signer.updated_at,
    }

def _ensure_signer(session: Session, document_id: str, signer_id: str) -> Signer:
    signer = session.get(Signer, signer_id)
    if not signer or signer.document_id != document_id:
        raise HTTPException(404, "Signer not found")
    return signer

def _email_taken(session: Session, document_id: str, email: str, exclude_id: str | None = None) -> bool:
    query = select(Signer).where(Signer.document_id == document_id, Signer.email == email)
    if exclude_id:
        query = query.where(Signer.id != exclude_id)
    return session.exec(query).first() is not None

@router.get("/{document_id}/signers")
def list_signers(
    document_id: str,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    ensure_document(session, document_id)
    signers = session.exec(
        select(Signer).where(Signer.document_id == document_id).order_by(Signer.order, Signer.created_at)
    ).all()
    return [_serialize_signer(session, s) for s in signers]

@router.post("/{document_id}/signers", status_code=201)
def create_signer(
    document_id: str,
    payload: SignerCreate,
    request: Request,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    if not payload.email.strip() or not payload.name.strip():
        raise HTTPException(400, "Email and name are required and cannot be empty")
    if not is_valid_email(payload.email):
        raise HTTPException(400, "Invalid email format")
    ensure_document(session, document_id)
    finalized = session.exec(
        select(Signer).where(Signer.document_id == document_id, Signer.status != "draft")
    ).first()
    if finalized:
        raise HTTPException(400, "Cannot add signers to finalized documents. Create a new draft document.")
    email = normalize_email(payload.email)
    if _email_taken(session, document_id, email):
        raise HTTPException(400, "A signer with this email already exists for this document")
    signer = Signer(
        document_id=document_id,
        email=email,
        name=payload.name.strip(),
        order=payload.order,
        status="draft",
    )
    session.add(signer)
    session.flush()
    append_event(session, document_id, "user:admin", "signer_added",
                 {"signer_id": signer.id, "email": email}, request=request)
    session.refresh(signer)
    return _serialize_signer(session, signer)

@router.patch("/{document_id}/signers/{signer_id}")
def update_signer(
    document_id: str,
    signer_id: str,
    payload: SignerUpdate,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    ensure_document(session, document_id)
    signer = _ensure_signer(session, document_id, signer_id)
    if signer.status != "draft":
        raise HTTPException(400, "Cannot modify signer after document is finalized")
    data = payload.model_dump(exclude_unset=True)
    if data.get("email") is not None:
        if not is_valid_email(data["email"]):
            raise HTTPException(400, "Invalid email format")
        data["email"] = normalize_email(data["email"])
        if data["email"] != signer.email and _email_taken(session, document_id, data["email"], exclude_id=signer_id):
            raise HTTPException(400, "A signer with this email already exists for this document")
    if data.get("name") is not None and not data["name"].strip():
        raise HTTPException(400, "Name cannot be empty")
    for key, value in data.items():
        if value is not None:
            setattr(signer, key, value)
    signer.updated_at = datetime.utcnow()
    session.add(signer)
    session.commit()
    session.refresh(signer)
    return _serialize_signer(session, signer)

@router.delete("/{document_id}/signers/{signer_id}")
def delete_signer(
    document_id: str,
    signer_id: str,
    request: Request,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    ensure_document(session, document_id)
    signer = _ensure_signer(session, document_id, signer_id)
    if signer.status != "draft":
        raise HTTPException(400, "Cannot delete signer from finalized documents")
    email = signer.email
    session.exec(delete(SignatureField).where(SignatureField.signer_id == signer_id))
    session.delete(signer)
    append_event(session, document_id, "user:admin", "signer_deleted",
                 {"signer_id": signer_id, "email": email}, request=request)
    return {"message": "Signer deleted successfully"}
