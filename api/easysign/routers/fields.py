import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select
from ..auth import require_admin_access
from ..db import get_session
from ..models import Signer, SignatureField
from ..schemas import FieldCreate, FieldUpdate
from .documents import ensure_document

logger = logging.getLogger(__name__)

router = APIRouter()

def _serialize_field(field: SignatureField, signer: Signer | None):
    return {
        "id": field.id,
        "document_id": field.document_id,
        "signer_id": field.signer_id,
        "page_number": field.page_number,
        "x_position": field.x_position,
        "y_position": field.y_position,
        "width": field.width,
        "height": field.height,
        "field_type": field.field_type,
        "required": field.required,
        "font_size": field.font_size,
        "font_family": field.font_family,
        "color": field.color,
        "alignment": field.alignment,
        "placeholder": field.placeholder,
        "value": field.value,
        "signed_at": field.signed_at,
        "created_at": field.created_at,
        "updated_at": field.updated_at,
        "signer": {
            "id": signer.id,
            "email": signer.email,
            "name": signer.name,
            "status": signer.status,
            "order": signer.order,
        } if signer else None,
    }

def _ensure_field(session: Session, document_id: str, field_id: str) -> SignatureField:
    field = session.get(SignatureField, field_id)
    if not field or field.document_id != document_id:
        raise HTTPException(404, "Field not found")
    return field

def _ensure_draft_owner(session: Session, field: SignatureField, verb: str) -> Signer:
    signer = session.get(Signer, field.signer_id)
    if not signer or signer.status != "draft":
        logger.info("refusing to %s field %s: signer status is %s",
                    verb, field.id, signer.status if signer else None)
        raise HTTPException(400, f"Cannot {verb} fields after document is finalized")
    return signer

@router.get("/{document_id}/fields")
def list_fields(
    document_id: str,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    ensure_document(session, document_id)
    rows = session.exec(
        select(SignatureField, Signer)
        .join(Signer, Signer.id == SignatureField.signer_id, isouter=True)
        .where(SignatureField.document_id == document_id)
        .order_by(SignatureField.page_number, SignatureField.created_at)
    ).all()
    return [_serialize_field(field, signer) for field, signer in rows]

@router.post("/{document_id}/fields", status_code=201)
def create_field(
    document_id: str,
    payload: FieldCreate,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    ensure_document(session, document_id)
    signer = session.get(Signer, payload.signer_id)
    if not signer or signer.document_id != document_id:
        raise HTTPException(400, "Invalid signer")
    if signer.status != "draft":
        raise HTTPException(400, "Cannot add fields after document is finalized")
    field = SignatureField(document_id=document_id, **payload.model_dump())
    session.add(field)
    session.commit()
    session.refresh(field)
    return _serialize_field(field, signer)

@router.patch("/{document_id}/fields/{field_id}")
def update_field(
    document_id: str,
    field_id: str,
    payload: FieldUpdate,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    ensure_document(session, document_id)
    field = _ensure_field(session, document_id, field_id)
    signer = _ensure_draft_owner(session, field, "modify")
    data = payload.model_dump(exclude_unset=True)
    for key, value in data.items():
        if value is None and key != "placeholder":
            continue
        setattr(field, key, value)
    field.updated_at = datetime.utcnow()
    session.add(field)
    session.commit()
    session.refresh(field)
    logger.debug("updated field %s: x=%s y=%s w=%s h=%s", field.id,
                 field.x_position, field.y_position, field.width, field.height)
    return _serialize_field(field, signer)

@router.delete("/{document_id}/fields/{field_id}")
def delete_field(
    document_id: str,
    field_id: str,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    ensure_document(session, document_id)
    field = _ensure_field(session, document_id, field_id)
    _ensure_draft_owner(session, field, "delete")
    session.delete(field)
    session.commit()
    return {"message": "Field deleted successfully"}
