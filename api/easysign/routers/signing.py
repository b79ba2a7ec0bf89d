from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlmodel import Session, select
from ..audit import append_event
from ..db import get_session
from ..models import Document, Signer, SignatureField
from ..schemas import SignComplete
from ..storage import presigned_view_url

router = APIRouter()

# ---------- helpers ----------
def _load_signer(session: Session, token: str) -> tuple[Signer, Document]:
    signer = session.exec(select(Signer).where(Signer.signing_token == token)).first()
    if not signer:
        raise HTTPException(404, "Invalid signing link")
    doc = session.get(Document, signer.document_id)
    if not doc:
        raise HTTPException(404, "Invalid signing link")
    return signer, doc

def _signer_fields(session: Session, signer: Signer):
    return session.exec(
        select(SignatureField)
        .where(SignatureField.document_id == signer.document_id, SignatureField.signer_id == signer.id)
        .order_by(SignatureField.page_number, SignatureField.created_at)
    ).all()

# ---------- routes ----------

@router.get("/{token}")
def load_signing_session(token: str, request: Request, session: Session = Depends(get_session)):
    signer, doc = _load_signer(session, token)
    if doc.status != "pending":
        raise HTTPException(400, "This document is not available for signing")
    fields = _signer_fields(session, signer)
    if signer.status == "pending":
        signer.status = "seen"
        signer.updated_at = datetime.utcnow()
        session.add(signer)
        append_event(session, doc.id, f"signer:{signer.id}", "document_viewed", {}, request=request)
        session.refresh(signer)
    return {
        "signer": {
            "id": signer.id,
            "name": signer.name,
            "email": signer.email,
            "status": signer.status,
        },
        "document": {
            "id": doc.id,
            "filename": doc.filename,
            "file_url": presigned_view_url(doc.s3_key, doc.filename),
            "page_count": doc.page_count,
            "subject": doc.subject,
            "message": doc.message,
        },
        "fields": [
            {
                "id": f.id,
                "page_number": f.page_number,
                "x": f.x_position,
                "y": f.y_position,
                "width": f.width,
                "height": f.height,
                "field_type": f.field_type,
                "font_size": f.font_size,
                "font_family": f.font_family,
                "color": f.color,
                "alignment": f.alignment,
                "required": f.required,
                "placeholder": f.placeholder,
                "value": f.value,
            }
            for f in fields
        ],
    }

@router.post("/{token}/complete")
def complete_signing(token: str, payload: SignComplete, request: Request, session: Session = Depends(get_session)):
    signer, doc = _load_signer(session, token)
    if doc.status != "pending":
        raise HTTPException(400, "This document is not available for signing")
    if signer.status == "signed":
        raise HTTPException(400, "Document already signed by this signer")
    if signer.status == "draft":
        raise HTTPException(400, "Signer has not been invited yet")

    fields = {f.id: f for f in _signer_fields(session, signer)}
    unknown = [fid for fid in payload.values if fid not in fields]
    if unknown:
        raise HTTPException(400, f"Unknown fields for this signer: {', '.join(sorted(unknown))}")
    values = {fid: v for fid, v in payload.values.items() if v is not None and str(v).strip()}
    missing = [fid for fid, f in fields.items() if f.required and fid not in values]
    if missing:
        raise HTTPException(400, f"Required fields missing a value: {', '.join(sorted(missing))}")

    now = datetime.utcnow()
    for fid, value in values.items():
        field = fields[fid]
        field.value = value
        field.signed_at = now
        field.updated_at = now
        session.add(field)
    signer.status = "signed"
    signer.updated_at = now
    session.add(signer)
    append_event(session, doc.id, f"signer:{signer.id}", "document_signed",
                 {"fields": sorted(values)}, request=request, commit=False)

    remaining = session.exec(
        select(Signer).where(Signer.document_id == doc.id, Signer.status != "signed")
    ).all()
    if not remaining:
        doc.status = "completed"
        session.add(doc)
        append_event(session, doc.id, "system", "document_completed", {}, commit=False)
    session.commit()
    return {
        "ok": True,
        "signer_status": "signed",
        "document_status": "completed" if not remaining else "pending",
        "waiting_on": len(remaining),
    }

@router.get("/{token}/download")
def get_download_url(token: str, session: Session = Depends(get_session)):
    signer, doc = _load_signer(session, token)
    return {"download_url": presigned_view_url(doc.s3_key, doc.filename, attachment=True)}
