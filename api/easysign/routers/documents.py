import logging
import smtplib
import time
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from minio.error import S3Error
from sqlmodel import Session, select, delete
from ..audit import append_event
from ..auth import require_admin_access
from ..config import APP_URL
from ..db import get_session
from ..email import build_invitation, send_email
from ..models import AuditEvent, Document, Signer, SignatureField
from ..schemas import DocumentCreate, DocumentRename, DocumentSend, UploadUrlRequest
from ..storage import delete_object, presigned_upload_url, presigned_view_url

logger = logging.getLogger(__name__)

router = APIRouter()

def ensure_document(session: Session, document_id: str) -> Document:
    document = session.get(Document, document_id)
    if not document:
        raise HTTPException(404, "Document not found")
    return document

def _serialize_document(doc: Document):
    return {
        "id": doc.id,
        "filename": doc.filename,
        "file_size": doc.file_size,
        "page_count": doc.page_count,
        "subject": doc.subject,
        "message": doc.message,
        "status": doc.status,
        "created_at": doc.created_at,
    }

def _finalize(session: Session, document: Document, request: Request):
    signers = session.exec(select(Signer).where(Signer.document_id == document.id)).all()
    if not signers:
        raise HTTPException(400, "Document must have at least one signer")
    fields = session.exec(select(SignatureField).where(SignatureField.document_id == document.id)).all()
    for signer in signers:
        if not any(f.signer_id == signer.id for f in fields):
            raise HTTPException(400, f'Signer "{signer.name}" has no signature fields assigned')
    document.status = "pending"
    session.add(document)
    for signer in signers:
        if signer.status == "draft":
            signer.status = "pending"
            session.add(signer)
    append_event(session, document.id, "user:admin", "document_finalized",
                 {"signers": len(signers), "fields": len(fields)}, request=request)

@router.post("/upload-url")
def create_upload_url(
    payload: UploadUrlRequest,
    ctx=Depends(require_admin_access),
):
    if not payload.filename.strip() or payload.file_size <= 0:
        raise HTTPException(400, "Missing file info")
    key = f"documents/{int(time.time() * 1000)}-{quote(payload.filename)}"
    return {"upload_url": presigned_upload_url(key), "key": key}

@router.post("", status_code=201)
def create_document(
    payload: DocumentCreate,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    if not payload.filename.strip() or not payload.key.strip():
        raise HTTPException(400, "Missing required fields: filename, key")
    doc = Document(
        filename=payload.filename,
        s3_key=payload.key,
        file_size=payload.file_size,
        page_count=payload.page_count,
        subject=payload.subject,
        message=payload.message,
        status="draft",
    )
    session.add(doc)
    session.commit()
    session.refresh(doc)
    return _serialize_document(doc)

@router.get("")
def list_documents(
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    docs = session.exec(select(Document).order_by(Document.created_at.desc())).all()
    return [_serialize_document(d) for d in docs]

@router.get("/{document_id}")
def get_document(
    document_id: str,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    return _serialize_document(ensure_document(session, document_id))

@router.patch("/{document_id}")
def rename_document(
    document_id: str,
    payload: DocumentRename,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    doc = ensure_document(session, document_id)
    doc.filename = payload.filename
    session.add(doc)
    session.commit()
    session.refresh(doc)
    return _serialize_document(doc)

@router.delete("/{document_id}", status_code=204)
def delete_document(
    document_id: str,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    doc = ensure_document(session, document_id)
    key = doc.s3_key
    session.exec(delete(SignatureField).where(SignatureField.document_id == document_id))
    session.exec(delete(Signer).where(Signer.document_id == document_id))
    session.exec(delete(AuditEvent).where(AuditEvent.document_id == document_id))
    session.delete(doc)
    session.commit()
    try:
        delete_object(key)
    except S3Error as exc:
        logger.warning("stored object %s for document %s not removed: %s", key, document_id, exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.get("/{document_id}/view-url")
def get_view_url(
    document_id: str,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    doc = ensure_document(session, document_id)
    return {"view_url": presigned_view_url(doc.s3_key, doc.filename)}

@router.post("/{document_id}/finalize")
def finalize_document(
    document_id: str,
    request: Request,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    doc = ensure_document(session, document_id)
    if doc.status != "draft":
        raise HTTPException(400, "Document is already finalized")
    _finalize(session, doc, request)
    session.refresh(doc)
    return {"message": "Document finalized successfully", "document": _serialize_document(doc)}

@router.post("/{document_id}/send")
def send_invitations(
    document_id: str,
    request: Request,
    payload: DocumentSend | None = None,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    doc = ensure_document(session, document_id)
    mode = payload.mode if payload else "initial"
    if doc.status == "completed":
        raise HTTPException(400, "Document is already completed")
    if mode == "stage" and doc.status == "draft":
        raise HTTPException(400, "Document has not been sent yet")
    signers = session.exec(
        select(Signer).where(Signer.document_id == document_id).order_by(Signer.order, Signer.created_at)
    ).all()
    if not signers:
        raise HTTPException(400, "No signers added to this document")
    if doc.status == "draft":
        _finalize(session, doc, request)
        session.refresh(doc)

    ordered = any(s.order != 0 for s in signers)
    unsigned = [s for s in signers if s.status != "signed"]
    recipients = unsigned
    if ordered and unsigned:
        current_stage = min(s.order for s in unsigned)
        recipients = [s for s in unsigned if s.order == current_stage]
    if not recipients:
        raise HTTPException(400, "No eligible recipients to send at this stage")

    sent, failed = 0, []
    for signer in recipients:
        link = f"{APP_URL}/sign/{signer.signing_token}"
        subject, text_body, html_body = build_invitation(
            signer.name, signer.email, doc.filename, link, subject=doc.subject, message=doc.message,
        )
        try:
            send_email(signer.email, subject, text_body, html_body=html_body)
            sent += 1
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("invitation to %s for document %s failed: %s", signer.email, document_id, exc)
            failed.append({"email": signer.email, "error": str(exc)})

    append_event(
        session, document_id, "user:admin",
        "invitations_sent_stage" if ordered else "invitations_sent_all",
        {"sent": sent, "failed": len(failed)}, request=request,
    )
    return {
        "sent": sent,
        "failed": failed,
        "mode": mode,
        "ordering": "ordered" if ordered else "parallel",
    }
