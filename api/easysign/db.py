import logging

from sqlmodel import SQLModel, create_engine, Session
from sqlalchemy import text, inspect
from .config import DATABASE_URL

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, echo=False, pool_pre_ping=True, connect_args=_connect_args)

def init_db():
    from .models import Document, Signer, SignatureField, AuditEvent
    SQLModel.metadata.create_all(engine)
    _ensure_signer_email_unique_index()

def get_session():
    with Session(engine) as session:
        yield session

def _ensure_signer_email_unique_index():
    inspector = inspect(engine)
    try:
        indexes = inspector.get_indexes("signer")
    except Exception:
        return
    if any(idx.get("name") == "uq_signer_document_email" for idx in indexes):
        return
    with engine.begin() as conn:
        duplicates = conn.execute(
            text("SELECT document_id, email FROM signer GROUP BY document_id, email HAVING COUNT(*) > 1")
        ).fetchall()
        if duplicates:
            pairs = ", ".join(f"{row[0]}:{row[1]}" for row in duplicates)
            logging.getLogger("uvicorn.error").warning(
                "duplicate signer emails detected; resolve before enforcing uniqueness: %s", pairs
            )
            return
        conn.execute(
            text("CREATE UNIQUE INDEX IF NOT EXISTS uq_signer_document_email ON signer(document_id, email)")
        )
