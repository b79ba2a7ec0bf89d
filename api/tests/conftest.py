import os
from typing import Dict, List

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session, create_engine

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

from easysign.main import app  # noqa: E402
from easysign import db as db_module  # noqa: E402
from easysign.db import get_session  # noqa: E402
from easysign import storage as storage_module  # noqa: E402
from easysign.routers import documents as documents_router  # noqa: E402
from easysign.routers import signing as signing_router  # noqa: E402

ADMIN_HEADERS = {"X-Access-Token": os.getenv("ADMIN_ACCESS_TOKEN", "admin-test-token")}


@pytest.fixture(scope="session")
def test_engine(tmp_path_factory):
    db_path = tmp_path_factory.mktemp("data") / "test.db"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    return engine


@pytest.fixture
def setup_db(test_engine):
    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def mock_storage(monkeypatch) -> Dict[str, List[str]]:
    calls: Dict[str, List[str]] = {"upload": [], "view": [], "deleted": []}

    def fake_presigned_upload_url(key: str) -> str:
        calls["upload"].append(key)
        return f"https://storage.test/upload/{key}"

    def fake_presigned_view_url(key: str, filename: str, attachment: bool = False) -> str:
        calls["view"].append(key)
        disposition = "attachment" if attachment else "inline"
        return f"https://storage.test/view/{key}?disposition={disposition}"

    def fake_delete_object(key: str):
        calls["deleted"].append(key)

    for target in (storage_module, documents_router, signing_router):
        if hasattr(target, "presigned_upload_url"):
            monkeypatch.setattr(target, "presigned_upload_url", fake_presigned_upload_url)
        if hasattr(target, "presigned_view_url"):
            monkeypatch.setattr(target, "presigned_view_url", fake_presigned_view_url)
        if hasattr(target, "delete_object"):
            monkeypatch.setattr(target, "delete_object", fake_delete_object)
    return calls


@pytest.fixture
def sent_emails(monkeypatch):
    messages = []

    def fake_send_email(to, subject, body, html_body=None, sender_name=None, reply_to=None):
        messages.append({"to": to, "subject": subject, "text": body, "html": html_body})

    monkeypatch.setattr(documents_router, "send_email", fake_send_email)
    return messages


@pytest.fixture
def override_db(test_engine, setup_db, mock_storage):
    db_module.engine = test_engine

    def override_session():
        with Session(test_engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    yield test_engine
    app.dependency_overrides.clear()


@pytest.fixture
def client(override_db):
    with TestClient(app) as test_client:
        yield test_client


def create_document(client, filename="contract.pdf", page_count=3, **extra):
    response = client.post(
        "/api/documents",
        json={"filename": filename, "key": f"documents/1-{filename}", "file_size": 1024,
              "page_count": page_count, **extra},
        headers=ADMIN_HEADERS,
    )
    assert response.status_code == 201
    return response.json()


def create_signer(client, document_id, email="alice@example.com", name="Alice", order=0):
    response = client.post(
        f"/api/documents/{document_id}/signers",
        json={"email": email, "name": name, "order": order},
        headers=ADMIN_HEADERS,
    )
    assert response.status_code == 201, response.text
    return response.json()


def create_field(client, document_id, signer_id, page=1, **extra):
    payload = {"signer_id": signer_id, "page_number": page, "x_position": 100, "y_position": 120,
               "width": 150, "height": 40, **extra}
    response = client.post(f"/api/documents/{document_id}/fields", json=payload, headers=ADMIN_HEADERS)
    assert response.status_code == 201, response.text
    return response.json()
