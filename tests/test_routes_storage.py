"""Tests for the storage browsing API."""

from datetime import datetime, timedelta, timezone

import pytest

from docvault.db.models import Document
from docvault.ingest.processor import ProcessUploadParams

MISSING_ID = "00000000-0000-0000-0000-000000000000"


@pytest.fixture
def ingest(app):
    processor = app.state.processor

    def _ingest(relative_path, owner_id="U1"):
        return processor.process_upload_complete(
            ProcessUploadParams(
                relative_path=relative_path,
                owner_id=owner_id,
                storage_key=f"uploads/{relative_path.replace('/', '_')}",
                file_size=5,
                file_type="text/plain",
            )
        )

    return _ingest


def test_browsing_requires_a_user(client):
    response = client.get("/api/v1/storage/folders/root")

    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_root_folders(client, ingest, auth_headers):
    ingest("Invoices/2024/march.pdf")
    ingest("Contracts/lease.pdf")
    ingest("Theirs/x.txt", owner_id="U2")

    response = client.get("/api/v1/storage/folders/root", headers=auth_headers("U1"))

    assert response.status_code == 200
    assert sorted(f["name"] for f in response.json()) == ["Contracts", "Invoices"]
    assert all(f["is_root_folder"] for f in response.json())


def test_get_folder(client, ingest, auth_headers):
    year = ingest("Invoices/2024/march.pdf").folders[1]

    response = client.get(f"/api/v1/storage/folders/{year.id}", headers=auth_headers("U1"))

    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "2024"
    assert body["path"] == "Invoices/2024"
    assert body["is_root_folder"] is False


def test_get_folder_errors(client, ingest, auth_headers):
    folder = ingest("Invoices/march.pdf").folders[0]

    assert client.get("/api/v1/storage/folders/nope", headers=auth_headers("U1")).status_code == 400
    assert client.get(f"/api/v1/storage/folders/{MISSING_ID}", headers=auth_headers("U1")).status_code == 404
    assert client.get(f"/api/v1/storage/folders/{folder.id}", headers=auth_headers("U2")).status_code == 404


def test_folder_contents(client, ingest, auth_headers):
    invoices = ingest("Invoices/summary.xlsx").folders[0]
    ingest("Invoices/2024/march.pdf")

    response = client.get(
        f"/api/v1/storage/folders/{invoices.id}/contents", headers=auth_headers("U1")
    )

    assert response.status_code == 200
    body = response.json()
    assert body["folder"]["id"] == invoices.id
    assert [f["name"] for f in body["subfolders"]] == ["2024"]
    assert [d["title"] for d in body["documents"]] == ["summary"]
    assert body["documents"][0]["current_attachment"]["file_name"] == "summary.xlsx"


def test_subfolders(client, ingest, auth_headers):
    invoices = ingest("Invoices/2023/a.pdf").folders[0]
    ingest("Invoices/2024/b.pdf")

    response = client.get(
        f"/api/v1/storage/folders/{invoices.id}/subfolders", headers=auth_headers("U1")
    )

    assert [f["name"] for f in response.json()] == ["2023", "2024"]


def test_get_document(client, ingest, auth_headers):
    result = ingest("Invoices/march.pdf")

    response = client.get(f"/api/v1/storage/documents/{result.document.id}", headers=auth_headers("U1"))

    assert response.status_code == 200
    body = response.json()
    assert body["title"] == "march"
    assert body["type"] == "General"
    assert body["folder_id"] == result.folders[0].id
    assert body["current_attachment"]["id"] == result.attachment.id
    assert body["current_attachment"]["version"] == 1

    assert (
        client.get(f"/api/v1/storage/documents/{result.document.id}", headers=auth_headers("U2")).status_code
        == 404
    )


def test_list_documents(client, ingest, auth_headers):
    ingest("Invoices/march.pdf")
    ingest("Invoices/2024/april.pdf")
    ingest("notes.txt")
    ingest("Other/theirs.pdf", owner_id="U2")

    response = client.get("/api/v1/storage/documents", headers=auth_headers("U1"))

    assert response.status_code == 200
    documents = response.json()
    assert sorted(d["title"] for d in documents) == ["april", "march", "notes"]
    assert all(d["current_attachment"]["version"] == 1 for d in documents)

    assert client.get("/api/v1/storage/documents", headers=auth_headers("U3")).json() == []
    assert client.get("/api/v1/storage/documents").status_code == 401


def test_recent_files(client, app, ingest, auth_headers):
    for i in range(12):
        ingest(f"file{i:02d}.txt")

    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    session_factory = app.state.repository._session_factory
    with session_factory.begin() as session:
        for i, document in enumerate(session.query(Document).order_by(Document.title)):
            document.updated_at = base + timedelta(hours=i)

    default = client.get("/api/v1/storage/recent", headers=auth_headers("U1")).json()
    assert default["limit"] == 10
    assert len(default["documents"]) == 10
    assert default["documents"][0]["title"] == "file11"

    limited = client.get("/api/v1/storage/recent?limit=3", headers=auth_headers("U1")).json()
    assert [d["title"] for d in limited["documents"]] == ["file11", "file10", "file09"]

    capped = client.get("/api/v1/storage/recent?limit=1000", headers=auth_headers("U1")).json()
    assert capped["limit"] == 100
    assert len(capped["documents"]) == 12

    assert client.get("/api/v1/storage/recent?limit=0", headers=auth_headers("U1")).status_code == 422
