"""
Tests for the HTTP server

Runs the FastAPI app (including its lifespan) against a temporary database
and upload directory.
"""

import os

import pytest
from unittest.mock import patch


@pytest.fixture
def client(tmp_path):
    from fastapi.testclient import TestClient
    from keeper.scribe import server

    env = {
        "KEEPER_DB_PATH": str(tmp_path / "data" / "knowledge.db"),
        "KEEPER_UPLOAD_DIR": str(tmp_path / "uploads"),
        "KEEPER_DEBUG": "false",
    }
    with patch("keeper.common.config.CONFIG_PATH", tmp_path / "missing.json"), \
         patch.dict(os.environ, env, clear=False):
        with TestClient(server.app) as test_client:
            yield test_client


def _upload(client, files, name="Sarah Connor", title="Plant Engineer", years="12"):
    return client.post(
        "/api/files",
        data={"employeeName": name, "jobTitle": title, "yearsService": years},
        files=[("knowledgeFiles", f) for f in files],
    )


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["initialized"] is True


class TestEmployees:
    def test_create_and_list(self, client):
        response = client.post("/api/employees", json={"name": "Sarah", "title": "Engineer", "years": "7"})

        assert response.status_code == 200
        employee = response.json()["employee"]
        assert employee["name"] == "Sarah"
        assert employee["years"] == 7

        listed = client.get("/api/employees").json()
        assert [e["id"] for e in listed] == [employee["id"]]

    def test_create_requires_name_and_title(self, client):
        response = client.post("/api/employees", json={"name": "Sarah"})

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_create_rejects_blank_name(self, client):
        response = client.post("/api/employees", json={"name": "   ", "title": "Engineer"})

        assert response.status_code == 400
        assert client.get("/api/employees").json() == []

    def test_delete_not_implemented(self, client):
        response = client.delete("/api/employees/sarah-ab12cd34")

        assert response.status_code == 200
        assert response.json()["message"] == "Employee deletion not yet implemented"


class TestUpload:
    def test_upload_text_file(self, client, tmp_path):
        response = _upload(client, [("cooling.txt", b"The chiller was serviced in May.", "text/plain")])

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["filesProcessed"] == 1
        assert data["employee"]["file_count"] == 1
        assert data["files"][0]["name"] == "cooling.txt"

        saved = list((tmp_path / "uploads").iterdir())
        assert len(saved) == 1
        assert saved[0].suffix == ".txt"
        assert saved[0].name != "cooling.txt"

    def test_upload_rejects_type(self, client, tmp_path):
        response = _upload(client, [("tool.exe", b"MZ", "application/octet-stream")])

        assert response.status_code == 400
        assert "not supported" in response.json()["error"]
        assert list((tmp_path / "uploads").iterdir()) == []
        assert client.get("/api/employees").json() == []

    def test_upload_over_size_limit(self, client, tmp_path):
        from keeper.scribe import server

        server.config.upload.max_file_size = 16
        response = _upload(client, [
            ("small.txt", b"ok", "text/plain"),
            ("big.txt", b"x" * 64, "text/plain"),
        ])

        assert response.status_code == 400
        assert "exceeds" in response.json()["error"]
        assert list((tmp_path / "uploads").iterdir()) == []
        assert client.get("/api/employees").json() == []

    def test_upload_requires_files(self, client):
        response = _upload(client, [])

        assert response.status_code == 400


class TestChat:
    def test_chat_round_trip(self, client):
        note = b"Sarah resolved the cooling system failure by replacing the thermal sensor."
        employee = _upload(client, [("incidents.txt", note, "text/plain")]).json()["employee"]

        response = client.post(
            "/api/chat",
            json={"message": "How did Sarah handle cooling system failures?", "employeeId": employee["id"]},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert note.decode() in data["text"]
        assert data["sources"] == ["incidents.txt"]
        assert data["documents"][0]["name"] == "incidents.txt"
        assert data["confidence"] == pytest.approx(0.3)
        assert "timestamp" in data

        history = client.get(f"/api/chat/{employee['id']}/history").json()
        assert len(history["turns"]) == 1
        assert history["turns"][0]["sources"] == ["incidents.txt"]

    def test_chat_requires_fields(self, client):
        response = client.post("/api/chat", json={"message": "hello there"})

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_chat_clarification(self, client):
        response = client.post("/api/chat", json={"message": "is it ok", "employeeId": "anyone"})

        assert response.status_code == 200
        assert response.json()["text"] == "Could you please provide more specific details in your question?"

    def test_chat_unknown_employee_not_found(self, client):
        response = client.post("/api/chat", json={"message": "pump status", "employeeId": "ghost-00000000"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["text"].startswith("I couldn't find specific information")
        assert data["confidence"] == 0.0
        assert data["sources"] == []


class TestSaveUpload:
    def test_stops_past_limit(self, tmp_path):
        import io
        from types import SimpleNamespace
        from keeper.scribe import server
        from keeper.scribe.capture import CaptureInputError

        source = io.BytesIO(b"x" * (server.UPLOAD_CHUNK_SIZE * 3))
        upload = SimpleNamespace(filename="big.txt", file=source)

        with pytest.raises(CaptureInputError, match="exceeds"):
            server._save_upload(upload, tmp_path, max_bytes=10)

        assert list(tmp_path.iterdir()) == []
        assert source.tell() == server.UPLOAD_CHUNK_SIZE

    def test_writes_within_limit(self, tmp_path):
        import io
        from types import SimpleNamespace
        from keeper.scribe import server

        upload = SimpleNamespace(filename="notes.txt", file=io.BytesIO(b"pump log"))

        saved = server._save_upload(upload, tmp_path, max_bytes=8)

        assert saved.original_name == "notes.txt"
        assert saved.size == 8
        assert saved.path.read_bytes() == b"pump log"
