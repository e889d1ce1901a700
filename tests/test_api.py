"""Tests for the HTTP routes."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import paragraphs
from readx.api import routes

VIEWPORT = {"width": 400, "height": 800, "x": 0, "y": 0, "padding": 20}


@pytest.fixture
def client(tmp_path):
    routes.load_config(str(tmp_path / "missing.yaml"))
    routes.init_store({"persistence": {"data_dir": str(tmp_path)}})
    app = FastAPI()
    app.include_router(routes.router)
    with TestClient(app) as c:
        yield c
        if routes._session is not None:
            c.post("/api/close")
    routes._store.close()
    routes._store = None


def open_doc(client, units: int = 3, title: str = "essay") -> dict:
    resp = client.post("/api/documents", json={
        "title": title,
        "text": paragraphs(units),
        "viewport": VIEWPORT,
        "mode": "paragraph",
    })
    assert resp.status_code == 200
    return resp.json()


class TestDocuments:
    def test_health(self, client):
        body = client.get("/api/health").json()
        assert body["store_ready"]
        assert not body["session_active"]

    def test_open_document(self, client):
        info = open_doc(client, units=3)
        assert info["document_key"] == "essay"
        assert info["total_units"] == 3
        assert info["current_unit"] == 0
        assert not info["resumed"]

    def test_title_required(self, client):
        resp = client.post("/api/documents", json={"title": "  ", "text": "words"})
        assert resp.status_code == 400

    def test_requires_document(self, client):
        assert client.get("/api/progress").status_code == 400
        assert client.post("/api/attention", json={"x": 1, "y": 1}).status_code == 400

    def test_unit_lines(self, client):
        open_doc(client)
        body = client.get("/api/units/0").json()
        assert body["is_current"]
        assert len(body["lines"]) >= 2
        assert body["lines"][0]["x"] == 20
        assert client.get("/api/units/3").status_code == 404

    def test_upload_text_file(self, client):
        resp = client.post("/api/upload", files={"file": ("story.txt", b"Once upon a time.", "text/plain")})
        assert resp.status_code == 200
        assert resp.json()["document_key"] == "story.txt"

    def test_upload_unsupported(self, client):
        resp = client.post("/api/upload", files={"file": ("sheet.xlsx", b"data", "application/octet-stream")})
        assert resp.status_code == 400


class TestReading:
    def test_attention_completes_unit(self, client):
        open_doc(client)
        for line in client.get("/api/units/0").json()["lines"]:
            resp = client.post("/api/attention", json={
                "x": line["x"] + line["width"],
                "y": line["y"] + line["height"] / 2,
                "confidence": 0.9,
            })
            assert resp.status_code == 200

        progress = client.get("/api/progress").json()
        assert progress["completed_units"] == [0]
        assert progress["current_unit"] == 1
        assert progress["stats"]["completion_percentage"] == 33

    def test_confidence_out_of_range_rejected(self, client):
        open_doc(client)
        resp = client.post("/api/attention", json={"x": 1, "y": 1, "confidence": 1.5})
        assert resp.status_code == 422

    def test_navigation(self, client):
        open_doc(client)
        assert client.post("/api/navigate", json={"index": 2}).json()["current_unit"] == 2
        assert client.post("/api/navigate", json={"direction": "previous"}).json()["current_unit"] == 1
        assert client.post("/api/navigate", json={"index": 7}).status_code == 404
        assert client.post("/api/navigate", json={"direction": "sideways"}).status_code == 400

    def test_mark_complete_until_done(self, client):
        open_doc(client, units=2)
        client.post("/api/complete")
        body = client.post("/api/complete").json()
        assert body["document_complete"]
        completion = client.get("/api/progress").json()["completion"]
        assert completion["completed_units"] == 2
        assert completion["completion_percentage"] == 100

    def test_viewport_update_remaps_lines(self, client):
        open_doc(client)
        body = client.post("/api/viewport", json={"viewport": {"width": 0, "height": 0}}).json()
        assert body["lines"] is None
        body = client.post("/api/viewport", json={"viewport": VIEWPORT, "text_size": "large"}).json()
        assert body["lines"] >= 2


class TestPersistence:
    def test_reopen_resumes_and_lists_sessions(self, client):
        open_doc(client, units=4)
        client.post("/api/complete")
        assert client.post("/api/close").json()["status"] == "closed"

        info = open_doc(client, units=4)
        assert info["resumed"]
        assert info["current_unit"] == 1
        assert info["completed_units"] == [0]

        sessions = client.get("/api/sessions").json()["sessions"]
        assert len(sessions) == 1
        assert sessions[0]["completed_units"] == 1

    def test_sessions_filtered_by_document(self, client):
        open_doc(client, units=2, title="first")
        client.post("/api/complete")
        client.post("/api/close")
        open_doc(client, units=2, title="second")
        client.post("/api/complete")
        client.post("/api/close")

        sessions = client.get("/api/sessions", params={"document_key": "first"}).json()["sessions"]
        assert [s["document_key"] for s in sessions] == ["first"]
        assert len(client.get("/api/sessions").json()["sessions"]) == 2

    def test_completed_documents(self, client):
        open_doc(client, units=1)
        client.post("/api/complete")
        client.post("/api/close")
        documents = client.get("/api/completed").json()["documents"]
        assert [d["document_key"] for d in documents] == ["essay"]
