"""
Integration tests for the HTTP routers.

The app runs with its lifespan against a temporary database and a
temporary PDF directory, so shutdown behavior can be checked as well.
"""

import os
import tempfile

import pytest
from fastapi.testclient import TestClient

from folio.services.highlights_service import HighlightsService
from folio.services.reading_progress_service import ReadingProgressService
from main import app

SELECTION = {
    "user_id": "u1",
    "book_id": "book",
    "page": 1,
    "rects": [{"x": 0.1, "y": 0.1, "w": 0.2, "h": 0.02}],
}
OWNER = {"user_id": "u1", "book_id": "book"}


@pytest.fixture
def db_path():
    with tempfile.TemporaryDirectory() as temp_dir:
        yield os.path.join(temp_dir, "reader.db")


@pytest.fixture
def client(db_path, pdf_dir, monkeypatch):
    monkeypatch.setenv("FOLIO_DB_PATH", db_path)
    monkeypatch.setenv("FOLIO_PDF_DIR", pdf_dir)
    with TestClient(app) as test_client:
        yield test_client


def open_book(client):
    response = client.post("/sessions/open", json={**OWNER, "filename": "sample.pdf"})
    assert response.status_code == 200
    return response.json()


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestHighlightsRouter:
    """Test the highlights endpoints"""

    def test_create_and_list(self, client):
        created = client.post("/highlights/merged", json=SELECTION)

        assert created.status_code == 200
        listed = client.get("/highlights/u1/book/1")
        assert [h["id"] for h in listed.json()] == [created.json()["id"]]

    def test_overlapping_selection_merges(self, client):
        client.post("/highlights/merged", json=SELECTION)
        overlapping = {
            **SELECTION,
            "rects": [{"x": 0.25, "y": 0.1, "w": 0.2, "h": 0.02}],
        }

        merged = client.post("/highlights/merged", json=overlapping).json()
        listed = client.get("/highlights/u1/book/1").json()

        assert [h["id"] for h in listed] == [merged["id"]]
        assert merged["rects"][0]["w"] == pytest.approx(0.35)

    def test_raw_insert(self, client):
        client.post("/highlights/raw", json=SELECTION)
        client.post("/highlights/raw", json=SELECTION)

        counts = client.get("/highlights/u1/book/count").json()

        assert counts == {"1": 2}

    def test_empty_selection(self, client):
        response = client.post("/highlights/merged", json={**SELECTION, "rects": []})
        assert response.status_code == 400

    def test_unknown_book(self, client):
        response = client.post("/highlights/merged", json={**SELECTION, "book_id": " "})
        assert response.status_code == 404

    def test_delete_and_undo(self, client):
        highlight_id = client.post("/highlights/merged", json=SELECTION).json()["id"]

        deleted = client.delete(f"/highlights/{highlight_id}")

        assert deleted.status_code == 200
        assert deleted.json()["pending"] is True
        assert client.get("/highlights/u1/book/1").json() == []

        restored = client.post(f"/highlights/{highlight_id}/undo")

        assert restored.status_code == 200
        assert restored.json()["id"] == highlight_id
        assert len(client.get("/highlights/u1/book/1").json()) == 1
        assert client.post(f"/highlights/{highlight_id}/undo").status_code == 404

    def test_delete_missing(self, client):
        assert client.delete("/highlights/missing").status_code == 404

    def test_delete_permanently(self, client):
        highlight_id = client.post("/highlights/merged", json=SELECTION).json()["id"]

        response = client.delete(f"/highlights/{highlight_id}/permanent")

        assert response.status_code == 200
        assert client.delete(f"/highlights/{highlight_id}/permanent").status_code == 404

    def test_pending_delete_finalized_at_shutdown(self, db_path, pdf_dir, monkeypatch):
        monkeypatch.setenv("FOLIO_DB_PATH", db_path)
        monkeypatch.setenv("FOLIO_PDF_DIR", pdf_dir)
        with TestClient(app) as client:
            highlight_id = client.post("/highlights/merged", json=SELECTION).json()["id"]
            client.delete(f"/highlights/{highlight_id}")

        assert HighlightsService(db_path).get_highlight_by_id(highlight_id) is None


class TestSessionsAndProgress:
    """Test opening books and saving the reading position"""

    def test_open_book(self, client):
        session = open_book(client)

        assert session["page_count"] == 2
        assert session["page"] == 1

    def test_open_missing_book(self, client):
        response = client.post("/sessions/open", json={**OWNER, "filename": "nope.pdf"})
        assert response.status_code == 404

    def test_page_change_and_flush(self, client):
        open_book(client)

        scheduled = client.post("/progress/u1/book/page-change", json={"page": 2})
        flushed = client.post("/progress/u1/book/flush")

        assert scheduled.json() == {"scheduled": True}
        assert flushed.json()["last_page"] == 2
        assert client.get("/progress/u1/book").json()["last_page"] == 2

    def test_reopen_restores_position(self, client):
        open_book(client)
        client.post("/progress/u1/book/page-change", json={"page": 2})

        closed = client.post("/sessions/close", json=OWNER)

        assert closed.json() == {"closed": True}
        assert open_book(client)["page"] == 2

    def test_page_change_without_open_book(self, client):
        response = client.post("/progress/u1/book/page-change", json={"page": 2})
        assert response.status_code == 404

    def test_set_last_page_directly(self, client):
        assert client.put("/progress/u1/book", json={"page": 5}).status_code == 200
        assert client.get("/progress/u1/book").json()["last_page"] == 5
        assert client.put("/progress/u1/book", json={"page": 0}).status_code == 400

    def test_unsaved_progress(self, client):
        assert client.get("/progress/u1/other").json()["last_page"] is None

    def test_pending_position_flushed_at_shutdown(self, db_path, pdf_dir, monkeypatch):
        monkeypatch.setenv("FOLIO_DB_PATH", db_path)
        monkeypatch.setenv("FOLIO_PDF_DIR", pdf_dir)
        with TestClient(app) as client:
            open_book(client)
            client.post("/progress/u1/book/page-change", json={"page": 2})

        assert ReadingProgressService(db_path).get_last_page("u1", "book") == 2


class TestSearchRouter:
    """Test searching an open book"""

    def test_search_and_navigate(self, client):
        open_book(client)

        started = client.post("/search/query", json={**OWNER, "query": "the"})
        status = client.get("/search/status", params={**OWNER, "wait": True}).json()

        assert started.status_code == 200
        assert status["is_searching"] is False
        assert status["state"] == "done"
        assert [r["page"] for r in status["results"]] == [1, 2]

        first = client.post("/search/next", json=OWNER).json()
        assert first["active_index"] == 0
        assert first["result"]["page"] == 1

        last = client.post("/search/previous", json=OWNER).json()
        assert last["active_index"] == 1
        assert last["result"]["page"] == 2

    def test_overlay(self, client):
        open_book(client)
        client.post("/search/query", json={**OWNER, "query": "cat"})
        client.get("/search/status", params={**OWNER, "wait": True})
        client.post("/search/next", json=OWNER)

        overlay = client.get(
            "/search/overlay", params={**OWNER, "page": 1, "scale": 2.0}
        ).json()

        assert overlay["page"] == 1
        assert len(overlay["groups"]) == 1
        assert overlay["groups"][0]["active"] is True
        assert overlay["groups"][0]["rects"][0]["w"] > 0

    def test_select_and_clear(self, client):
        open_book(client)
        client.post("/search/query", json={**OWNER, "query": "the"})
        client.get("/search/status", params={**OWNER, "wait": True})

        selected = client.post("/search/select", json={**OWNER, "index": 1})
        missing = client.post("/search/select", json={**OWNER, "index": 7})
        cleared = client.post("/search/clear", json=OWNER).json()

        assert selected.json()["result"]["page"] == 2
        assert missing.status_code == 404
        assert cleared["query"] == ""
        assert cleared["results"] == []
        assert cleared["state"] == "idle"

    def test_new_query_drops_previous_results(self, client):
        open_book(client)
        client.post("/search/query", json={**OWNER, "query": "cat"})
        client.get("/search/status", params={**OWNER, "wait": True})

        started = client.post("/search/query", json={**OWNER, "query": "dog"}).json()

        assert started["query"] == "dog"
        assert started["results"] == []

    def test_overlay_page_out_of_range(self, client):
        open_book(client)
        response = client.get("/search/overlay", params={**OWNER, "page": 9})
        assert response.status_code == 404

    def test_search_without_open_book(self, client):
        response = client.post("/search/query", json={**OWNER, "query": "the"})
        assert response.status_code == 404


class TestNotesRouter:
    """Test note endpoints"""

    def test_create_list_update_delete(self, client):
        created = client.post(
            "/notes", json={**OWNER, "page": 2, "content": " margin thought "}
        )
        assert created.status_code == 200
        note_id = created.json()["id"]
        assert created.json()["content"] == "margin thought"

        listed = client.get("/notes/u1", params={"book_id": "book"}).json()
        assert [n["id"] for n in listed] == [note_id]

        updated = client.put(
            f"/notes/{note_id}", json={"user_id": "u1", "content": "revised"}
        )
        assert updated.json()["content"] == "revised"

        deleted = client.delete(f"/notes/{note_id}", params={"user_id": "u1"})
        assert deleted.json()["success"] is True
        assert client.get("/notes/u1").json() == []

    def test_invalid_notes(self, client):
        blank = client.post("/notes", json={**OWNER, "page": 1, "content": "  "})
        bad_page = client.post("/notes", json={**OWNER, "page": 0, "content": "x"})
        no_book = client.post(
            "/notes", json={"user_id": "u1", "book_id": " ", "page": 1, "content": "x"}
        )

        assert blank.status_code == 400
        assert bad_page.status_code == 400
        assert no_book.status_code == 404

    def test_missing_note(self, client):
        updated = client.put("/notes/missing", json={"user_id": "u1", "content": "x"})
        deleted = client.delete("/notes/missing", params={"user_id": "u1"})

        assert updated.status_code == 404
        assert deleted.status_code == 404


class TestBookmarksRouter:
    """Test bookmark endpoints"""

    def test_toggle(self, client):
        added = client.post("/bookmarks/u1/book/toggle", json={"page": 3}).json()
        listed = client.get("/bookmarks/u1/book").json()
        removed = client.post("/bookmarks/u1/book/toggle", json={"page": 3}).json()

        assert added["bookmarked"] is True
        assert [b["page"] for b in listed] == [3]
        assert removed["bookmarked"] is False
        assert client.get("/bookmarks/u1/book").json() == []

    def test_invalid_page(self, client):
        response = client.post("/bookmarks/u1/book/toggle", json={"page": 0})
        assert response.status_code == 400
