"""
Tests for the HTTP API.
"""

import pytest
from fastapi.testclient import TestClient

from book_lab.api.server import create_app
from book_lab.core.exceptions import ProviderUnavailableError
from book_lab.services.service_factory import create_services
from tests.conftest import FakeGateway


@pytest.fixture
def services(settings):
    services = create_services(settings)
    yield services
    services.close()


@pytest.fixture
def fake_gateway(services):
    gateway = FakeGateway()
    services.gateway = gateway
    services.pipeline.gateway = gateway
    return gateway


@pytest.fixture
def client(services):
    return TestClient(create_app(services))


def create_book(client, title="API Book"):
    response = client.post("/books", json={"title": title})
    assert response.status_code == 201
    return response.json()


def test_root(client):
    assert client.get("/").json()["message"] == "Welcome to Book Lab API!"


class TestBooks:
    def test_crud(self, client):
        book = create_book(client)
        assert book["chapter_count"] == 0

        response = client.put(f"/books/{book['id']}", json={"description": "Updated"})
        assert response.json()["description"] == "Updated"
        assert response.json()["title"] == "API Book"

        assert [b["id"] for b in client.get("/books").json()] == [book["id"]]

        assert client.delete(f"/books/{book['id']}").status_code == 200
        assert client.get(f"/books/{book['id']}").status_code == 404

    def test_blank_title_rejected(self, client):
        assert client.post("/books", json={"title": "   "}).status_code == 422

    def test_default_author_from_settings(self, client, services):
        services.store.set_setting("author_name", "Default Author")
        assert create_book(client)["author"] == "Default Author"


class TestChapters:
    def test_create_list_reorder_delete(self, client):
        book = create_book(client)
        ids = [
            client.post(f"/books/{book['id']}/chapters", json={"title": t}).json()["id"]
            for t in ["One", "Two", "Three"]
        ]

        response = client.put(f"/books/{book['id']}/chapters/reorder", json={"chapter_ids": ids[::-1]})
        assert response.status_code == 200
        assert [c["title"] for c in response.json()] == ["Three", "Two", "One"]

        assert client.delete(f"/chapters/{ids[2]}").status_code == 200
        chapters = client.get(f"/books/{book['id']}/chapters").json()
        assert [(c["chapter_number"], c["title"]) for c in chapters] == [(1, "Two"), (2, "One")]

    def test_bad_reorder_is_400(self, client):
        book = create_book(client)
        client.post(f"/books/{book['id']}/chapters", json={"title": "Only"})

        response = client.put(f"/books/{book['id']}/chapters/reorder", json={"chapter_ids": [12345]})
        assert response.status_code == 400

    def test_update_status(self, client):
        book = create_book(client)
        chapter = client.post(f"/books/{book['id']}/chapters", json={"title": "One"}).json()

        response = client.put(f"/chapters/{chapter['id']}", json={"outline": "- a", "status": "outline"})
        assert response.json()["status"] == "outline"
        assert client.put(f"/chapters/{chapter['id']}", json={"status": "bogus"}).status_code == 422

    def test_outline_and_generation_flow(self, client, services, fake_gateway):
        topic = services.store.create_topic("Ships")
        note = services.store.create_note("Galleons carried cargo across the Atlantic")
        services.store.link_note_to_topic(note.id, topic.id)
        book = create_book(client)
        fake_gateway.responses = ["- Outline", "<p>Chapter</p>"]

        chapter = client.post(
            f"/books/{book['id']}/chapters", json={"title": "Sea", "topic_id": topic.id}
        ).json()
        assert chapter["status"] == "outline"
        assert chapter["outline"] == "- Outline"

        approved = client.post(f"/chapters/{chapter['id']}/approve-outline").json()
        assert approved["status"] == "outline"

        written = client.post(f"/chapters/{chapter['id']}/generate", json={"topic_ids": [topic.id]}).json()
        assert written["status"] == "complete"
        assert written["content"] == "<p>Chapter</p>"

    def test_missing_chapter(self, client):
        assert client.get("/chapters/999").status_code == 404


class TestNotesAndTopics:
    def test_process_notes(self, client, fake_gateway):
        fake_gateway.default = "Cooking, Baking"
        response = client.post("/notes/process", json={"text": "Bread needs time to rise properly.\n\nshort"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["processed_count"] == 1
        assert body["results"][0]["topics"] == ["Cooking", "Baking"]

        topics = client.get("/topics").json()
        assert [t["name"] for t in topics] == ["Baking", "Cooking"]
        notes = client.get(f"/topics/{topics[0]['id']}/notes").json()
        assert len(notes) == 1

    def test_process_notes_partial_failure(self, client, fake_gateway):
        fake_gateway.responses = ["Topic", ProviderUnavailableError("down")]
        response = client.post(
            "/notes/process",
            json={"text": "First paragraph long enough.\n\nSecond paragraph long enough."},
        )

        assert response.status_code == 502
        assert len(response.json()["results"]) == 1

    def test_link_and_unlink(self, client):
        note = client.post("/notes", json={"content": "A standalone note"}).json()
        topic = client.post("/topics", json={"name": "Loose"}).json()

        linked = client.put(f"/notes/{note['id']}/topics/{topic['id']}").json()
        assert linked["topics"] == ["Loose"]

        unlinked = client.delete(f"/notes/{note['id']}/topics/{topic['id']}").json()
        assert unlinked["topics"] == []


class TestAI:
    def test_not_configured_is_409(self, client):
        response = client.post("/ai/extract-topics", json={"text": "anything"})
        assert response.status_code == 409
        assert "onboarding" in response.json()["detail"]

    def test_extract_topics(self, client, fake_gateway):
        fake_gateway.responses = ["One, Two"]
        assert client.post("/ai/extract-topics", json={"text": "x"}).json() == {"topics": ["One", "Two"]}

    def test_provider_failure_is_502(self, client, fake_gateway):
        fake_gateway.responses = [ProviderUnavailableError("Ollama API error: 500")]
        response = client.post("/ai/generate-outline", json={"topic": "t", "notes": ["n"]})
        assert response.status_code == 502

    def test_refine_content(self, client, fake_gateway):
        fake_gateway.responses = ["<p>better</p>"]
        response = client.post("/ai/refine-content", json={"text": "<p>ok</p>", "instructions": "improve"})
        assert response.json() == {"text": "<p>better</p>"}


class TestSettingsAndOnboarding:
    def test_api_key_is_masked(self, client, services):
        client.put("/settings/openai_api_key", json={"value": "sk-secret"})

        assert client.get("/settings/openai_api_key").json()["value"] == "********"
        assert services.store.get_decrypted_setting("openai_api_key") == "sk-secret"

    def test_onboarding(self, client, services):
        assert client.get("/onboarding").json()["complete"] is False

        response = client.post("/onboarding", json={"provider": "ollama", "ollama_model": "mistral"})
        assert response.json() == {"complete": True, "provider": "ollama"}
        assert services.gateway.model == "mistral"

    def test_openai_onboarding_requires_key(self, client):
        assert client.post("/onboarding", json={"provider": "openai"}).status_code == 409


class TestExportAndBackup:
    def test_export(self, client, services, tmp_path):
        book = create_book(client)
        services.store.create_chapter(book["id"], "One", content="<p>Hello</p>")

        response = client.post(f"/books/{book['id']}/export", json={"output_dir": str(tmp_path), "format": "html"})
        assert response.status_code == 200
        assert response.json()["filename"].endswith(".html")

    def test_export_without_chapters(self, client):
        book = create_book(client)
        assert client.post(f"/books/{book['id']}/export", json={}).status_code == 400

    def test_backup_round_trip(self, client, tmp_path):
        book = create_book(client, "Keep me")
        backup = tmp_path / "backup.db"

        assert client.post("/backup/export", json={"path": str(backup)}).status_code == 200
        client.delete(f"/books/{book['id']}")
        assert client.get("/books").json() == []

        assert client.post("/backup/import", json={"path": str(backup)}).status_code == 200
        assert [b["title"] for b in client.get("/books").json()] == ["Keep me"]

    def test_import_missing_backup(self, client, tmp_path):
        response = client.post("/backup/import", json={"path": str(tmp_path / "nope.db")})
        assert response.status_code == 404
