import json
import re

import httpx
import pytest

from markshelf.extensions import db
from markshelf.models import Bookmark, User
from markshelf.services.ai import GeminiClient, extract_json_array
from markshelf.services.organize import (
    description_with_tags,
    organize_limit,
    suggest_duplicates,
)


class FakeGemini:
    """Stands in for the Gemini REST endpoints behind ``httpx.Client.post``."""

    def __init__(self):
        self.generate_calls = []
        self.fail_generate_calls = set()

    def post(self, url, body):
        request = httpx.Request("POST", url)
        if url.endswith(":embedContent"):
            text = body["content"]["parts"][0]["text"].lower()
            vector = [1.0, 0.0] if "python" in text else [0.0, 1.0]
            return httpx.Response(200, json={"embedding": {"values": vector}}, request=request)

        prompt = body["contents"][0]["parts"][0]["text"]
        self.generate_calls.append(prompt)
        if len(self.generate_calls) in self.fail_generate_calls:
            return httpx.Response(503, json={"error": "busy"}, request=request)

        ids = [int(value) for value in re.findall(r"^ID: (\d+)$", prompt, re.M)]
        if prompt.startswith("Cluster"):
            answer = [
                {"category": "Everything", "bookmarkIds": ids + [9999], "rationale": "all"},
                {"category": "", "bookmarkIds": ids},
            ]
        else:
            answer = [
                {"id": value, "summary": f"Summary {value}", "tags": ["tag", " "]}
                for value in ids
            ]
        text = "```json\n" + json.dumps(answer) + "\n```"
        return httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"text": text}]}}]},
            request=request,
        )


@pytest.fixture
def gemini(monkeypatch):
    fake = FakeGemini()
    monkeypatch.setattr(
        httpx.Client,
        "post",
        lambda self, url, params=None, json=None: fake.post(url, json),
    )
    return fake


@pytest.fixture
def auth(app, client):
    with app.app_context():
        user = User(username="organizer", is_active=True)
        user.set_password("secret")
        db.session.add(user)
        db.session.commit()
    response = client.post(
        "/api/v1/auth/token", json={"username": "organizer", "password": "secret"}
    )
    return {"Authorization": f"Bearer {response.get_json()['token']}"}


def _import(client, auth, bookmarks):
    response = client.post(
        "/api/v1/import/bookmarks", headers=auth, json={"bookmarks": bookmarks}
    )
    assert response.status_code == 200
    return response.get_json()


def test_extract_json_array_reads_fenced_answers():
    assert extract_json_array('```json\n[{"a": 1}]\n```') == [{"a": 1}]
    assert extract_json_array("no list here") == []
    assert extract_json_array("[not json]") == []


@pytest.mark.parametrize(
    "value,expected", [(None, 100), (0, 100), (True, 100), ("5", 100), (5, 5), (500, 200)]
)
def test_organize_limit(value, expected):
    assert organize_limit(value) == expected


def test_description_with_tags():
    assert description_with_tags("Short.", []) == "Short."
    assert description_with_tags("Short.", ["a", "b"]) == "Short.\n\nTags: a, b"


def test_suggest_duplicates_pairs_similar_bookmarks(app, gemini):
    with app.app_context():
        client = GeminiClient.from_config(app.config)
        rows = [
            Bookmark(id=1, title="Python docs", url="https://docs.python.org/3/"),
            Bookmark(id=2, title="Gardening", url="https://example.com/garden"),
            Bookmark(id=3, title="Python tutorial", url="https://python.example/"),
        ]

        pairs = suggest_duplicates(client, rows)

    assert [(p["first_id"], p["second_id"]) for p in pairs] == [(1, 3)]
    assert pairs[0]["score"] == pytest.approx(1.0)


def test_organize_returns_categories_and_duplicates(client, auth, gemini):
    _import(
        client,
        auth,
        [
            {"url": "https://docs.python.org/3/", "title": "Python docs"},
            {"url": "https://python.example/tutorial", "title": "Python tutorial"},
            {"url": "https://example.com/garden", "title": "Gardening tips"},
        ],
    )

    response = client.post("/api/v1/organize", headers=auth, json={"limit": 50})

    assert response.status_code == 200
    body = response.get_json()
    assert body["prompt"] == "organise my bookmarks by topic"
    assert len(body["bookmarks"]) == 3
    ids = {row["id"] for row in body["bookmarks"]}
    assert [entry["category"] for entry in body["categories"]] == ["Everything"]
    assert set(body["categories"][0]["bookmark_ids"]) == ids
    assert len(body["duplicates"]) == 1
    python_ids = {
        row["id"] for row in body["bookmarks"] if row["title"].startswith("Python")
    }
    pair = body["duplicates"][0]
    assert {pair["first_id"], pair["second_id"]} == python_ids


def test_organize_reports_ai_failure(client, auth, gemini):
    _import(client, auth, [{"url": "https://docs.python.org/3/", "title": "Python docs"}])
    gemini.fail_generate_calls.add(1)

    response = client.post("/api/v1/organize", headers=auth, json={})

    assert response.status_code == 500
    assert response.get_json()["error"] == "Failed to build AI suggestions"


def test_batch_enrich_all_runs_in_chunks_of_ten(client, app, auth, gemini):
    _import(
        client,
        auth,
        [{"url": f"https://example.com/{i}", "title": f"Page {i}"} for i in range(12)],
    )

    response = client.post("/api/v1/bookmarks/batch-enrich", headers=auth, json={"all": True})

    assert response.status_code == 200
    assert response.get_json() == {
        "success": True,
        "processed": 12,
        "updated": 12,
        "errors": [],
    }
    assert len(gemini.generate_calls) == 2
    with app.app_context():
        bookmark = Bookmark.query.order_by(Bookmark.id.asc()).first()
        assert bookmark.description == f"Summary {bookmark.id}\n\nTags: tag"


def test_batch_enrich_failed_chunk_is_reported(client, auth, gemini):
    _import(
        client,
        auth,
        [{"url": f"https://example.com/{i}", "title": f"Page {i}"} for i in range(12)],
    )
    gemini.fail_generate_calls.add(2)

    body = client.post(
        "/api/v1/bookmarks/batch-enrich", headers=auth, json={"all": True}
    ).get_json()

    assert body["processed"] == 12
    assert body["updated"] == 10
    assert len(body["errors"]) == 1
    assert body["errors"][0].startswith("Enrichment chunk 2 failed")


def test_batch_enrich_selected_ids_only(client, app, auth, gemini):
    _import(
        client,
        auth,
        [
            {"url": "https://example.com/a", "title": "A"},
            {"url": "https://example.com/b", "title": "B"},
        ],
    )
    with app.app_context():
        target = Bookmark.query.filter_by(title="A").one().id

    body = client.post(
        "/api/v1/bookmarks/batch-enrich", headers=auth, json={"ids": [target]}
    ).get_json()

    assert body["processed"] == 1
    with app.app_context():
        assert Bookmark.query.filter_by(title="B").one().description == ""


@pytest.mark.parametrize("payload", [{}, {"ids": []}, {"ids": ["1"]}, {"all": "yes"}, [1, 2]])
def test_batch_enrich_requires_a_selection(client, auth, payload):
    response = client.post("/api/v1/bookmarks/batch-enrich", headers=auth, json=payload)
    assert response.status_code == 400
    assert response.get_json()["error"] == "No bookmarks selected"


def test_batch_enrich_with_no_matching_bookmarks(client, auth):
    response = client.post(
        "/api/v1/bookmarks/batch-enrich", headers=auth, json={"ids": [12345]}
    )
    assert response.status_code == 200
    assert response.get_json() == {"message": "No bookmarks found to process"}
