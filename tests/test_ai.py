import httpx
import pytest

from markshelf.services.ai import (
    FALLBACK_SUMMARY,
    GeminiClient,
    bookmark_embedding_text,
    cosine_similarity,
)
from markshelf.services.errors import AIConfigurationError, AIServiceError


def _client(api_key="test-key"):
    return GeminiClient(
        api_key=api_key,
        api_base="https://gemini.test/v1beta",
        summary_model="summary-model",
        embed_model="embed-model",
    )


def _respond(monkeypatch, status_code=200, payload=None, calls=None):
    def fake_post(self, url, params=None, json=None):
        if calls is not None:
            calls.append({"url": url, "params": params, "json": json})
        request = httpx.Request("POST", url)
        return httpx.Response(status_code, json=payload or {}, request=request)

    monkeypatch.setattr(httpx.Client, "post", fake_post)


def test_from_config_reads_settings():
    config = {
        "GEMINI_API_KEY": " abc ",
        "GEMINI_API_BASE": "https://gemini.test/v1beta/",
        "GEMINI_SUMMARY_MODEL": "s",
        "GEMINI_EMBED_MODEL": "e",
        "AI_REQUEST_TIMEOUT": 3,
    }
    client = GeminiClient.from_config(config)
    assert client.api_key == "abc"
    assert not client.api_base.endswith("/")
    assert client.timeout == 3.0


def test_summarize_url_returns_model_text(monkeypatch):
    calls = []
    _respond(
        monkeypatch,
        payload={"candidates": [{"content": {"parts": [{"text": " A handy tool. "}]}}]},
        calls=calls,
    )

    summary = _client().summarize_url("https://x.test", title="X")

    assert summary == "A handy tool."
    assert calls[0]["url"] == "https://gemini.test/v1beta/models/summary-model:generateContent"
    assert calls[0]["params"] == {"key": "test-key"}


def test_summarize_url_falls_back_on_api_error(monkeypatch):
    _respond(monkeypatch, status_code=503)

    assert _client().summarize_url("https://x.test", description="From page") == "From page"
    assert _client().summarize_url("https://x.test", title="Title") == "Title"
    assert _client().summarize_url("https://x.test") == FALLBACK_SUMMARY


def test_missing_api_key_raises_configuration_error():
    with pytest.raises(AIConfigurationError):
        _client(api_key="").summarize_url("https://x.test")
    with pytest.raises(AIConfigurationError):
        _client(api_key="").embed_text("hello")


def test_embed_text_returns_vector(monkeypatch):
    calls = []
    _respond(monkeypatch, payload={"embedding": {"values": [1, 0.5]}}, calls=calls)

    assert _client().embed_text("hello") == [1.0, 0.5]
    assert calls[0]["json"]["model"] == "models/embed-model"
    assert calls[0]["json"]["content"]["parts"][0]["text"] == "hello"


@pytest.mark.parametrize(
    "status_code,payload",
    [(500, {"error": "down"}), (200, {"embedding": {}}), (200, {"embedding": {"values": []}})],
)
def test_embed_text_raises_service_error(monkeypatch, status_code, payload):
    _respond(monkeypatch, status_code=status_code, payload=payload)
    with pytest.raises(AIServiceError):
        _client().embed_text("hello")


def test_cosine_similarity():
    assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert cosine_similarity([0, 0], [1, 1]) == 0.0


def test_bookmark_embedding_text_skips_blanks():
    assert bookmark_embedding_text("T", "https://x.test", None) == "T https://x.test"
    assert bookmark_embedding_text(None, None, None) == "bookmark"
