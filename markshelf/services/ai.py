"""Gemini REST client used for bookmark summaries and embeddings."""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass

import httpx

from markshelf.services.errors import AIConfigurationError, AIServiceError

logger = logging.getLogger(__name__)

EMBED_MAX_CHARS = 2048
FALLBACK_SUMMARY = "No description available"

SUMMARY_PROMPT = """You are organizing a personal toolbox of web links. Summarize this URL in 1-2 sentences for quick scanning.

Title: {title}
Description: {description}
URL: {url}

Provide a concise, helpful summary:"""

CATEGORY_PROMPT = """Cluster the following bookmarks into thematic categories. Respond only with JSON in the form [{{"category": string, "bookmarkIds": number[], "rationale": string}}].

{bookmarks}

Group similar bookmarks under meaningful category names and cite the bookmark IDs in each group."""

ENRICH_PROMPT = """For each bookmark below write a 1-2 sentence summary and up to 5 short topical tags. Respond only with JSON in the form [{{"id": number, "summary": string, "tags": string[]}}].

{bookmarks}"""


@dataclass(frozen=True)
class GeminiClient:
    api_key: str
    api_base: str
    summary_model: str
    embed_model: str
    timeout: float = 12.0

    @staticmethod
    def from_config(config) -> "GeminiClient":
        return GeminiClient(
            api_key=(config.get("GEMINI_API_KEY") or "").strip(),
            api_base=config["GEMINI_API_BASE"].rstrip("/"),
            summary_model=config["GEMINI_SUMMARY_MODEL"],
            embed_model=config["GEMINI_EMBED_MODEL"],
            timeout=float(config.get("AI_REQUEST_TIMEOUT", 12)),
        )

    def _require_key(self) -> str:
        if not self.api_key:
            raise AIConfigurationError(
                "GEMINI_API_KEY is not configured in the server environment."
            )
        return self.api_key

    def _post(self, model: str, method: str, body: dict) -> httpx.Response:
        api_key = self._require_key()
        with httpx.Client(timeout=self.timeout) as client:
            return client.post(
                f"{self.api_base}/models/{model}:{method}",
                params={"key": api_key},
                json=body,
            )

    def summarize_url(
        self,
        url: str,
        title: str | None = None,
        description: str | None = None,
    ) -> str:
        """One or two sentence summary; falls back to the page's own text."""
        fallback = description or title or FALLBACK_SUMMARY
        prompt = SUMMARY_PROMPT.format(
            title=title or "N/A",
            description=description or "N/A",
            url=url,
        )
        try:
            response = self._post(
                self.summary_model,
                "generateContent",
                {
                    "contents": [{"parts": [{"text": prompt}]}],
                    "generationConfig": {"maxOutputTokens": 100, "temperature": 0.3},
                },
            )
        except httpx.HTTPError as exc:
            logger.warning("Gemini summary request failed for %s: %s", url, exc)
            return fallback

        if response.is_error:
            logger.warning("Gemini summary API error: %s", response.status_code)
            return fallback

        try:
            summary = response.json()["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError):
            return fallback
        return (summary or "").strip() or fallback

    def generate_text(
        self, prompt: str, max_tokens: int = 512, temperature: float = 0.2
    ) -> str:
        try:
            response = self._post(
                self.summary_model,
                "generateContent",
                {
                    "contents": [{"parts": [{"text": prompt}]}],
                    "generationConfig": {
                        "maxOutputTokens": max_tokens,
                        "temperature": temperature,
                    },
                },
            )
        except httpx.HTTPError as exc:
            raise AIServiceError(f"Gemini request failed: {exc}") from exc

        if response.is_error:
            raise AIServiceError(
                f"Gemini API error: {response.status_code} - {response.text}"
            )
        try:
            return response.json()["candidates"][0]["content"]["parts"][0]["text"] or ""
        except (ValueError, KeyError, IndexError, TypeError):
            return ""

    def suggest_categories(self, bookmarks: list[dict]) -> list[dict]:
        """Ask the model to cluster ``bookmarks`` into named groups.

        Each bookmark is a dict with ``id``, ``title`` and optional
        ``description`` / ``url``. Unparsable answers yield ``[]``.
        """
        if not bookmarks:
            return []
        text = self.generate_text(
            CATEGORY_PROMPT.format(bookmarks=_describe_bookmarks(bookmarks))
        )
        known_ids = {bookmark["id"] for bookmark in bookmarks}
        suggestions = []
        for entry in extract_json_array(text):
            if not isinstance(entry, dict):
                continue
            category = entry.get("category")
            ids = entry.get("bookmarkIds")
            if not isinstance(category, str) or not category.strip():
                continue
            if not isinstance(ids, list):
                continue
            suggestions.append(
                {
                    "category": category.strip(),
                    "bookmark_ids": [i for i in ids if isinstance(i, int) and i in known_ids],
                    "rationale": entry.get("rationale") or "",
                }
            )
        return suggestions

    def enrich_bookmarks(self, bookmarks: list[dict]) -> list[dict]:
        """Summary and tags for each bookmark the model answered for."""
        if not bookmarks:
            return []
        text = self.generate_text(
            ENRICH_PROMPT.format(bookmarks=_describe_bookmarks(bookmarks)),
            max_tokens=1024,
            temperature=0.3,
        )
        known_ids = {bookmark["id"] for bookmark in bookmarks}
        enriched = []
        for entry in extract_json_array(text):
            if not isinstance(entry, dict) or not isinstance(entry.get("id"), int):
                continue
            if entry["id"] not in known_ids:
                continue
            summary = entry.get("summary")
            if not isinstance(summary, str) or not summary.strip():
                continue
            tags = entry.get("tags") if isinstance(entry.get("tags"), list) else []
            enriched.append(
                {
                    "id": entry["id"],
                    "summary": summary.strip(),
                    "tags": [str(tag).strip() for tag in tags if str(tag).strip()],
                }
            )
        return enriched

    def embed_text(self, text: str) -> list[float]:
        try:
            response = self._post(
                self.embed_model,
                "embedContent",
                {
                    "model": f"models/{self.embed_model}",
                    "content": {"parts": [{"text": text[:EMBED_MAX_CHARS]}]},
                },
            )
        except httpx.HTTPError as exc:
            raise AIServiceError(f"Gemini embedding request failed: {exc}") from exc

        if response.is_error:
            raise AIServiceError(
                f"Gemini embedding API error: {response.status_code} - {response.text}"
            )
        try:
            values = response.json()["embedding"]["values"]
        except (ValueError, KeyError, TypeError) as exc:
            raise AIServiceError("Invalid embedding response from Gemini") from exc
        if not isinstance(values, list) or not values:
            raise AIServiceError("Invalid embedding response from Gemini")
        return [float(value) for value in values]


def cosine_similarity(a: list[float], b: list[float]) -> float:
    length = min(len(a), len(b))
    dot = sum(a[i] * b[i] for i in range(length))
    mag_a = math.sqrt(sum(a[i] * a[i] for i in range(length)))
    mag_b = math.sqrt(sum(b[i] * b[i] for i in range(length)))
    if mag_a == 0 or mag_b == 0:
        return 0.0
    return dot / (mag_a * mag_b)


def bookmark_embedding_text(title: str | None, url: str | None, description: str | None) -> str:
    return " ".join(part for part in (title, url, description) if part) or "bookmark"


def _describe_bookmarks(bookmarks: list[dict]) -> str:
    blocks = []
    for index, bookmark in enumerate(bookmarks, start=1):
        lines = [
            f"Bookmark #{index}",
            f"ID: {bookmark['id']}",
            f"Title: {bookmark.get('title') or 'Untitled'}",
        ]
        if bookmark.get("description"):
            lines.append(f"Description: {bookmark['description']}")
        if bookmark.get("url"):
            lines.append(f"URL: {bookmark['url']}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def extract_json_array(text: str) -> list:
    """The outermost ``[...]`` in a model answer, or ``[]``."""
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end <= start:
        return []
    try:
        parsed = json.loads(text[start : end + 1])
    except ValueError:
        logger.warning("Failed to parse JSON list from Gemini answer")
        return []
    return parsed if isinstance(parsed, list) else []
