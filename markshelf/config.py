import os
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parent.parent


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "default-secret-key")
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", f"sqlite:///{BASE_DIR / 'markshelf.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "1") == "1"

    METADATA_FETCH_TIMEOUT = float(os.environ.get("METADATA_FETCH_TIMEOUT", "12"))
    METADATA_MAX_BYTES = int(os.environ.get("METADATA_MAX_BYTES", "1500000"))

    GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY", "")
    GEMINI_API_BASE = os.environ.get(
        "GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta"
    )
    GEMINI_SUMMARY_MODEL = os.environ.get("GEMINI_SUMMARY_MODEL", "gemini-1.5-flash")
    GEMINI_EMBED_MODEL = os.environ.get("GEMINI_EMBED_MODEL", "text-embedding-004")
    AI_REQUEST_TIMEOUT = float(os.environ.get("AI_REQUEST_TIMEOUT", "12"))

    EMBEDDINGS_ENABLED = os.environ.get("EMBEDDINGS_ENABLED", "1") == "1"
    EMBEDDING_WORKERS = int(os.environ.get("EMBEDDING_WORKERS", "4"))
    EMBEDDING_BACKFILL_INTERVAL_MINUTES = int(
        os.environ.get("EMBEDDING_BACKFILL_INTERVAL_MINUTES", "60")
    )

    INGEST_DUPLICATE_CHUNK = int(os.environ.get("INGEST_DUPLICATE_CHUNK", "200"))
    INGEST_INSERT_CHUNK = int(os.environ.get("INGEST_INSERT_CHUNK", "100"))
    SEMANTIC_MATCH_COUNT = int(os.environ.get("SEMANTIC_MATCH_COUNT", "8"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SCHEDULER_ENABLED = False
    EMBEDDINGS_ENABLED = False
    GEMINI_API_KEY = "test-key"
