from __future__ import annotations

from flask import current_app, g, jsonify, request
from flask_login import login_user, logout_user
from sqlalchemy.exc import SQLAlchemyError

from markshelf.api import api_bp
from markshelf.extensions import db
from markshelf.models import ApiToken, Bookmark, Category, User
from markshelf.services.ai import FALLBACK_SUMMARY, GeminiClient
from markshelf.services.bookmark_import import (
    flatten_bookmark_tree,
    parse_bookmark_html,
)
from markshelf.services.categories import build_category_tree, ensure_category_path
from markshelf.services.common import normalize_folder_path, to_bool
from markshelf.services.embedding_jobs import start_embedding_job
from markshelf.services.errors import (
    CategoryCreateFailed,
    EmptyBatchError,
    InvalidPayload,
    InvalidURL,
    MarkshelfError,
)
from markshelf.services.ingest import (
    IngestBookmark,
    ingest_bookmarks,
    parse_ingest_payload,
)
from markshelf.services.metadata import fetch_page_metadata
from markshelf.services.organize import (
    enrich_bookmarks,
    organize_limit,
    suggest_duplicates,
    summary_input,
)
from markshelf.services.search import search_bookmarks
from markshelf.services.security import api_auth_required
from markshelf.services.semantic import semantic_search
from markshelf.services.store import BookmarkStore
from markshelf.services.validation import validate_url

CHROME_DEFAULT_FOLDER = "Chrome/Imported"
CHROME_SOURCE = "chrome"
MANUAL_SOURCE = "manual"


def _gemini() -> GeminiClient:
    return GeminiClient.from_config(current_app.config)


def _schedule_embeddings(user_id: int, bookmark_ids: list[int]) -> None:
    if not bookmark_ids or not current_app.config.get("EMBEDDINGS_ENABLED", True):
        return
    start_embedding_job(
        current_app._get_current_object(),
        user_id,
        bookmark_ids,
    )


def _run_ingest(user_id: int, entries: list[IngestBookmark]):
    try:
        result = ingest_bookmarks(
            user_id,
            entries,
            BookmarkStore(),
            duplicate_chunk=current_app.config["INGEST_DUPLICATE_CHUNK"],
            insert_chunk=current_app.config["INGEST_INSERT_CHUNK"],
        )
    except EmptyBatchError as exc:
        return None, (jsonify({"error": str(exc)}), 400)
    except (MarkshelfError, SQLAlchemyError) as exc:
        db.session.rollback()
        current_app.logger.error("Ingestion failed for user %s: %s", user_id, exc)
        return None, (jsonify({"error": "Failed to import bookmarks"}), 500)
    return result, None


def _get_user_bookmark_or_404(user_id: int, bookmark_id: int):
    bookmark = Bookmark.query.filter_by(id=bookmark_id, user_id=user_id).first()
    if not bookmark:
        return None, (jsonify({"error": "Bookmark not found"}), 404)
    return bookmark, None


def _json_object() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _first_present(payload: dict, *keys):
    for key in keys:
        if key in payload:
            return True, payload.get(key)
    return False, None


def _chrome_entry(item: dict) -> IngestBookmark:
    is_read = item.get("isRead")
    status = item.get("status")
    if is_read is None and isinstance(status, str):
        is_read = status.upper() == "READ"
    return IngestBookmark.from_dict(
        {
            "url": item.get("url"),
            "title": item.get("title"),
            "folderPath": item.get("folderPath")
            or item.get("path")
            or CHROME_DEFAULT_FOLDER,
            "description": item.get("description"),
            "faviconUrl": item.get("faviconUrl"),
            "source": item.get("source") or CHROME_SOURCE,
            "isRead": is_read,
            "dateAdded": item.get("dateAdded"),
            "dateGroupModified": item.get("dateGroupModified"),
        }
    )


@api_bp.route("/health")
def health():
    return jsonify({"status": "ok", "service": "Markshelf"})


@api_bp.route("/auth/signup", methods=["POST"])
def signup():
    payload = _json_object()
    username = (payload.get("username") or "").strip()
    password = payload.get("password") or ""
    if not username or not password:
        return jsonify({"error": "username and password are required"}), 400
    if User.query.filter_by(username=username).first():
        return jsonify({"error": "username already exists"}), 409

    user = User(username=username, is_active=True)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return jsonify({"status": "created", "user_id": user.id}), 201


def _user_from_credentials(payload: dict):
    username = (payload.get("username") or "").strip()
    password = payload.get("password") or ""
    user = User.query.filter_by(username=username).first()
    if not user or not user.is_active or not user.check_password(password):
        return None
    return user


@api_bp.route("/auth/token", methods=["POST"])
def create_token_with_credentials():
    payload = _json_object()
    token_name = (payload.get("token_name") or "Markshelf API Token").strip()
    user = _user_from_credentials(payload)
    if not user:
        return jsonify({"error": "invalid credentials"}), 401

    token, token_hash = ApiToken.issue_token()
    row = ApiToken(user_id=user.id, name=token_name, token_hash=token_hash)
    db.session.add(row)
    db.session.commit()
    return jsonify({"token": token, "token_name": token_name, "user_id": user.id})


@api_bp.route("/auth/login", methods=["POST"])
def login():
    user = _user_from_credentials(_json_object())
    if not user:
        return jsonify({"error": "invalid credentials"}), 401
    login_user(user)
    return jsonify({"status": "ok", "user_id": user.id})


@api_bp.route("/auth/logout", methods=["POST"])
def logout():
    logout_user()
    return jsonify({"status": "ok"})


@api_bp.route("/bookmarks", methods=["GET"])
@api_auth_required()
def bookmarks_list_api():
    user = g.api_user
    query = Bookmark.query.filter_by(user_id=user.id)

    category = (request.args.get("category") or "").strip()
    if category:
        if category.isdigit():
            query = query.filter_by(category_id=int(category))
        else:
            query = query.filter_by(folder_path=normalize_folder_path(category))

    items = query.order_by(Bookmark.created_at.desc()).all()
    search_text = (request.args.get("q") or "").strip()
    if search_text:
        ranked = search_bookmarks(
            items, search_text, limit=request.args.get("limit", type=int) or 50
        )
        return jsonify(
            {
                "bookmarks": [
                    {
                        **item["bookmark"].as_dict(),
                        "score": item["score"],
                        "match_reasons": item["reasons"],
                    }
                    for item in ranked
                ]
            }
        )
    return jsonify({"bookmarks": [item.as_dict() for item in items]})


@api_bp.route("/bookmarks", methods=["POST"])
@api_auth_required()
def bookmarks_create_api():
    user = g.api_user
    payload = _json_object()
    url = payload.get("url")
    if not isinstance(url, str) or not url.strip():
        return jsonify({"error": "URL is required"}), 400
    url = url.strip()

    try:
        validate_url(url)
    except InvalidURL:
        return jsonify({"error": "Invalid or disallowed URL"}), 400

    _, category_path = _first_present(
        payload, "categoryPath", "category_path", "folderPath", "folder_path"
    )
    if category_path is not None and not isinstance(category_path, str):
        return jsonify({"error": "categoryPath must be a string"}), 400

    metadata = fetch_page_metadata(
        url,
        timeout=current_app.config["METADATA_FETCH_TIMEOUT"],
        max_bytes=current_app.config["METADATA_MAX_BYTES"],
    )
    try:
        summary = _gemini().summarize_url(url, metadata.title, metadata.description)
    except MarkshelfError as exc:
        current_app.logger.warning("Failed to generate summary for %s: %s", url, exc)
        summary = metadata.description or FALLBACK_SUMMARY

    entry = IngestBookmark(
        url=url,
        title=metadata.title,
        folder_path=category_path,
        description=summary,
        favicon_url=metadata.favicon,
        source=MANUAL_SOURCE,
    )
    result, error = _run_ingest(user.id, [entry])
    if error:
        return error
    if result.duplicates:
        return (
            jsonify({"error": "Bookmark already exists", **result.as_dict()}),
            409,
        )
    if not result.bookmark_ids:
        return jsonify({"error": "Failed to add bookmark", **result.as_dict()}), 500

    bookmark = db.session.get(Bookmark, result.bookmark_ids[0])
    _schedule_embeddings(user.id, result.bookmark_ids)
    return jsonify({"success": True, "bookmark": bookmark.as_dict()}), 201


@api_bp.route("/bookmarks/<int:bookmark_id>", methods=["PATCH"])
@api_auth_required()
def bookmarks_update_api(bookmark_id: int):
    user = g.api_user
    bookmark, error = _get_user_bookmark_or_404(user.id, bookmark_id)
    if error:
        return error

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400
    found, category_id = _first_present(payload, "category_id", "categoryId")
    if found:
        if category_id is not None:
            category = Category.query.filter_by(id=category_id, user_id=user.id).first()
            if not category:
                return jsonify({"error": "Category not found"}), 400
        bookmark.category_id = category_id

    found, folder_path = _first_present(payload, "folder_path", "folderPath")
    if found:
        bookmark.folder_path = normalize_folder_path(folder_path)

    found, is_read = _first_present(payload, "is_read", "isRead")
    if found:
        bookmark.is_read = to_bool(is_read)

    source = payload.get("source")
    if isinstance(source, str) and source.strip():
        bookmark.source = source.strip()

    db.session.commit()
    return jsonify({"success": True, "bookmark": bookmark.as_dict()})


@api_bp.route("/bookmarks/<int:bookmark_id>", methods=["DELETE"])
@api_auth_required()
def bookmarks_delete_api(bookmark_id: int):
    user = g.api_user
    bookmark, error = _get_user_bookmark_or_404(user.id, bookmark_id)
    if error:
        return error
    db.session.delete(bookmark)
    db.session.commit()
    return jsonify({"success": True})


@api_bp.route("/import/bookmarks", methods=["POST"])
@api_auth_required()
def import_bookmarks_api():
    user = g.api_user
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400
    try:
        entries = parse_ingest_payload(payload.get("bookmarks"))
    except InvalidPayload as exc:
        return jsonify({"error": str(exc)}), 400

    result, error = _run_ingest(user.id, entries)
    if error:
        return error
    _schedule_embeddings(user.id, result.bookmark_ids)
    return jsonify(result.as_dict())


@api_bp.route("/import/chrome", methods=["POST"])
@api_auth_required()
def import_chrome_api():
    user = g.api_user
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    bookmarks = payload.get("bookmarks") or []
    reading_list = payload.get("readingList") or []
    if not isinstance(bookmarks, list) or not isinstance(reading_list, list):
        return jsonify({"error": "Invalid JSON payload"}), 400
    if not bookmarks and not reading_list:
        return jsonify({"error": "No bookmark data provided"}), 400

    entries: list[IngestBookmark] = []
    try:
        for item in bookmarks + reading_list:
            if not isinstance(item, dict):
                raise InvalidPayload("bookmark entries must be objects")
            entries.append(_chrome_entry(item))
    except InvalidPayload as exc:
        return jsonify({"error": str(exc)}), 400

    result, error = _run_ingest(user.id, entries)
    if error:
        return error
    _schedule_embeddings(user.id, result.bookmark_ids)
    return jsonify(result.as_dict())


@api_bp.route("/import/upload", methods=["POST"])
@api_auth_required()
def import_upload_api():
    user = g.api_user
    upload = request.files.get("file")
    if not upload:
        return jsonify({"error": "No file provided"}), 400

    html = upload.read().decode("utf-8", errors="ignore")
    entries = flatten_bookmark_tree(parse_bookmark_html(html))
    if not entries:
        return jsonify({"error": "No bookmarks found in file"}), 400

    result, error = _run_ingest(user.id, entries)
    if error:
        return error
    _schedule_embeddings(user.id, result.bookmark_ids)
    return jsonify(result.as_dict())


@api_bp.route("/categories", methods=["GET"])
@api_auth_required()
def categories_list():
    user = g.api_user
    categories = Category.query.filter_by(user_id=user.id).all()
    return jsonify({"categories": build_category_tree(categories)})


@api_bp.route("/categories/ensure", methods=["POST"])
@api_auth_required()
def categories_ensure():
    user = g.api_user
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid payload"}), 400
    path = payload.get("path")
    if not isinstance(path, str) or not normalize_folder_path(path):
        return jsonify({"error": "Path is required"}), 400

    try:
        category_id, normalized = ensure_category_path(user.id, path, BookmarkStore())
    except CategoryCreateFailed as exc:
        current_app.logger.error("Failed to ensure category %s: %s", exc.path, exc)
        return jsonify({"error": "Failed to ensure category"}), 500
    return jsonify({"id": category_id, "path": normalized})


@api_bp.route("/chat", methods=["POST"])
@api_auth_required()
def chat():
    user = g.api_user
    payload = _json_object()
    query = payload.get("query")
    if not query or not isinstance(query, str) or not query.strip():
        return jsonify({"error": "Query is required"}), 400
    query = query.strip()
    match_count = current_app.config["SEMANTIC_MATCH_COUNT"]

    suggestions = [
        {**match["bookmark"].as_dict(), "similarity": match["similarity"]}
        for match in semantic_search(_gemini(), user.id, query, match_count)
    ]
    if not suggestions:
        source = Bookmark.query.filter_by(user_id=user.id).all()
        suggestions = [
            {
                **item["bookmark"].as_dict(),
                "similarity": None,
                "match_reasons": item["reasons"],
            }
            for item in search_bookmarks(source, query, limit=match_count)
        ]

    if not suggestions:
        return jsonify(
            {
                "suggestions": [],
                "message": "No relevant bookmarks found for your query.",
            }
        )
    return jsonify(
        {
            "suggestions": suggestions,
            "message": f'Found {len(suggestions)} relevant bookmarks for "{query}"',
        }
    )


@api_bp.route("/organize", methods=["POST"])
@api_auth_required()
def organize():
    user = g.api_user
    payload = _json_object()
    prompt = payload.get("prompt")
    if not isinstance(prompt, str) or not prompt.strip():
        prompt = "organise my bookmarks by topic"

    bookmarks = (
        Bookmark.query.filter_by(user_id=user.id)
        .order_by(Bookmark.created_at.desc())
        .limit(organize_limit(payload.get("limit")))
        .all()
    )
    client = _gemini()
    try:
        categories = client.suggest_categories([summary_input(b) for b in bookmarks])
        duplicates = suggest_duplicates(client, bookmarks)
    except MarkshelfError as exc:
        current_app.logger.error("AI organize failed for user %s: %s", user.id, exc)
        return jsonify({"error": "Failed to build AI suggestions"}), 500

    return jsonify(
        {
            "prompt": prompt.strip(),
            "categories": categories,
            "duplicates": duplicates,
            "bookmarks": [bookmark.as_dict() for bookmark in bookmarks],
        }
    )


@api_bp.route("/bookmarks/batch-enrich", methods=["POST"])
@api_auth_required()
def bookmarks_batch_enrich():
    user = g.api_user
    payload = _json_object()
    ids = payload.get("ids")
    query = Bookmark.query.filter_by(user_id=user.id)
    if payload.get("all") is not True:
        if not isinstance(ids, list) or not ids or not all(
            isinstance(value, int) and not isinstance(value, bool) for value in ids
        ):
            return jsonify({"error": "No bookmarks selected"}), 400
        query = query.filter(Bookmark.id.in_(ids))

    bookmarks = query.order_by(Bookmark.id.asc()).all()
    if not bookmarks:
        return jsonify({"message": "No bookmarks found to process"})

    try:
        updated, errors = enrich_bookmarks(_gemini(), bookmarks)
    except (MarkshelfError, SQLAlchemyError) as exc:
        db.session.rollback()
        current_app.logger.error("Batch enrich failed for user %s: %s", user.id, exc)
        return jsonify({"error": "Failed to enrich bookmarks"}), 500

    return jsonify(
        {
            "success": True,
            "processed": len(bookmarks),
            "updated": updated,
            "errors": errors,
        }
    )
