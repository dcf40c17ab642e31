"""
Flask web app for the blog assistant.

Serves the blog's posts as JSON and answers questions about them:
  - post metadata and bodies loaded from Markdown files with front matter
  - RAG answers over a FAISS index of the posts (see `rag/`)
  - large attachments streamed in chunks from Azure Blob Storage (see `storage/`)

Collaborators are built lazily on first use so the app starts even when
optional services (Blob, Azure OpenAI) are not configured.
"""

import json
import logging
import mimetypes
from functools import lru_cache

from flask import Flask, Response, jsonify, request, stream_with_context
from werkzeug.middleware.proxy_fix import ProxyFix

from app_config import ConfigError, Settings
from content import Post, filter_by_tag, find_post, load_posts, tag_counts
from llm.azure_openai import get_chat_model
from rag.chain import RagService
from rag.embeddings import get_embeddings
from rag.vectorstores import VectorstoreManager
from storage.blob import BlobSettings, BlobStorageClient

__version__ = "0.9.0"

logger = logging.getLogger(__name__)

app = Flask(__name__)

# Respect proxy headers (Azure App Service sits behind a reverse proxy).
app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)  # type: ignore[assignment]


# ----- COLLABORATORS -----
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    return settings


@lru_cache(maxsize=1)
def get_posts() -> list[Post]:
    """Load (and cache) the published posts. Restarting the app refreshes them."""
    return load_posts(get_settings().posts_dir)


@lru_cache(maxsize=1)
def get_blob_settings() -> BlobSettings | None:
    if not BlobSettings.is_configured():
        return None
    return BlobSettings.from_env()


@lru_cache(maxsize=1)
def get_blob_client() -> BlobStorageClient | None:
    settings = get_blob_settings()
    if settings is None:
        return None
    return BlobStorageClient.from_settings(settings)


@lru_cache(maxsize=1)
def get_vs_manager() -> VectorstoreManager:
    settings = get_settings()
    blob_settings = get_blob_settings()
    return VectorstoreManager(
        embeddings=get_embeddings(settings),
        cache_root=settings.cache_dir,
        blob=get_blob_client(),
        prefix=blob_settings.vectorstore_prefix if blob_settings else "vectorstores",
    )


@lru_cache(maxsize=1)
def get_llm():
    return get_chat_model(get_settings())


@lru_cache(maxsize=1)
def get_rag_service() -> RagService:
    settings = get_settings()
    vs = get_vs_manager().get_vectorstore(settings.index_name)
    return RagService(vs, get_llm(), k=settings.top_k)


def _ndjson(event: dict) -> str:
    return json.dumps(event) + "\n"


# ---------- ERRORS ----------

@app.errorhandler(ConfigError)
def handle_config_error(e: ConfigError):
    logger.error("Configuration error: %s", e)
    return jsonify({"error": str(e)}), 503


@app.errorhandler(FileNotFoundError)
def handle_missing_index(e: FileNotFoundError):
    logger.error("%s", e)
    return jsonify({"error": str(e)}), 503


# ---------- ROUTES ----------

@app.route("/")
def index():
    posts = get_posts()
    return jsonify(
        {
            "title": get_settings().site_title,
            "version": __version__,
            "posts": len(posts),
            "tags": tag_counts(posts),
        }
    )


@app.route("/posts")
def list_posts():
    """
    Post summaries, newest first.

    Optional query param:
      - tag: only posts carrying this tag (case-insensitive)
    """
    posts = get_posts()
    tag = request.args.get("tag", "").strip()
    if tag:
        posts = filter_by_tag(posts, tag)
    return jsonify([p.summary() for p in posts])


@app.route("/posts/<slug>")
def show_post(slug):
    post = find_post(get_posts(), slug)
    if post is None:
        return jsonify({"error": f"Unknown post: {slug}"}), 404
    return jsonify({**post.summary(), "body": post.body})


@app.route("/tags")
def tags():
    return jsonify(tag_counts(get_posts()))


def _question_from_request() -> str:
    data = request.get_json(silent=True) or {}
    return str(data.get("question") or "").strip()


@app.route("/ask", methods=["POST"])
def ask():
    question = _question_from_request()
    if not question:
        return jsonify({"error": "Missing question"}), 400

    result = get_rag_service().ask(question)
    return jsonify(result.to_dict())


@app.route("/ask_stream", methods=["POST"])
def ask_stream():
    question = _question_from_request()
    if not question:
        return jsonify({"error": "Missing question"}), 400

    # Retrieval happens here so errors surface before the stream starts.
    events = get_rag_service().stream(question)

    def generate():
        for event in events:
            yield _ndjson(event)

    return Response(stream_with_context(generate()), mimetype="application/x-ndjson")


@app.route("/files/<path:file_path>")
def serve_file(file_path):
    """
    Stream an attachment from Azure Blob Storage.

    Files are stored under:
      {AZURE_BLOB_FILES_PREFIX}/{file_path}
    """

    # Basic path safety: prevent traversal.
    norm = file_path.replace("\\", "/")
    if ".." in norm.split("/") or norm.startswith("/"):
        return jsonify({"error": "Invalid file path."}), 400

    settings = get_blob_settings()
    blob_client = get_blob_client()
    if settings is None or blob_client is None:
        return jsonify({"error": "File storage is not configured."}), 503

    blob_name = f"{settings.files_prefix}/{norm}"
    if not blob_client.blob_exists(blob_name):
        return jsonify({"error": f"File not found: {file_path}"}), 404

    mimetype = mimetypes.guess_type(norm)[0] or "application/octet-stream"
    return Response(
        stream_with_context(blob_client.stream_blob(blob_name, get_settings().io_chunk_size)),
        mimetype=mimetype,
        headers={"Cache-Control": "private, max-age=3600"},
    )


if __name__ == "__main__":
    app.run(debug=True, port=5050)
