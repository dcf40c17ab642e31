"""
Index building.

Turns posts into embedded chunks and stores them in a FAISS vectorstore:

  python -m rag.ingest [--posts-dir DIR] [--out DIR] [--publish] [--include-drafts]

The index is written to the local cache (RAG_CACHE_DIR/RAG_INDEX_NAME by
default). With `--publish` the saved files are uploaded to Azure Blob Storage
so that other app instances can download them.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Iterable, Sequence

from langchain_community.vectorstores import FAISS
from langchain_core.documents import Document
from langchain_core.embeddings import Embeddings
from langchain_text_splitters import Language, RecursiveCharacterTextSplitter

from app_config import ConfigError, Settings
from content import FrontMatterError, Post, load_posts
from rag.embeddings import get_embeddings
from rag.vectorstores import local_index_dir
from storage.blob import BlobSettings, BlobStorageClient

logger = logging.getLogger(__name__)


def build_splitter(chunk_size: int = 800, chunk_overlap: int = 150) -> RecursiveCharacterTextSplitter:
    return RecursiveCharacterTextSplitter.from_language(
        Language.MARKDOWN,
        chunk_size=chunk_size,
        chunk_overlap=chunk_overlap,
    )


def post_to_documents(post: Post, splitter: RecursiveCharacterTextSplitter) -> list[Document]:
    """
    Split a post body into chunks, tagging each with the post's metadata.

    The first chunk is prefixed with the title (and description) so a search
    for the post's headline finds it.
    """
    header = f"# {post.title}\n\n"
    if post.description:
        header += f"{post.description}\n\n"

    metadata = {
        "slug": post.slug,
        "title": post.title,
        "date": post.date.isoformat(),
        "tags": list(post.tags),
    }

    chunks = splitter.split_text(post.body) or [""]
    docs = []
    for i, chunk in enumerate(chunks):
        text = header + chunk if i == 0 else chunk
        docs.append(Document(page_content=text.strip(), metadata={**metadata, "chunk": i}))
    return docs


def build_vectorstore(
    posts: Iterable[Post],
    embeddings: Embeddings,
    splitter: RecursiveCharacterTextSplitter | None = None,
) -> FAISS:
    splitter = splitter or build_splitter()
    docs = [doc for post in posts for doc in post_to_documents(post, splitter)]
    if not docs:
        raise ValueError("No posts to index.")
    logger.info("Embedding %d chunks", len(docs))
    return FAISS.from_documents(docs, embeddings)


def save_vectorstore(vs: FAISS, local_dir: Path) -> Path:
    local_dir.mkdir(parents=True, exist_ok=True)
    vs.save_local(str(local_dir))
    logger.info("Saved index to %s", local_dir)
    return local_dir


def publish_vectorstore(blob: BlobStorageClient, local_dir: Path, prefix: str, name: str) -> list[str]:
    return blob.upload_dir(local_dir, f"{prefix.strip('/')}/{name.strip('/')}")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="python -m rag.ingest", description="Build the posts vectorstore.")
    parser.add_argument("--posts-dir", type=Path, help="directory of Markdown posts (default: POSTS_DIR)")
    parser.add_argument("--out", type=Path, help="where to save the index (default: RAG_CACHE_DIR/RAG_INDEX_NAME)")
    parser.add_argument("--publish", action="store_true", help="upload the index to Azure Blob Storage")
    parser.add_argument("--include-drafts", action="store_true", help="index draft posts too")
    parser.add_argument("--strict", action="store_true", help="fail on the first invalid post")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        settings = Settings.from_env()
        logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

        posts = load_posts(
            args.posts_dir or settings.posts_dir,
            include_drafts=args.include_drafts,
            strict=args.strict,
        )
        splitter = build_splitter(settings.chunk_size, settings.chunk_overlap)
        vs = build_vectorstore(posts, get_embeddings(settings), splitter)
        local_dir = save_vectorstore(vs, args.out or local_index_dir(settings.cache_dir, settings.index_name))

        if args.publish:
            blob_settings = BlobSettings.from_env()
            blob = BlobStorageClient.from_settings(blob_settings)
            publish_vectorstore(blob, local_dir, blob_settings.vectorstore_prefix, settings.index_name)
    except (ConfigError, FrontMatterError, FileNotFoundError, ValueError) as e:
        logger.error("Ingest failed: %s", e)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
