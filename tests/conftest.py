"""
Pytest Configuration and Shared Fixtures

Provides sample post trees, settings and fakes so the suite runs without
Azure, model downloads or network access.
"""
import os
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app_config import Settings  # noqa: E402


STREAMING_POST = """---
title: Streaming large files in Python
date: 2023-03-14
description: Reading and writing files in chunks instead of all at once.
tags: [python, io, python]
---
Reading a whole file with `read()` loads it into memory.

Instead, read a fixed-size chunk in a loop until the stream returns nothing.
"""

RAG_POST = """+++
title = "Building a RAG app"
date = 2024-01-20T10:00:00Z
tags = ["python", "llm", "rag"]
+++
I embedded my notes, stored them in a vector database and asked questions
against a hosted model.
"""

DRAFT_POST = """---
title: Work in progress
date: 2024-06-01
draft: true
---
Not ready yet.
"""

BROKEN_POST = "# No front matter here\n"


@pytest.fixture
def posts_dir(tmp_path: Path) -> Path:
    """A post tree with a single-file post, a page bundle, a draft and a broken file."""
    root = tmp_path / "posts"
    (root / "rag-app").mkdir(parents=True)
    (root / "streaming-large-files.md").write_text(STREAMING_POST, encoding="utf-8")
    (root / "rag-app" / "index.md").write_text(RAG_POST, encoding="utf-8")
    (root / "wip.md").write_text(DRAFT_POST, encoding="utf-8")
    (root / "broken.md").write_text(BROKEN_POST, encoding="utf-8")
    return root


@pytest.fixture
def posts(posts_dir):
    from content import load_posts

    return load_posts(posts_dir)


@pytest.fixture
def settings(tmp_path: Path, posts_dir: Path) -> Settings:
    return Settings(
        posts_dir=posts_dir,
        cache_dir=tmp_path / "cache",
        index_name="posts",
        top_k=4,
        chunk_size=800,
        chunk_overlap=150,
        io_chunk_size=4,
        embeddings_provider="huggingface",
        embeddings_model="test-model",
        site_title="Test Notes",
        log_level="INFO",
    )


@pytest.fixture
def fake_embeddings():
    from langchain_core.embeddings import DeterministicFakeEmbedding

    return DeterministicFakeEmbedding(size=32)


def make_doc(slug: str, text: str = "snippet", title: str | None = None):
    from langchain_core.documents import Document

    return Document(
        page_content=text,
        metadata={"slug": slug, "title": title or slug.title(), "date": "2024-01-20T10:00:00+00:00"},
    )


class StubVectorStore:
    """Returns canned documents and records the queries it saw."""

    def __init__(self, docs):
        self.docs = list(docs)
        self.queries = []

    def similarity_search(self, query, k=4, **kwargs):
        self.queries.append((query, k))
        return self.docs[:k]


@pytest.fixture
def stub_vectorstore():
    return StubVectorStore(
        [
            make_doc("rag-app", "I embedded my notes in a vector database.", "Building a RAG app"),
            make_doc("rag-app", "Then I asked a hosted model.", "Building a RAG app"),
            make_doc("streaming-large-files", "Read a chunk at a time.", "Streaming large files in Python"),
        ]
    )


class FakeBlob:
    def __init__(self, store, name):
        self._store = store
        self.name = name
        self.url = f"https://acct.blob.core.windows.net/container/{name}"

    def exists(self):
        return self.name in self._store.data

    def download_blob(self):
        import io

        return io.BytesIO(self._store.data[self.name])

    def upload_blob(self, data, overwrite=False, **kwargs):
        self._store.data[self.name] = data.read()
        self._store.uploads.append((self.name, kwargs))


class FakeContainer:
    """In-memory stand-in for `azure.storage.blob.ContainerClient`."""

    container_name = "container"

    def __init__(self, data=None):
        self.data = dict(data or {})
        self.uploads = []

    def get_blob_client(self, name):
        return FakeBlob(self, name)

    def list_blobs(self, name_starts_with=""):
        return [SimpleNamespace(name=n) for n in sorted(self.data) if n.startswith(name_starts_with)]


@pytest.fixture
def fake_container():
    return FakeContainer()
