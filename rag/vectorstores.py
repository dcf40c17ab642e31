"""
Vectorstore loading and caching.

Indexes are FAISS directories created by `save_local()`:
  <name>/index.faiss
  <name>/index.pkl

They are built by `rag.ingest` and optionally published to Azure Blob Storage
under `<vectorstore_prefix>/<name>/`. Because FAISS expects local files, the
web app downloads those artifacts into a local cache directory on first use
and loads them via `FAISS.load_local(...)`.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from langchain_community.vectorstores import FAISS
from langchain_core.embeddings import Embeddings

from storage.blob import BlobStorageClient

logger = logging.getLogger(__name__)


def local_index_dir(cache_root: Path, name: str) -> Path:
    # Keep paths safe for filesystem usage.
    safe = re.sub(r"[^A-Za-z0-9._-]+", "__", name.strip("/\\")).strip(".")
    if not safe:
        raise ValueError(f"Invalid index name: {name!r}")
    return cache_root / safe


def is_index_dir(local_dir: Path) -> bool:
    return (local_dir / "index.faiss").exists() and (local_dir / "index.pkl").exists()


@dataclass
class VectorstoreManager:
    """
    Loads FAISS vectorstores from the local cache, fetching them from Blob when missing.

    Parameters
    ----------
    embeddings:
        The embedding function used for retrieval (must match the one used to build the FAISS index).
    cache_root:
        Local directory where vectorstores are built or downloaded.
    blob:
        Optional blob storage client. Without one, indexes must already exist locally.
    prefix:
        Blob prefix where published vectorstores live.
    """

    embeddings: Embeddings
    cache_root: Path
    blob: BlobStorageClient | None = None
    prefix: str = "vectorstores"

    def __post_init__(self) -> None:
        self.cache_root.mkdir(parents=True, exist_ok=True)
        self._mem_cache: dict[str, FAISS] = {}

    def get_vectorstore(self, name: str) -> FAISS:
        """
        Get (and cache) a FAISS vectorstore by index name.

        Downloads artifacts from Blob on first use.
        """
        if name in self._mem_cache:
            return self._mem_cache[name]

        local_dir = local_index_dir(self.cache_root, name)
        if not is_index_dir(local_dir):
            if self.blob is None:
                raise FileNotFoundError(f"Vectorstore '{name}' not found in {local_dir}. Run the ingest command first.")
            prefix = f"{self.prefix.strip('/')}/{name.strip('/')}/"
            logger.info("Index %s not cached locally; downloading %s", name, prefix)
            self.blob.download_prefix(prefix, local_dir)
            if not is_index_dir(local_dir):
                raise FileNotFoundError(f"Vectorstore '{name}' not found under blob prefix {prefix}.")

        # NOTE: FAISS.load_local() uses pickle for docstore metadata (`index.pkl`).
        # We set allow_dangerous_deserialization=True because we build the index ourselves.
        vs = FAISS.load_local(
            str(local_dir),
            self.embeddings,
            allow_dangerous_deserialization=True,
        )
        self._mem_cache[name] = vs
        return vs

    def invalidate(self, name: str | None = None) -> None:
        """Forget loaded indexes so the next call reloads from disk."""
        if name is None:
            self._mem_cache.clear()
        else:
            self._mem_cache.pop(name, None)
