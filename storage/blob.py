"""
Azure Blob Storage utilities.

This module provides a small wrapper around `azure-storage-blob` for:
  - checking existence of blobs
  - uploading files and whole directories (vectorstore artifacts, attachments)
  - downloading all blobs under a prefix into a local directory
  - streaming a blob in bounded chunks (used for serving files)
  - generating short-lived read-only SAS URLs

Environment variables:
  - AZURE_STORAGE_CONNECTION_STRING (development; key-based access)
  - AZURE_STORAGE_ACCOUNT_NAME (production; Managed Identity via DefaultAzureCredential)
  - AZURE_BLOB_CONTAINER (default: blog-content)
  - AZURE_BLOB_FILES_PREFIX (default: files)
  - AZURE_BLOB_VECTORSTORE_PREFIX (default: vectorstores)
"""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Iterator

from azure.identity import DefaultAzureCredential
from azure.storage.blob import (
    BlobSasPermissions,
    BlobServiceClient,
    ContainerClient,
    ContentSettings,
    generate_blob_sas,
)

from app_config import ConfigError, _env
from storage.chunked import DEFAULT_CHUNK_SIZE, copy_stream, iter_chunks

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlobSettings:
    """Configuration for Azure Blob Storage access."""

    connection_string: str | None
    account_name: str | None
    container: str
    files_prefix: str
    vectorstore_prefix: str

    @property
    def account_url(self) -> str:
        return f"https://{self.account_name}.blob.core.windows.net"

    @staticmethod
    def is_configured() -> bool:
        return bool(_env("AZURE_STORAGE_CONNECTION_STRING") or _env("AZURE_STORAGE_ACCOUNT_NAME"))

    @staticmethod
    def from_env() -> "BlobSettings":
        conn = _env("AZURE_STORAGE_CONNECTION_STRING")
        account = _env("AZURE_STORAGE_ACCOUNT_NAME")
        if not conn and not account:
            raise ConfigError(
                "Missing AZURE_STORAGE_CONNECTION_STRING or AZURE_STORAGE_ACCOUNT_NAME. Set one in Azure App "
                "Service Configuration or your local environment before starting."
            )

        return BlobSettings(
            connection_string=conn,
            account_name=account,
            container=_env("AZURE_BLOB_CONTAINER", "blog-content") or "blog-content",
            files_prefix=(_env("AZURE_BLOB_FILES_PREFIX", "files") or "files").strip("/"),
            vectorstore_prefix=(_env("AZURE_BLOB_VECTORSTORE_PREFIX", "vectorstores") or "vectorstores").strip("/"),
        )


class BlobStorageClient:
    """Thin wrapper around Azure Blob container operations."""

    def __init__(self, container: ContainerClient, service: BlobServiceClient | None = None):
        self._container = container
        self._service = service

    @staticmethod
    def from_settings(settings: BlobSettings) -> "BlobStorageClient":
        # Prefer the connection string (development), otherwise Managed Identity (production).
        if settings.connection_string:
            svc = BlobServiceClient.from_connection_string(settings.connection_string)
        else:
            svc = BlobServiceClient(settings.account_url, credential=DefaultAzureCredential())
        return BlobStorageClient(svc.get_container_client(settings.container), svc)

    def blob_exists(self, name: str) -> bool:
        """Return True if a blob exists."""
        return self._container.get_blob_client(name).exists()

    def list_blobs(self, prefix: str) -> Iterable[str]:
        """List blob names under a prefix."""
        for b in self._container.list_blobs(name_starts_with=prefix):
            yield b.name

    def download_blob_to_file(self, blob_name: str, local_path: Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
        """Download a single blob to a local file path; returns bytes written."""
        local_path.parent.mkdir(parents=True, exist_ok=True)
        downloader = self._container.get_blob_client(blob_name).download_blob()
        with local_path.open("wb") as f:
            written = copy_stream(downloader, f, chunk_size)
        logger.debug("Downloaded %s -> %s (%d bytes)", blob_name, local_path, written)
        return written

    def download_prefix(self, prefix: str, local_dir: Path) -> list[Path]:
        """
        Download all blobs under `prefix` into `local_dir`.

        Returns a list of downloaded local file paths. Raises ValueError for a
        blob name that would land outside `local_dir`.
        """
        downloaded: list[Path] = []
        prefix = prefix.rstrip("/") + "/"
        local_dir.mkdir(parents=True, exist_ok=True)
        root = local_dir.resolve()

        for blob_name in self.list_blobs(prefix):
            rel = blob_name[len(prefix) :]
            if not rel or rel.endswith("/"):
                continue
            local_path = local_dir / rel
            if root not in local_path.resolve().parents:
                raise ValueError(f"Refusing to download {blob_name!r} outside {local_dir}")
            self.download_blob_to_file(blob_name, local_path)
            downloaded.append(local_path)

        logger.info("Downloaded %d blobs from %s", len(downloaded), prefix)
        return downloaded

    def upload_file(self, local_path: Path, blob_name: str, max_concurrency: int = 2) -> None:
        """Upload a local file, streaming it from disk. Existing blobs are overwritten."""
        content_type = mimetypes.guess_type(local_path.name)[0] or "application/octet-stream"
        blob = self._container.get_blob_client(blob_name)
        with local_path.open("rb") as f:
            blob.upload_blob(
                f,
                overwrite=True,
                max_concurrency=max_concurrency,
                content_settings=ContentSettings(content_type=content_type),
            )
        logger.debug("Uploaded %s -> %s", local_path, blob_name)

    def upload_dir(self, local_dir: Path, prefix: str) -> list[str]:
        """Upload every file under `local_dir` beneath `prefix`; returns blob names."""
        if not local_dir.is_dir():
            raise FileNotFoundError(f"Directory not found: {local_dir}")

        prefix = prefix.strip("/")
        uploaded: list[str] = []
        for path in sorted(local_dir.rglob("*")):
            if not path.is_file():
                continue
            blob_name = f"{prefix}/{path.relative_to(local_dir).as_posix()}"
            self.upload_file(path, blob_name)
            uploaded.append(blob_name)

        logger.info("Uploaded %d files to %s/", len(uploaded), prefix)
        return uploaded

    def stream_blob(self, blob_name: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        """
        Stream a blob as an iterator of bytes.

        Note: browsers may request ranges; for simplicity we stream the full file.
        """
        downloader = self._container.get_blob_client(blob_name).download_blob()
        return iter_chunks(downloader, chunk_size)

    def get_sas_url(self, blob_name: str, expiry: timedelta = timedelta(hours=1)) -> str | None:
        """
        Generate a read-only SAS URL for a specific blob.

        Uses the account key when the client was built from a connection string,
        otherwise a user delegation key (requires the 'Storage Blob Data
        Contributor' role for the identity).
        """
        if not blob_name or self._service is None:
            return None

        now = datetime.now(timezone.utc)
        blob = self._container.get_blob_client(blob_name)
        account_key = getattr(self._service.credential, "account_key", None)

        try:
            if account_key:
                sas_token = generate_blob_sas(
                    account_name=self._service.account_name,
                    container_name=self._container.container_name,
                    blob_name=blob_name,
                    account_key=account_key,
                    permission=BlobSasPermissions(read=True),
                    expiry=now + expiry,
                )
            else:
                ud_key = self._service.get_user_delegation_key(
                    key_start_time=now - timedelta(minutes=1),
                    key_expiry_time=now + expiry,
                )
                sas_token = generate_blob_sas(
                    account_name=self._service.account_name,
                    container_name=self._container.container_name,
                    blob_name=blob_name,
                    user_delegation_key=ud_key,
                    permission=BlobSasPermissions(read=True),
                    expiry=now + expiry,
                )
        except Exception:
            logger.exception("Error generating SAS for %s", blob_name)
            return None

        return f"{blob.url}?{sas_token}"
