"""
Tests for the Azure Blob Storage wrapper

Uses an in-memory container so no Azure account is needed.
"""
from unittest.mock import MagicMock

import pytest

import storage.blob as blob_module
from app_config import ConfigError
from storage.blob import BlobSettings, BlobStorageClient

_BLOB_ENV = [
    "AZURE_STORAGE_CONNECTION_STRING",
    "AZURE_STORAGE_ACCOUNT_NAME",
    "AZURE_BLOB_CONTAINER",
    "AZURE_BLOB_FILES_PREFIX",
    "AZURE_BLOB_VECTORSTORE_PREFIX",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in _BLOB_ENV:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestBlobSettings:
    """Tests for environment-driven settings"""

    def test_missing_credentials(self, clean_env):
        assert BlobSettings.is_configured() is False
        with pytest.raises(ConfigError, match="AZURE_STORAGE_CONNECTION_STRING"):
            BlobSettings.from_env()

    def test_defaults(self, clean_env):
        clean_env.setenv("AZURE_STORAGE_ACCOUNT_NAME", "acct")
        settings = BlobSettings.from_env()
        assert BlobSettings.is_configured() is True
        assert settings.connection_string is None
        assert settings.account_url == "https://acct.blob.core.windows.net"
        assert settings.container == "blog-content"
        assert settings.files_prefix == "files"
        assert settings.vectorstore_prefix == "vectorstores"

    def test_prefixes_are_trimmed(self, clean_env):
        clean_env.setenv("AZURE_STORAGE_CONNECTION_STRING", "UseDevelopmentStorage=true")
        clean_env.setenv("AZURE_BLOB_FILES_PREFIX", "/attachments/")
        clean_env.setenv("AZURE_BLOB_VECTORSTORE_PREFIX", "indexes/")
        settings = BlobSettings.from_env()
        assert settings.files_prefix == "attachments"
        assert settings.vectorstore_prefix == "indexes"


class TestBlobStorageClient:
    """Tests for container operations"""

    def test_exists_and_list(self, fake_container):
        fake_container.data = {"files/a.txt": b"a", "files/b.txt": b"b", "other/c.txt": b"c"}
        client = BlobStorageClient(fake_container)
        assert client.blob_exists("files/a.txt")
        assert not client.blob_exists("files/zzz.txt")
        assert list(client.list_blobs("files/")) == ["files/a.txt", "files/b.txt"]

    def test_download_blob_to_file(self, fake_container, tmp_path):
        fake_container.data = {"files/big.bin": b"0123456789"}
        client = BlobStorageClient(fake_container)
        target = tmp_path / "nested" / "big.bin"
        assert client.download_blob_to_file("files/big.bin", target, chunk_size=3) == 10
        assert target.read_bytes() == b"0123456789"

    def test_download_prefix(self, fake_container, tmp_path):
        fake_container.data = {
            "vectorstores/posts/index.faiss": b"faiss",
            "vectorstores/posts/index.pkl": b"pkl",
            "vectorstores/posts/": b"",
            "vectorstores/other/index.faiss": b"no",
        }
        client = BlobStorageClient(fake_container)
        paths = client.download_prefix("vectorstores/posts", tmp_path / "cache")
        assert sorted(p.name for p in paths) == ["index.faiss", "index.pkl"]
        assert (tmp_path / "cache" / "index.pkl").read_bytes() == b"pkl"

    def test_download_prefix_rejects_escaping_names(self, fake_container, tmp_path):
        fake_container.data = {"vectorstores/posts/../../evil.txt": b"evil"}
        client = BlobStorageClient(fake_container)
        with pytest.raises(ValueError, match="outside"):
            client.download_prefix("vectorstores/posts", tmp_path / "cache")
        assert not (tmp_path / "evil.txt").exists()
        assert not (tmp_path.parent / "evil.txt").exists()

    def test_upload_dir(self, fake_container, tmp_path):
        local = tmp_path / "index"
        (local / "sub").mkdir(parents=True)
        (local / "index.faiss").write_bytes(b"faiss")
        (local / "sub" / "notes.txt").write_bytes(b"notes")
        client = BlobStorageClient(fake_container)

        names = client.upload_dir(local, "/vectorstores/posts/")

        assert names == ["vectorstores/posts/index.faiss", "vectorstores/posts/sub/notes.txt"]
        assert fake_container.data["vectorstores/posts/sub/notes.txt"] == b"notes"
        content_types = {name: kw["content_settings"].content_type for name, kw in fake_container.uploads}
        assert content_types["vectorstores/posts/sub/notes.txt"] == "text/plain"
        assert content_types["vectorstores/posts/index.faiss"] == "application/octet-stream"

    def test_upload_dir_missing(self, fake_container, tmp_path):
        with pytest.raises(FileNotFoundError):
            BlobStorageClient(fake_container).upload_dir(tmp_path / "nope", "x")

    def test_stream_blob_in_chunks(self, fake_container):
        fake_container.data = {"files/a.txt": b"abcdefg"}
        chunks = list(BlobStorageClient(fake_container).stream_blob("files/a.txt", chunk_size=3))
        assert chunks == [b"abc", b"def", b"g"]

    def test_stream_blob_rejects_chunk_size_on_call(self, fake_container):
        fake_container.data = {"files/a.txt": b"abcdefg"}
        with pytest.raises(ValueError, match="chunk_size"):
            BlobStorageClient(fake_container).stream_blob("files/a.txt", chunk_size=0)


class TestSasUrl:
    """Tests for read-only SAS URL generation"""

    def _service(self, account_key="a2V5"):
        service = MagicMock()
        service.account_name = "acct"
        service.credential.account_key = account_key
        return service

    def test_without_service_client(self, fake_container):
        assert BlobStorageClient(fake_container).get_sas_url("files/a.txt") is None

    def test_empty_name(self, fake_container):
        assert BlobStorageClient(fake_container, self._service()).get_sas_url("") is None

    def test_account_key(self, fake_container, monkeypatch):
        calls = {}

        def fake_sas(**kwargs):
            calls.update(kwargs)
            return "sig=1"

        monkeypatch.setattr(blob_module, "generate_blob_sas", fake_sas)
        client = BlobStorageClient(fake_container, self._service())

        url = client.get_sas_url("files/a.txt")

        assert url == "https://acct.blob.core.windows.net/container/files/a.txt?sig=1"
        assert calls["account_key"] == "a2V5"
        assert calls["blob_name"] == "files/a.txt"
        assert calls["permission"].read is True

    def test_user_delegation(self, fake_container, monkeypatch):
        monkeypatch.setattr(blob_module, "generate_blob_sas", lambda **kw: f"ud={kw['user_delegation_key']}")
        service = self._service(account_key=None)
        service.get_user_delegation_key.return_value = "udkey"

        url = BlobStorageClient(fake_container, service).get_sas_url("files/a.txt")

        assert url.endswith("?ud=udkey")
        service.get_user_delegation_key.assert_called_once()

    def test_failure_returns_none(self, fake_container, monkeypatch):
        def broken(**kwargs):
            raise ValueError("bad key")

        monkeypatch.setattr(blob_module, "generate_blob_sas", broken)
        assert BlobStorageClient(fake_container, self._service()).get_sas_url("files/a.txt") is None
