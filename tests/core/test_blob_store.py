"""Tests for blob store backends.

Covers the put/get contract, the not-found and unreadable-source failure
modes, and the S3 adapter's translation of botocore errors.
"""

import errno
import os
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from video_pipeline.core.exceptions import StoreReadError, StoreWriteError
from video_pipeline.core.storage import (
    LocalBlobStore,
    S3BlobStore,
    StorageConfig,
    create_blob_store,
)


def _client_error(code: str, operation: str = "HeadObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def local_store(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(StorageConfig(backend="local", local_path=str(tmp_path / "bucket")))


@pytest.fixture
def source_file(tmp_path: Path) -> Path:
    path = tmp_path / "source.mp4"
    path.write_bytes(b"video-bytes")
    return path


class TestLocalBlobStore:
    """put/get semantics of the filesystem backend."""

    def test_put_then_get_round_trips_bytes(self, local_store, source_file, tmp_path):
        local_store.put(source_file, "videos/source.mp4")

        destination = tmp_path / "out" / "copy.mp4"
        returned = local_store.get("videos/source.mp4", destination)

        assert returned == destination
        assert destination.read_bytes() == b"video-bytes"

    def test_put_creates_prefix_structure(self, local_store, source_file):
        local_store.put(source_file, "encoded/deep/nested/source.avi")

        assert (local_store.base_path / "encoded" / "deep" / "nested" / "source.avi").is_file()
        assert local_store.exists("encoded/deep/nested/source.avi")

    def test_put_overwrites_existing_object(self, local_store, source_file, tmp_path):
        local_store.put(source_file, "videos/a.mp4")
        newer = tmp_path / "newer.mp4"
        newer.write_bytes(b"newer")

        local_store.put(newer, "videos/a.mp4")

        out = local_store.get("videos/a.mp4", tmp_path / "a.mp4")
        assert out.read_bytes() == b"newer"

    def test_get_missing_key_raises_store_read_error(self, local_store, tmp_path):
        with pytest.raises(StoreReadError) as exc_info:
            local_store.get("videos/missing.mp4", tmp_path / "missing.mp4")

        assert exc_info.value.key == "videos/missing.mp4"
        assert not (tmp_path / "missing.mp4").exists()

    def test_put_missing_source_raises_store_write_error(self, local_store, tmp_path):
        with pytest.raises(StoreWriteError):
            local_store.put(tmp_path / "nope.mp4", "videos/nope.mp4")

        assert not local_store.exists("videos/nope.mp4")

    def test_failed_copy_leaves_no_object(self, local_store, source_file, tmp_path):
        local_store.put(source_file, "videos/source.mp4")
        newer = tmp_path / "newer.mp4"
        newer.write_bytes(b"newer-bytes")

        def truncate(src, dst, *args, **kwargs):
            Path(dst).write_bytes(b"trunc")
            raise OSError(errno.ENOSPC, "No space left on device")

        with patch("video_pipeline.core.storage.shutil.copyfile", side_effect=truncate):
            with pytest.raises(StoreWriteError):
                local_store.put(newer, "videos/source.mp4")
            with pytest.raises(StoreWriteError):
                local_store.put(newer, "videos/fresh.mp4")

        assert local_store.get("videos/source.mp4", tmp_path / "out.mp4").read_bytes() == b"video-bytes"
        assert not local_store.exists("videos/fresh.mp4")
        assert sorted(p.name for p in (local_store.base_path / "videos").iterdir()) == ["source.mp4"]

    def test_put_directory_source_raises_store_write_error(self, local_store, tmp_path):
        with pytest.raises(StoreWriteError):
            local_store.put(tmp_path, "videos/dir.mp4")

    def test_put_fails_when_destination_cannot_be_created(self, local_store, source_file):
        # A file where the prefix directory should go blocks mkdir
        (local_store.base_path / "videos").write_bytes(b"not a directory")

        with pytest.raises(StoreWriteError):
            local_store.put(source_file, "videos/source.mp4")

    def test_key_escaping_root_is_rejected(self, local_store, source_file, tmp_path):
        with pytest.raises(StoreWriteError):
            local_store.put(source_file, "../outside.mp4")
        with pytest.raises(StoreReadError):
            local_store.get("../outside.mp4", tmp_path / "x.mp4")
        assert local_store.exists("../outside.mp4") is False

    def test_delete(self, local_store, source_file):
        local_store.put(source_file, "videos/source.mp4")

        assert local_store.delete("videos/source.mp4") is True
        assert local_store.exists("videos/source.mp4") is False
        assert local_store.delete("videos/source.mp4") is False

    def test_writes_visible_to_other_instances_on_same_root(self, tmp_path, source_file):
        config = StorageConfig(backend="local", local_path=str(tmp_path / "shared"))
        writer = LocalBlobStore(config)
        reader = LocalBlobStore(config)

        writer.put(source_file, "videos/shared.mp4")

        assert reader.exists("videos/shared.mp4")


class TestS3BlobStore:
    """S3 adapter maps boto3 calls and errors onto the blob store contract."""

    def _store(self, client: MagicMock) -> S3BlobStore:
        return S3BlobStore(StorageConfig(backend="s3", bucket="media"), client=client)

    def test_put_uploads_file(self, source_file):
        client = MagicMock()

        self._store(client).put(source_file, "videos/source.mp4")

        client.upload_file.assert_called_once_with(str(source_file), "media", "videos/source.mp4")

    def test_put_wraps_client_error(self, source_file):
        client = MagicMock()
        client.upload_file.side_effect = _client_error("AccessDenied", "PutObject")

        with pytest.raises(StoreWriteError) as exc_info:
            self._store(client).put(source_file, "videos/source.mp4")

        assert isinstance(exc_info.value.cause, ClientError)

    def test_put_unreadable_source_never_calls_client(self, tmp_path):
        client = MagicMock()

        with pytest.raises(StoreWriteError):
            self._store(client).put(tmp_path / "absent.mp4", "videos/absent.mp4")

        client.upload_file.assert_not_called()

    def test_get_downloads_to_destination(self, tmp_path):
        client = MagicMock()
        destination = tmp_path / "nested" / "x.mp4"

        assert self._store(client).get("videos/x.mp4", destination) == destination

        client.download_file.assert_called_once_with("media", "videos/x.mp4", str(destination))
        assert destination.parent.is_dir()

    @pytest.mark.parametrize("code", ["404", "NoSuchKey", "NotFound"])
    def test_get_not_found_raises_store_read_error(self, tmp_path, code):
        client = MagicMock()
        destination = tmp_path / "x.mp4"

        def fail(bucket, key, filename):
            # boto3 may leave a partial temp file behind
            Path(filename).write_bytes(b"partial")
            raise _client_error(code)

        client.download_file.side_effect = fail

        with pytest.raises(StoreReadError, match="not found"):
            self._store(client).get("videos/x.mp4", destination)

        assert not destination.exists()

    def test_get_other_error_raises_store_read_error(self, tmp_path):
        client = MagicMock()
        client.download_file.side_effect = _client_error("InternalError", "GetObject")

        with pytest.raises(StoreReadError, match="Failed to download"):
            self._store(client).get("videos/x.mp4", tmp_path / "x.mp4")

    def test_exists(self):
        client = MagicMock()
        store = self._store(client)

        assert store.exists("encoded/x.mp4") is True

        client.head_object.side_effect = _client_error("404")
        assert store.exists("encoded/x.mp4") is False

    def test_exists_propagates_unexpected_errors(self):
        client = MagicMock()
        client.head_object.side_effect = _client_error("AccessDenied")

        with pytest.raises(StoreReadError):
            self._store(client).exists("encoded/x.mp4")


class TestCreateBlobStore:
    """Backend selection from configuration."""

    def test_local_backend(self, tmp_path):
        store = create_blob_store(StorageConfig(backend="local", local_path=str(tmp_path / "s")))
        assert isinstance(store, LocalBlobStore)
        assert os.path.isdir(tmp_path / "s")

    @pytest.mark.parametrize("backend", ["s3", "S3", "minio", "aws"])
    def test_s3_backends(self, backend):
        assert isinstance(create_blob_store(StorageConfig(backend=backend, bucket="b")), S3BlobStore)

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unsupported storage backend"):
            create_blob_store(StorageConfig(backend="gcs"))
