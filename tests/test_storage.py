import io

import pytest

from synapse.config import Settings
from synapse.storage import LocalStorage, MinioStorage, StorageError, build_storage


async def test_local_round_trip(tmp_path):
    storage = LocalStorage(str(tmp_path / "uploads"))
    locator = await storage.save(b"circular no. 14", "../../etc/circular.txt", "user-1", "text/plain")

    assert locator.startswith(str(tmp_path / "uploads" / "user-1"))
    assert locator.endswith("__circular.txt")
    assert await storage.read(locator) == b"circular no. 14"


async def test_local_missing_file(tmp_path):
    storage = LocalStorage(str(tmp_path))
    with pytest.raises(StorageError):
        await storage.read(str(tmp_path / "nope.txt"))


async def test_empty_locator(tmp_path):
    with pytest.raises(StorageError):
        await LocalStorage(str(tmp_path)).read("")


class _FakeObject(io.BytesIO):
    def release_conn(self):
        pass


class FakeMinio:
    def __init__(self):
        self.buckets = set()
        self.objects = {}

    def bucket_exists(self, bucket):
        return bucket in self.buckets

    def make_bucket(self, bucket):
        self.buckets.add(bucket)

    def put_object(self, bucket, name, data, length, content_type=None):
        self.objects[(bucket, name)] = data.read(length)

    def get_object(self, bucket, name):
        if (bucket, name) not in self.objects:
            raise KeyError(name)
        return _FakeObject(self.objects[(bucket, name)])


async def test_minio_round_trip():
    client = FakeMinio()
    storage = MinioStorage(client, "documents")
    locator = await storage.save(b"%PDF-1.4", "tender.pdf", "user-1", "application/pdf")

    assert "documents" in client.buckets
    assert locator.startswith("documents/user-1/")
    assert await storage.read(locator) == b"%PDF-1.4"


async def test_minio_missing_object():
    storage = MinioStorage(FakeMinio(), "documents")
    with pytest.raises(StorageError):
        await storage.read("documents/user-1/missing.pdf")
    with pytest.raises(StorageError):
        await storage.read("no-object-name")


def test_build_storage_backends(tmp_path):
    local = build_storage(Settings(_env_file=None, gemini_api_key="k", upload_dir=str(tmp_path)))
    assert isinstance(local, LocalStorage)

    cfg = Settings(_env_file=None, gemini_api_key="k", storage_backend="minio")
    assert isinstance(build_storage(cfg, client=FakeMinio()), MinioStorage)
