import io

import boto3
import pytest
from botocore.response import StreamingBody
from botocore.stub import ANY, Stubber

from snapforge.services.errors import BlobNotFoundError, StorageError, ValidationError
from snapforge.services.storage import BlobStorage, LocalStorage, S3Storage, build_storage
from snapforge.services.settings_store import StorageSettings


def test_local_roundtrip_and_idempotent_delete(tmp_path):
    store = LocalStorage(str(tmp_path))
    store.save("g1/a.jpg", b"abc", "image/jpeg")
    assert store.exists("g1/a.jpg")
    assert store.read("g1/a.jpg") == b"abc"
    store.delete("g1/a.jpg")
    store.delete("g1/a.jpg")
    assert not store.exists("g1/a.jpg")
    with pytest.raises(BlobNotFoundError):
        store.read("g1/a.jpg")


def test_local_rejects_escaping_paths(tmp_path):
    store = LocalStorage(str(tmp_path / "root"))
    with pytest.raises(ValidationError):
        store.save("../outside.jpg", b"x")
    with pytest.raises(ValidationError):
        store.read("/etc/passwd")


def test_local_delete_prefix(tmp_path):
    store = LocalStorage(str(tmp_path))
    store.save("g1/a.jpg", b"a")
    store.save("g1/b.jpg", b"b")
    store.save("g2/c.jpg", b"c")
    store.delete_prefix("g1")
    store.delete_prefix("g1")
    assert not store.exists("g1/a.jpg")
    assert store.exists("g2/c.jpg")
    with pytest.raises(ValidationError):
        store.delete_prefix("")


def test_build_storage_selects_backend(tmp_path):
    store = build_storage(StorageSettings(type="local", local_path=str(tmp_path)))
    assert isinstance(store, LocalStorage)


@pytest.fixture
def s3():
    client = boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="test",
        aws_secret_access_key="test",
    )
    with Stubber(client) as stubber:
        yield S3Storage("bucket", client=client), stubber
        stubber.assert_no_pending_responses()


def test_s3_save_and_read(s3):
    store, stubber = s3
    stubber.add_response(
        "put_object",
        {},
        {"Bucket": "bucket", "Key": "g/a.jpg", "Body": b"data", "ContentType": "image/jpeg"},
    )
    stubber.add_response(
        "get_object",
        {"Body": StreamingBody(io.BytesIO(b"data"), 4)},
        {"Bucket": "bucket", "Key": "g/a.jpg"},
    )
    store.save("g/a.jpg", b"data", "image/jpeg")
    assert store.read("g/a.jpg") == b"data"


def test_s3_missing_object(s3):
    store, stubber = s3
    stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)
    stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)
    with pytest.raises(BlobNotFoundError):
        store.read("g/missing.jpg")
    assert store.exists("g/missing.jpg") is False


def test_s3_errors_become_storage_errors(s3):
    store, stubber = s3
    stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)
    stubber.add_client_error("delete_object", service_error_code="AccessDenied", http_status_code=403)
    with pytest.raises(StorageError):
        store.save("g/a.jpg", b"x")
    with pytest.raises(StorageError):
        store.delete("g/a.jpg")


def test_s3_delete_prefix(s3):
    store, stubber = s3
    stubber.add_response(
        "list_objects_v2",
        {"Contents": [{"Key": "g/a.jpg"}, {"Key": "g/b.jpg"}], "IsTruncated": False},
        {"Bucket": "bucket", "Prefix": "g/"},
    )
    stubber.add_response(
        "delete_objects",
        {"Deleted": [{"Key": "g/a.jpg"}, {"Key": "g/b.jpg"}]},
        {"Bucket": "bucket", "Delete": {"Objects": [{"Key": "g/a.jpg"}, {"Key": "g/b.jpg"}], "Quiet": True}},
    )
    store.delete_prefix("g")


def test_s3_delete_is_idempotent(s3):
    store, stubber = s3
    stubber.add_response("delete_object", {}, {"Bucket": "bucket", "Key": ANY})
    store.delete("g/gone.jpg")


def test_backend_missing_an_operation_cannot_be_built():
    class ReadOnlyStorage(BlobStorage):
        def read(self, path):
            return b""

        def exists(self, path):
            return False

    with pytest.raises(TypeError):
        ReadOnlyStorage()
