"""Blob store tests"""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from exceptions.exceptions import StorageException
from services.blob_store import BlobStore


def _client_error(code="InternalError", operation="DeleteObjects"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


def test_put_and_get(blob_store, s3_client):
    blob_store.put("chunks/S1/000000", b"abc", content_type="video/mp4")

    assert s3_client.objects["chunks/S1/000000"] == b"abc"
    assert blob_store.get("chunks/S1/000000") == b"abc"


def test_get_missing_blob_raises(blob_store):
    with pytest.raises(StorageException) as exc_info:
        blob_store.get("chunks/S1/000000")

    assert exc_info.value.retryable is True


def test_put_failure_raises(blob_store, s3_client):
    s3_client.fail_put = True

    with pytest.raises(StorageException):
        blob_store.put("chunks/S1/000000", b"abc")


def test_delete_many_reports_failed_keys(blob_store, s3_client):
    for index in range(3):
        blob_store.put(f"chunks/S1/{index:06d}", b"x")
    s3_client.fail_delete_keys.add("chunks/S1/000001")

    failed = blob_store.delete_many(["chunks/S1/000000", "chunks/S1/000001", "chunks/S1/000002", "chunks/S1/000003"])

    assert failed == ["chunks/S1/000001"]
    assert list(s3_client.objects) == ["chunks/S1/000001"]


def test_delete_many_batches_requests():
    s3_client = MagicMock()
    s3_client.delete_objects.return_value = {}
    paths = [f"chunks/S1/{index:06d}" for index in range(2500)]

    failed = BlobStore(s3_client=s3_client, bucket="test-bucket").delete_many(paths)

    assert failed == []
    batches = [call.kwargs["Delete"]["Objects"] for call in s3_client.delete_objects.call_args_list]
    assert [len(batch) for batch in batches] == [1000, 1000, 500]
    assert batches[2][-1] == {"Key": "chunks/S1/002499"}


def test_delete_many_ignores_missing_keys_and_survives_batch_errors():
    s3_client = MagicMock()
    s3_client.delete_objects.side_effect = [
        {"Errors": [{"Key": "a", "Code": "NoSuchKey", "Message": "gone"}]},
        _client_error(),
    ]
    paths = ["a"] + [f"k{index}" for index in range(1000)]

    failed = BlobStore(s3_client=s3_client, bucket="test-bucket").delete_many(paths)

    # First batch holds "a" plus 999 keys, the failed second batch holds the last key
    assert failed == ["k999"]


def test_delete_many_with_no_paths(blob_store, s3_client):
    assert blob_store.delete_many([]) == []
    assert s3_client.deleted == []


def _unreachable(**kwargs):
    raise EndpointConnectionError(endpoint_url="https://r2.example.com")


def test_connection_errors_become_storage_errors(blob_store, s3_client, monkeypatch):
    monkeypatch.setattr(s3_client, "put_object", _unreachable)
    monkeypatch.setattr(s3_client, "get_object", _unreachable)

    with pytest.raises(StorageException):
        blob_store.put("chunks/S1/000000", b"abc")
    with pytest.raises(StorageException):
        blob_store.get("chunks/S1/000000")


def test_delete_many_connection_error_fails_the_batch(blob_store, s3_client, monkeypatch):
    monkeypatch.setattr(s3_client, "delete_objects", _unreachable)

    failed = blob_store.delete_many(["chunks/S1/000000", "chunks/S1/000001"])

    assert failed == ["chunks/S1/000000", "chunks/S1/000001"]
