from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from thumbnailer.errors import StorageUploadError
from thumbnailer.services.storage import (
    THUMBNAIL_CACHE_CONTROL,
    BlobStore,
    build_storage_key,
    format_key_timestamp,
    generation_nonce,
)


def test_format_key_timestamp():
    assert format_key_timestamp(3) == "3"
    assert format_key_timestamp(3.0) == "3"
    assert format_key_timestamp(0) == "0"
    assert format_key_timestamp(2.5) == "2.5"


def test_build_storage_key():
    assert build_storage_key("v1", 3, "1700000000000abc123") == "thumbnails/v1/thumb_3_1700000000000abc123.jpg"
    assert build_storage_key("v1", 1.25, "n") == "thumbnails/v1/thumb_1.25_n.jpg"


def test_build_storage_key_with_prefix():
    with patch("thumbnailer.services.storage.STORAGE_PREFIX", "folio"):
        assert build_storage_key("v1", 3, "n") == "folio/thumbnails/v1/thumb_3_n.jpg"


def test_generation_nonce_is_unique():
    nonces = {generation_nonce() for _ in range(50)}
    assert len(nonces) == 50


def test_upload_puts_object(blob_store, s3_client):
    blob_store.upload(
        "thumbnails/v1/thumb_3_n.jpg",
        b"jpeg",
        content_type="image/jpeg",
        metadata={"recordId": "v1", "timestamp": 3},
    )

    s3_client.put_object.assert_called_once_with(
        Bucket="folio-test-thumbs",
        Key="thumbnails/v1/thumb_3_n.jpg",
        Body=b"jpeg",
        ContentType="image/jpeg",
        CacheControl=THUMBNAIL_CACHE_CONTROL,
        Metadata={"recordId": "v1", "timestamp": "3"},
    )


def test_upload_with_public_acl(s3_client):
    store = BlobStore(client=s3_client, bucket="b", public_base_url="", public_acl=True)
    store.upload("k", b"x", content_type="image/jpeg")
    assert s3_client.put_object.call_args.kwargs["ACL"] == "public-read"


def test_upload_client_error(blob_store, s3_client):
    s3_client.put_object.side_effect = ClientError(
        {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}}, "PutObject"
    )
    with pytest.raises(StorageUploadError, match="Failed to upload thumbnail"):
        blob_store.upload("k", b"x", content_type="image/jpeg")


def test_upload_connection_error(blob_store, s3_client):
    s3_client.put_object.side_effect = EndpointConnectionError(endpoint_url="https://s3.example.test")
    with pytest.raises(StorageUploadError):
        blob_store.upload("k", b"x", content_type="image/jpeg")


def test_upload_without_bucket():
    store = BlobStore(client=MagicMock(), bucket="")
    assert store.configured is False
    with pytest.raises(StorageUploadError, match="not configured"):
        store.upload("k", b"x", content_type="image/jpeg")


def test_public_reference_uses_base_url(s3_client):
    store = BlobStore(client=s3_client, bucket="b", public_base_url="https://cdn.example.test/")
    assert store.public_reference("thumbnails/v1/x.jpg") == "https://cdn.example.test/thumbnails/v1/x.jpg"
    s3_client.generate_presigned_url.assert_not_called()


def test_public_reference_presigned(s3_client):
    s3_client.generate_presigned_url.return_value = "https://s3.example.test/b/k?X-Amz-Signature=abc"
    store = BlobStore(client=s3_client, bucket="b", public_base_url="", presign_ttl_seconds=3600)

    assert store.public_reference("k") == "https://s3.example.test/b/k?X-Amz-Signature=abc"
    s3_client.generate_presigned_url.assert_called_once_with(
        "get_object", Params={"Bucket": "b", "Key": "k"}, ExpiresIn=3600
    )


def test_delete(blob_store, s3_client):
    blob_store.delete("k")
    s3_client.delete_object.assert_called_once_with(Bucket="folio-test-thumbs", Key="k")


@patch("thumbnailer.services.storage.boto3.client")
def test_client_is_built_lazily(mock_client):
    store = BlobStore(bucket="b", public_base_url="")
    mock_client.assert_not_called()
    assert store.client is mock_client.return_value
    assert store.client is mock_client.return_value
    mock_client.assert_called_once()
    assert mock_client.call_args.args == ("s3",)
