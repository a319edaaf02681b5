from unittest.mock import patch

import pytest

from thumbnailer.errors import MediaFetchError
from thumbnailer.services.thumbnails import ThumbnailService

ENDPOINT = "/api/thumbnails/generate"


def _body(**overrides):
    body = {"recordId": "v1", "timestampSeconds": 3, "callerId": "u1"}
    body.update(overrides)
    return body


@pytest.fixture
def video(seed_record):
    return seed_record(record_id="v1", owner_id="u1", duration_seconds=10.0)


def test_generate_thumbnail_success(client, auth_headers, video, record_store, s3_client, ffmpeg_run, scratch_dir):
    resp = client.post(ENDPOINT, json=_body(), headers=auth_headers("u1"))

    assert resp.status_code == 200
    assert resp.headers["Cache-Control"] == "no-store"
    data = resp.get_json()
    assert data["success"] is True
    assert data["thumbnailUrl"].startswith("https://cdn.example.test/thumbnails/v1/thumb_3_")
    assert data["thumbnailUrl"].endswith(".jpg")
    assert data["processingTimeMs"] >= 0
    assert record_store.get("v1").poster_url == data["thumbnailUrl"]

    put = s3_client.put_object.call_args.kwargs
    assert put["ContentType"] == "image/jpeg"
    assert put["CacheControl"] == "public, max-age=31536000"
    assert put["Key"] == data["thumbnailUrl"].removeprefix("https://cdn.example.test/")
    assert list(scratch_dir.iterdir()) == []


def test_generate_thumbnail_low_tier(client, auth_headers, video, ffmpeg_run):
    resp = client.post(ENDPOINT, json=_body(qualityTier="low"), headers=auth_headers("u1"))

    assert resp.get_json()["success"] is True
    cmd = ffmpeg_run["calls"][0]
    assert cmd[cmd.index("-q:v") + 1] == "8"


def test_timestamp_beyond_duration(client, auth_headers, video, record_store, fetcher, s3_client):
    resp = client.post(ENDPOINT, json=_body(timestampSeconds=15), headers=auth_headers("u1"))

    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "invalid-argument"
    assert fetcher.calls == []
    s3_client.put_object.assert_not_called()
    assert record_store.get("v1") == video


def test_not_owner(client, auth_headers, video, record_store, s3_client):
    resp = client.post(ENDPOINT, json=_body(callerId="u2"), headers=auth_headers("u2"))

    assert resp.status_code == 403
    assert resp.get_json()["error"]["code"] == "permission-denied"
    s3_client.put_object.assert_not_called()
    assert record_store.get("v1") == video


def test_record_not_found(client, auth_headers, video):
    resp = client.post(ENDPOINT, json=_body(recordId="v404"), headers=auth_headers("u1"))

    assert resp.status_code == 404
    assert resp.get_json()["error"] == {"code": "not-found", "message": "Video not found"}


def test_fetch_failure_reports_and_cleans_up(client, auth_headers, video, record_store, fetcher, s3_client, scratch_dir):
    fetcher.error = MediaFetchError("Failed to download video: Bad Gateway")

    resp = client.post(ENDPOINT, json=_body(), headers=auth_headers("u1"))

    assert resp.status_code == 200
    data = resp.get_json()
    assert data["success"] is False
    assert "Bad Gateway" in data["error"]
    assert "processingTimeMs" in data
    assert record_store.get("v1") == video
    s3_client.put_object.assert_not_called()
    assert list(scratch_dir.iterdir()) == []


def test_missing_token(client, video, fetcher):
    resp = client.post(ENDPOINT, json=_body())

    assert resp.status_code == 401
    assert resp.get_json()["error"]["code"] == "unauthenticated"
    assert fetcher.calls == []


def test_unverified_caller_never_reaches_pipeline(client, auth_headers, video):
    with patch.object(ThumbnailService, "generate") as mock_generate:
        missing = client.post(ENDPOINT, json=_body())
        expired = client.post(ENDPOINT, json=_body(), headers=auth_headers("u1", ttl=-3600))

    assert missing.status_code == 401
    assert expired.status_code == 401
    assert expired.get_json()["error"]["code"] == "unauthenticated"
    mock_generate.assert_not_called()


def test_token_signed_with_other_secret(client, auth_headers, video):
    resp = client.post(ENDPOINT, json=_body(), headers=auth_headers("u1", secret="forged-secret"))
    assert resp.status_code == 401


def test_caller_id_mismatch(client, auth_headers, video, fetcher):
    resp = client.post(ENDPOINT, json=_body(callerId="u2"), headers=auth_headers("u1"))

    assert resp.status_code == 403
    assert resp.get_json()["error"] == {"code": "identity-mismatch", "message": "User ID mismatch"}
    assert fetcher.calls == []


@pytest.mark.parametrize(
    "body",
    [
        {"recordId": "v1", "callerId": "u1"},
        {"recordId": "v1", "timestampSeconds": "3", "callerId": "u1"},
        {"recordId": "v1", "timestampSeconds": -1, "callerId": "u1"},
        {"recordId": "v1", "timestampSeconds": 3, "callerId": "u1", "qualityTier": "4k"},
        ["v1", 3, "u1"],
    ],
)
def test_invalid_arguments(client, auth_headers, video, body):
    resp = client.post(ENDPOINT, json=body, headers=auth_headers("u1"))

    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "invalid-argument"


def test_non_json_body(client, auth_headers, video):
    resp = client.post(ENDPOINT, data="recordId=v1", content_type="text/plain", headers=auth_headers("u1"))
    assert resp.status_code == 400


def test_zero_timestamp_is_accepted(client, auth_headers, video, ffmpeg_run):
    resp = client.post(ENDPOINT, json=_body(timestampSeconds=0), headers=auth_headers("u1"))

    assert resp.get_json()["success"] is True
    assert "/thumb_0_" in resp.get_json()["thumbnailUrl"]


def test_request_id_is_echoed(client, auth_headers, video, ffmpeg_run):
    resp = client.post(ENDPOINT, json=_body(), headers={**auth_headers("u1"), "X-Request-ID": "req_12345678"})
    assert resp.headers["X-Request-ID"] == "req_12345678"


def test_generate_requires_post(client):
    assert client.get(ENDPOINT).status_code == 405
