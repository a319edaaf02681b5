import os
import subprocess
import sys
import tempfile
import time

BASE_DIR = tempfile.mkdtemp(prefix="folio-tests-")

TEST_SECRET = "test-secret-for-folio-thumbnailer-0123456789"
TEST_ISSUER = "folio-test"
TEST_BUCKET = "folio-test-thumbs"
TEST_CDN = "https://cdn.example.test"

os.environ.pop("FOLIO_RECORDS_DB_URL", None)
os.environ["FOLIO_RECORDS_DB_PATH"] = os.path.join(BASE_DIR, "records.sqlite3")
os.environ["FOLIO_SCRATCH_DIR"] = os.path.join(BASE_DIR, "scratch")
os.environ["FOLIO_AUTH_SECRET"] = TEST_SECRET
os.environ["FOLIO_AUTH_ISSUER"] = TEST_ISSUER
os.environ["FOLIO_STORAGE_BUCKET"] = TEST_BUCKET
os.environ["FOLIO_STORAGE_PUBLIC_BASE_URL"] = TEST_CDN
os.environ["FOLIO_STORAGE_PREFIX"] = ""
os.environ["FOLIO_THUMB_OPTIMISTIC_UPDATES"] = "false"
os.environ["FOLIO_THUMB_DELETE_ORPHANS"] = "false"
os.environ["FOLIO_RATE_LIMIT_THUMBNAILS"] = "1000 per minute"
os.environ["FOLIO_LOG_FORMAT"] = "plain"
os.environ["FOLIO_METRICS_ENABLED"] = "false"
os.environ["FOLIO_OTEL_ENABLED"] = "false"
os.environ["FOLIO_SENTRY_DSN"] = ""

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from unittest.mock import MagicMock

import pytest
from sqlalchemy import insert

from thumbnailer.models import build_records_engine
from thumbnailer.models.media_record import MediaRecordRow
from thumbnailer.services import frames
from thumbnailer.services.container import ServiceContainer
from thumbnailer.services.frames import FrameExtractor
from thumbnailer.services.identity import IdentityVerifier
from thumbnailer.services.records import RecordStore
from thumbnailer.services.storage import BlobStore
from thumbnailer.utils.jwt import _encode_jwt

FAKE_VIDEO = b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 64
FAKE_JPEG = b"\xff\xd8\xff\xe0fake-jpeg-frame\xff\xd9"


class FakeFetcher:
    def __init__(self, payload: bytes = FAKE_VIDEO, error: Exception | None = None):
        self.payload = payload
        self.error = error
        self.calls: list[str] = []

    def stream_download(self, url: str, dst_path: str) -> int:
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        with open(dst_path, "wb") as handle:
            handle.write(self.payload)
        return len(self.payload)


@pytest.fixture()
def auth_headers():
    """Bearer header for a token minted by the identity provider."""

    def _headers(sub: str, *, secret: str = TEST_SECRET, ttl: int = 300) -> dict:
        now = int(time.time())
        token = _encode_jwt({"sub": sub, "iss": TEST_ISSUER, "iat": now, "exp": now + ttl}, secret)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture()
def scratch_dir(monkeypatch, tmp_path):
    path = tmp_path / "scratch"
    path.mkdir()
    monkeypatch.setattr(frames, "SCRATCH_DIR", str(path))
    return path


@pytest.fixture()
def ffmpeg_run(monkeypatch):
    """
    Stands in for ffmpeg: writes FAKE_JPEG to the output path (last argv).

    ``empty_passes`` makes that many leading calls exit 0 without a frame,
    the way a seek past the final frame behaves.
    """
    state = {"returncode": 0, "stderr": b"", "frame": FAKE_JPEG, "empty_passes": 0, "calls": []}

    def run(cmd, **kwargs):
        state["calls"].append(cmd)
        if state["empty_passes"] > 0:
            state["empty_passes"] -= 1
            return subprocess.CompletedProcess(cmd, 0, stdout=b"", stderr=b"")
        if state["returncode"] == 0 and state["frame"]:
            with open(cmd[-1], "wb") as handle:
                handle.write(state["frame"])
        return subprocess.CompletedProcess(cmd, state["returncode"], stdout=b"", stderr=state["stderr"])

    monkeypatch.setattr(subprocess, "run", run)
    return state


@pytest.fixture()
def record_store(tmp_path):
    engine = build_records_engine(f"sqlite:///{tmp_path / 'records.sqlite3'}")
    store = RecordStore(engine=engine)
    store.ensure_schema()
    yield store
    engine.dispose()


@pytest.fixture()
def seed_record(record_store):
    def _seed(
        record_id: str = "v1",
        owner_id: str = "u1",
        source_url: str | None = "https://media.example.test/v1.mp4",
        duration_seconds: float | None = 10.0,
        poster_url: str | None = None,
        updated_at: int = 1_000,
    ):
        with record_store.engine.begin() as conn:
            conn.execute(
                insert(MediaRecordRow).values(
                    id=record_id,
                    owner_id=owner_id,
                    source_url=source_url,
                    duration_seconds=duration_seconds,
                    poster_url=poster_url,
                    updated_at=updated_at,
                )
            )
        return record_store.get(record_id)

    return _seed


@pytest.fixture()
def s3_client():
    client = MagicMock()
    client.put_object.return_value = {"ETag": '"abc"'}
    return client


@pytest.fixture()
def blob_store(s3_client):
    return BlobStore(client=s3_client, bucket=TEST_BUCKET, public_base_url=TEST_CDN)


@pytest.fixture()
def fetcher_factory():
    return FakeFetcher


@pytest.fixture()
def fetcher(fetcher_factory):
    return fetcher_factory()


@pytest.fixture()
def services(record_store, blob_store, fetcher, scratch_dir):
    return ServiceContainer(
        records=record_store,
        fetcher=fetcher,
        extractor=FrameExtractor(fetcher=fetcher),
        storage=blob_store,
        identity=IdentityVerifier(secret=TEST_SECRET, issuer=TEST_ISSUER),
    )


@pytest.fixture()
def app(services):
    from thumbnailer import create_app

    app = create_app(services)
    app.config.update(TESTING=True)
    return app


@pytest.fixture()
def client(app):
    return app.test_client()
