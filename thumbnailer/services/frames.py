from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tempfile
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass

from ..config import env_int, env_str
from ..errors import MediaDecodeError
from ..metrics import observe_stage
from .fetch import BlobFetcher

logger = logging.getLogger("folio.frames")

SCRATCH_DIR = env_str("FOLIO_SCRATCH_DIR") or tempfile.gettempdir()
FFMPEG_BIN = env_str("FOLIO_FFMPEG_BIN", "ffmpeg") or "ffmpeg"
THUMB_FFMPEG_TIMEOUT_SECONDS = env_int("FOLIO_THUMB_FFMPEG_TIMEOUT_SECONDS", 120)
THUMB_MAX_CONCURRENCY = env_int("FOLIO_THUMB_MAX_CONCURRENCY", 2)
_thumb_sema = threading.BoundedSemaphore(max(1, THUMB_MAX_CONCURRENCY))

DEFAULT_QUALITY_TIER = "high"
JPEG_CONTENT_TYPE = "image/jpeg"
# How far before the end of the input the last-frame fallback starts decoding.
LAST_FRAME_WINDOW_SECONDS = 1


@dataclass(frozen=True)
class QualityTier:
    name: str
    width: int
    height: int
    jpeg_quality: int  # ffmpeg -q:v, 2 (best) .. 31 (worst)


QUALITY_TIERS: dict[str, QualityTier] = {
    "high": QualityTier("high", 1280, 720, 2),
    "medium": QualityTier("medium", 854, 480, 5),
    "low": QualityTier("low", 640, 360, 8),
}


@dataclass(frozen=True)
class ExtractedFrame:
    data: bytes
    content_type: str
    width: int
    height: int
    tier: str


def get_quality_tier(name: str | None) -> QualityTier:
    return QUALITY_TIERS[name or DEFAULT_QUALITY_TIER]


@contextmanager
def scratch_workspace(prefix: str = "folio-thumb-"):
    """
    Private temporary directory for one invocation.

    Removed on every exit path. A failed removal is logged and never
    replaces the outcome of the wrapped block.
    """
    os.makedirs(SCRATCH_DIR, exist_ok=True)
    path = tempfile.mkdtemp(prefix=prefix, dir=SCRATCH_DIR)
    try:
        yield path
    finally:
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Failed to clean up scratch workspace %s: %s", path, exc)


def _format_seek(seconds: float) -> str:
    return f"{max(0.0, float(seconds)):.3f}"


def _letterbox_filter(tier: QualityTier) -> str:
    # Fit inside the tier box, then pad to exactly the tier size.
    w, h = tier.width, tier.height
    return (
        f"scale={w}:{h}:force_original_aspect_ratio=decrease,"
        f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2:color=black,"
        "setsar=1"
    )


def _ffmpeg_frame_cmd(
    *,
    src_path: str,
    dst_path: str,
    seek_seconds: float | None,
    tier: QualityTier,
) -> list[str]:
    """
    ffmpeg argv rendering one JPEG frame into ``dst_path``.

    With ``seek_seconds`` the first frame at or after that time is written.
    With ``None`` the input is opened shortly before its end and every
    remaining frame overwrites the output, which leaves the last frame.
    """
    cmd = [FFMPEG_BIN, "-hide_banner", "-nostdin", "-loglevel", "error", "-threads", "1"]
    # -ss/-sseof before -i: input seek, so long videos are not decoded from the start.
    if seek_seconds is None:
        cmd += ["-sseof", f"-{LAST_FRAME_WINDOW_SECONDS}"]
    else:
        cmd += ["-ss", _format_seek(seek_seconds)]
    cmd += ["-i", src_path, "-map", "0:v:0"]
    if seek_seconds is not None:
        cmd += ["-frames:v", "1"]
    return cmd + [
        "-vf",
        _letterbox_filter(tier),
        "-q:v",
        str(tier.jpeg_quality),
        "-f",
        "image2",
        "-update",
        "1",
        "-y",
        dst_path,
    ]


def _read_frame(path: str) -> bytes:
    try:
        with open(path, "rb") as handle:
            return handle.read()
    except FileNotFoundError:
        return b""


class FrameExtractor:
    """Downloads a video to scratch space and renders one JPEG frame from it."""

    def __init__(
        self,
        *,
        fetcher: BlobFetcher | None = None,
        timeout_seconds: int | None = None,
        semaphore=None,
    ) -> None:
        self.fetcher = fetcher or BlobFetcher()
        self.timeout_seconds = timeout_seconds or THUMB_FFMPEG_TIMEOUT_SECONDS
        self._sema = semaphore or _thumb_sema

    def extract(self, source_url: str, timestamp_seconds: float, tier_name: str) -> ExtractedFrame:
        tier = get_quality_tier(tier_name)
        with scratch_workspace() as workdir:
            video_path = os.path.join(workdir, "source.video")
            frame_path = os.path.join(workdir, "frame.jpg")

            started = time.perf_counter()
            self.fetcher.stream_download(source_url, video_path)
            observe_stage("download", time.perf_counter() - started)

            started = time.perf_counter()
            self._render(video_path, frame_path, timestamp_seconds, tier)
            data = _read_frame(frame_path)
            if not data and timestamp_seconds > 0:
                # A seek past the start of the final frame (t at or near the
                # duration) decodes nothing; the last frame is the nearest one.
                logger.info(
                    "No frame at %ss, rendering last frame instead", _format_seek(timestamp_seconds)
                )
                self._render(video_path, frame_path, None, tier)
                data = _read_frame(frame_path)
            observe_stage("decode", time.perf_counter() - started)

            if not data:
                raise MediaDecodeError(
                    f"FFmpeg processing failed: no frame decoded at {_format_seek(timestamp_seconds)}s"
                )

        logger.info(
            "Extracted %s frame at %ss (%d bytes)", tier.name, _format_seek(timestamp_seconds), len(data)
        )
        return ExtractedFrame(
            data=data,
            content_type=JPEG_CONTENT_TYPE,
            width=tier.width,
            height=tier.height,
            tier=tier.name,
        )

    def _render(
        self, src_path: str, dst_path: str, seek_seconds: float | None, tier: QualityTier
    ) -> None:
        cmd = _ffmpeg_frame_cmd(
            src_path=src_path, dst_path=dst_path, seek_seconds=seek_seconds, tier=tier
        )
        try:
            with self._sema:
                result = subprocess.run(
                    cmd,
                    check=False,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    timeout=self.timeout_seconds,
                )
        except subprocess.TimeoutExpired as exc:
            raise MediaDecodeError(
                f"FFmpeg processing failed: timed out after {self.timeout_seconds}s"
            ) from exc
        except OSError as exc:
            raise MediaDecodeError(f"FFmpeg processing failed: {exc}") from exc

        if result.returncode != 0:
            err = result.stderr.decode(errors="replace").strip()
            logger.error("ffmpeg frame extraction failed: %s", err)
            if len(err) > 500:
                err = err[-500:]
            raise MediaDecodeError(f"FFmpeg processing failed: {err or 'exit ' + str(result.returncode)}")
