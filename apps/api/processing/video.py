import os
import glob
import logging
from pathlib import Path
from typing import List, Optional

import ffmpeg

from config import settings
from processing.models import FrameSample, VideoInfo
from services.errors import MediaToolError

logger = logging.getLogger(__name__)


def _stderr_text(exc: ffmpeg.Error) -> str:
    return exc.stderr.decode(errors="replace").strip() if exc.stderr else str(exc)


def probe_video(video_path: str) -> VideoInfo:
    """
    Probe a local video with ffprobe.
    Returns duration (seconds), dimensions and codec of the first video stream.
    """
    try:
        probe = ffmpeg.probe(video_path, cmd=settings.FFPROBE_BINARY)
    except ffmpeg.Error as e:
        message = _stderr_text(e)
        logger.error("ffprobe failed for %s: %s", video_path, message)
        raise MediaToolError(f"Failed to get video info: {message}") from e

    video_stream = next(
        (s for s in probe.get("streams", []) if s.get("codec_type") == "video"),
        None,
    )
    if video_stream is None:
        raise MediaToolError("No video stream found")

    duration = float(probe.get("format", {}).get("duration", 0.0) or 0.0)
    if duration <= 0:
        duration = float(video_stream.get("duration", 0.0) or 0.0)

    return VideoInfo(
        duration=max(duration, 0.0),
        width=int(video_stream.get("width", 0) or 0),
        height=int(video_stream.get("height", 0) or 0),
        codec=str(video_stream.get("codec_name", "") or ""),
    )


def thumbnail_seek_seconds(duration: Optional[float]) -> float:
    """Seek position for the thumbnail; stays inside clips shorter than the default mark."""
    seek = max(float(settings.THUMBNAIL_SEEK_SECONDS), 0.0)
    if duration and duration > 0 and seek >= duration:
        return duration / 2.0
    return seek


def extract_thumbnail(
    video_path: str,
    media_id: str,
    output_dir: Optional[str] = None,
    at_seconds: Optional[float] = None,
) -> str:
    """
    Write a single JPEG still for `media_id` into the thumbnail directory.
    Returns the path to the written image.
    """
    thumbnail_dir = Path(output_dir or settings.THUMBNAIL_DIR)
    thumbnail_dir.mkdir(parents=True, exist_ok=True)
    thumbnail_path = thumbnail_dir / f"{media_id}.jpg"
    seek = settings.THUMBNAIL_SEEK_SECONDS if at_seconds is None else at_seconds

    try:
        # ffmpeg -ss 1 -i video.mp4 -frames:v 1 <id>.jpg
        (
            ffmpeg
            .input(video_path, ss=seek)
            .output(str(thumbnail_path), vframes=1)
            .overwrite_output()
            .run(cmd=settings.FFMPEG_BINARY, quiet=True)
        )
    except ffmpeg.Error as e:
        message = _stderr_text(e)
        logger.error("Thumbnail extraction failed for %s: %s", video_path, message)
        raise MediaToolError(f"Thumbnail extraction failed: {message}") from e

    if not thumbnail_path.exists():
        raise MediaToolError("Thumbnail extraction produced no image")

    logger.info("Thumbnail extracted: %s", thumbnail_path)
    return str(thumbnail_path)


def sample_frames(
    video_path: str,
    output_dir: str,
    window_seconds: float,
    fps: float,
    width: int,
    quality: int = 5,
) -> List[FrameSample]:
    """
    Extract low-rate, downscaled frames from the first `window_seconds` of a video.
    Returns frame samples ordered by position.
    """
    if not os.path.exists(output_dir):
        os.makedirs(output_dir)

    output_pattern = os.path.join(output_dir, "frame_%03d.jpg")

    try:
        # ffmpeg -t 3 -i video.mp4 -vf fps=0.25,scale=640:-2 -q:v 5 frame_%03d.jpg
        (
            ffmpeg
            .input(video_path, t=window_seconds)
            .filter("fps", fps=fps)
            .filter("scale", width, -2)
            .output(output_pattern, **{"q:v": quality})
            .overwrite_output()
            .run(cmd=settings.FFMPEG_BINARY, quiet=True)
        )
    except ffmpeg.Error as e:
        message = _stderr_text(e)
        logger.error("Frame sampling failed for %s: %s", video_path, message)
        raise MediaToolError(f"Video analysis failed: {message}") from e

    frames = sorted(glob.glob(os.path.join(output_dir, "frame_*.jpg")))
    return [FrameSample(index=i, path=path) for i, path in enumerate(frames)]
