"""Media file storage: local uploads, remote fetches and deletion."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

import httpx
from fastapi import UploadFile

from config import settings
from services.errors import MediaNotFoundError, MediaValidationError, StorageError

logger = logging.getLogger(__name__)

ALLOWED_VIDEO_EXTENSIONS = {".mp4", ".avi", ".mov", ".wmv", ".flv", ".mkv", ".webm", ".m4v"}
ALLOWED_VIDEO_MIME_PREFIXES = ("video/",)
VIDEO_MIME_BY_EXT = {
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".m4v": "video/x-m4v",
    ".webm": "video/webm",
    ".avi": "video/x-msvideo",
    ".mkv": "video/x-matroska",
    ".wmv": "video/x-ms-wmv",
    ".flv": "video/x-flv",
}
CHUNK_SIZE = 1024 * 1024


class UploadTooLargeError(MediaValidationError):
    """Raised when an upload exceeds the configured size limit."""


@dataclass(frozen=True)
class StoredMedia:
    """Where an upload ended up: a local path, or a media host URL plus its asset key."""

    file_path: str
    size: int
    storage_key: Optional[str] = None


def is_remote_path(path: str) -> bool:
    return str(path or "").startswith(("http://", "https://"))


def sanitize_filename(filename: str) -> str:
    base = os.path.basename(filename or "upload.mp4")
    safe = "".join(ch if ch.isalnum() or ch in ("-", "_", ".") else "_" for ch in base)
    return safe or "upload.mp4"


def guess_mime(path: str) -> str:
    return VIDEO_MIME_BY_EXT.get(Path(path).suffix.lower(), "video/mp4")


def validate_video_upload(filename: str, content_type: str) -> None:
    suffix = Path(filename).suffix.lower()
    if suffix not in ALLOWED_VIDEO_EXTENSIONS and not content_type.startswith(ALLOWED_VIDEO_MIME_PREFIXES):
        raise MediaValidationError(
            "Only video files are allowed (mp4, avi, mov, wmv, flv, mkv, webm)."
        )


async def save_upload(file: UploadFile, user_id: str, media_id: str) -> Tuple[str, int]:
    """Stream an uploaded file to disk. Returns (stored path, size in bytes)."""
    original_filename = sanitize_filename(file.filename or "upload.mp4")
    user_dir = Path(settings.MEDIA_UPLOAD_DIR) / user_id
    user_dir.mkdir(parents=True, exist_ok=True)
    destination = user_dir / f"{media_id}_{original_filename}"

    total_size = 0
    try:
        with destination.open("wb") as out:
            while True:
                chunk = await file.read(CHUNK_SIZE)
                if not chunk:
                    break
                total_size += len(chunk)
                if total_size > settings.MAX_UPLOAD_BYTES:
                    raise UploadTooLargeError(
                        f"File too large. Max upload size is {settings.MAX_UPLOAD_BYTES // (1024 * 1024)}MB."
                    )
                out.write(chunk)
    except UploadTooLargeError:
        destination.unlink(missing_ok=True)
        raise
    except OSError as exc:
        destination.unlink(missing_ok=True)
        raise StorageError(f"Could not store upload: {exc}") from exc
    finally:
        await file.close()

    return str(destination), total_size


def media_host_client(timeout: Union[float, httpx.Timeout] = 30.0) -> httpx.AsyncClient:
    """HTTP client for the remote media host, authenticated when an API key is configured."""
    headers = {}
    if settings.MEDIA_HOST_API_KEY:
        headers["Authorization"] = f"Bearer {settings.MEDIA_HOST_API_KEY}"
    return httpx.AsyncClient(timeout=timeout, headers=headers, follow_redirects=True)


async def upload_to_media_host(local_path: str, media_id: str, filename: str, content_type: str) -> Tuple[str, str]:
    """Push a stored upload to the media host. Returns (playback URL, asset key)."""
    try:
        async with media_host_client(float(settings.MEDIA_HOST_UPLOAD_TIMEOUT_SECONDS)) as client:
            with open(local_path, "rb") as handle:
                response = await client.post(
                    settings.MEDIA_HOST_UPLOAD_URL,
                    data={"public_id": media_id, "resource_type": "video"},
                    files={"file": (filename, handle, content_type)},
                )
            response.raise_for_status()
            payload = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        raise StorageError(f"Could not upload media to host: {exc}") from exc

    if not isinstance(payload, dict):
        raise StorageError("Media host returned an unexpected response")
    url = payload.get("secure_url") or payload.get("url")
    key = payload.get("public_id") or payload.get("key")
    if not url or not key or not is_remote_path(url):
        raise StorageError("Media host response is missing the asset url or key")
    return url, str(key)


async def store_upload(file: UploadFile, user_id: str, media_id: str, content_type: str) -> StoredMedia:
    """
    Persist an upload. The file is always streamed to local disk first so the
    size limit applies; when a media host is configured it is then pushed there
    and the local copy is removed.
    """
    filename = sanitize_filename(file.filename or "upload.mp4")
    local_path, size = await save_upload(file, user_id, media_id)
    if not settings.MEDIA_HOST_UPLOAD_URL:
        return StoredMedia(file_path=local_path, size=size)

    try:
        url, key = await upload_to_media_host(local_path, media_id, filename, content_type)
    finally:
        remove_quietly(local_path)
    logger.info("Media %s stored on media host as %s", media_id, key)
    return StoredMedia(file_path=url, size=size, storage_key=key)


async def _stream_to_file(url: str, destination: Path) -> None:
    async with media_host_client(httpx.Timeout(30.0, read=None)) as client:
        async with client.stream("GET", url) as response:
            response.raise_for_status()
            with destination.open("wb") as out:
                async for chunk in response.aiter_bytes(CHUNK_SIZE):
                    out.write(chunk)


async def download_remote(url: str, media_id: str) -> str:
    """Download a remotely hosted video into the temp directory within an overall time limit."""
    temp_dir = Path(settings.MEDIA_TEMP_DIR)
    temp_dir.mkdir(parents=True, exist_ok=True)
    temp_path = temp_dir / f"{media_id}{Path(httpx.URL(url).path).suffix or '.mp4'}"

    logger.info("Downloading remote media for %s", media_id)
    try:
        await asyncio.wait_for(
            _stream_to_file(url, temp_path),
            timeout=float(settings.REMOTE_DOWNLOAD_TIMEOUT_SECONDS),
        )
    except asyncio.TimeoutError as exc:
        raise StorageError(
            f"Remote media download exceeded {settings.REMOTE_DOWNLOAD_TIMEOUT_SECONDS}s"
        ) from exc
    except httpx.HTTPError as exc:
        raise StorageError(f"Could not download remote media: {exc}") from exc

    logger.info("Remote media for %s downloaded to %s", media_id, temp_path)
    return str(temp_path)


async def fetch_local_copy(file_path: str, media_id: str) -> Tuple[str, bool]:
    """
    Return a locally readable path for a stored item.
    The boolean is True when the path is a temporary download the caller should remove.
    """
    if is_remote_path(file_path):
        return await download_remote(file_path, media_id), True
    if not file_path or not Path(file_path).exists():
        raise MediaNotFoundError(f"Video file not found at {file_path}")
    return file_path, False


async def delete_stored_file(file_path: str, storage_key: Optional[str] = None) -> None:
    """Remove a stored video from local disk or from the remote media host."""
    if is_remote_path(file_path):
        if not settings.MEDIA_HOST_DELETE_URL or not storage_key:
            logger.warning("No media host delete endpoint configured; remote asset %s retained", file_path)
            return
        delete_url = settings.MEDIA_HOST_DELETE_URL.format(key=storage_key)
        try:
            async with media_host_client() as client:
                response = await client.delete(delete_url)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise StorageError(f"Could not delete remote media: {exc}") from exc
        return

    try:
        Path(file_path).unlink(missing_ok=True)
    except OSError as exc:
        raise StorageError(f"Could not delete media file: {exc}") from exc


def remove_quietly(path: Optional[str]) -> None:
    """Best-effort removal of a temporary or derived file."""
    if not path:
        return
    try:
        Path(path).unlink(missing_ok=True)
    except OSError:
        logger.warning("Could not cleanup file %s", path)
