"""Media upload, listing, playback and deletion router."""

from __future__ import annotations

import logging
import re
import uuid
from pathlib import Path
from typing import Iterator, List, Literal, Optional, Tuple

import httpx
from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Header, HTTPException, Query, UploadFile
from fastapi.responses import FileResponse, StreamingResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from starlette.background import BackgroundTask

from config import settings
from database import get_db
from models.media_item import MediaItem
from models.user import User
from routers.auth_scope import AuthContext, get_auth_context, require_role
from services.errors import MediaValidationError, StorageError
from services.media_pipeline import process_media_item
from services.media_queue import enqueue_media_processing_job
from services.storage import (
    UploadTooLargeError,
    delete_stored_file,
    guess_mime,
    is_remote_path,
    media_host_client,
    remove_quietly,
    sanitize_filename,
    store_upload,
    validate_video_upload,
)

router = APIRouter()
logger = logging.getLogger(__name__)

STREAM_CHUNK_SIZE = 1024 * 1024
RANGE_PATTERN = re.compile(r"^bytes=(\d*)-(\d*)$")

MediaStatus = Literal["uploading", "processing", "completed", "failed"]
SensitivityStatus = Literal["pending", "safe", "flagged"]


class MediaItemResponse(BaseModel):
    id: str
    title: str
    description: str
    original_filename: Optional[str] = None
    mime_type: str
    file_size_bytes: Optional[int] = None
    status: str
    processing_progress: int
    sensitivity_status: str
    flag_reason: str
    sensitivity_confidence: Optional[float] = None
    flagged_frames: Optional[int] = None
    total_frames: Optional[int] = None
    duration: float
    width: Optional[int] = None
    height: Optional[int] = None
    codec: Optional[str] = None
    thumbnail_url: Optional[str] = None
    error_message: Optional[str] = None
    user_id: str
    tenant_id: str
    created_at: Optional[str] = None
    completed_at: Optional[str] = None


class MediaListResponse(BaseModel):
    items: List[MediaItemResponse]
    count: int


class DeleteMediaResponse(BaseModel):
    media_id: str
    message: str


def _serialize_item(item: MediaItem) -> MediaItemResponse:
    return MediaItemResponse(
        id=item.id,
        title=item.title,
        description=item.description or "",
        original_filename=item.original_filename,
        mime_type=item.mime_type,
        file_size_bytes=item.file_size_bytes,
        status=item.status,
        processing_progress=int(item.processing_progress or 0),
        sensitivity_status=item.sensitivity_status,
        flag_reason=item.flag_reason or "",
        sensitivity_confidence=item.sensitivity_confidence,
        flagged_frames=item.flagged_frames,
        total_frames=item.total_frames,
        duration=float(item.duration_seconds or 0.0),
        width=item.width,
        height=item.height,
        codec=item.codec,
        thumbnail_url=f"/media/{item.id}/thumbnail" if item.thumbnail_path else None,
        error_message=item.error_message,
        user_id=item.user_id,
        tenant_id=item.tenant_id,
        created_at=item.created_at.isoformat() if item.created_at else None,
        completed_at=item.completed_at.isoformat() if item.completed_at else None,
    )


async def _ensure_user(db: AsyncSession, auth: AuthContext) -> User:
    result = await db.execute(select(User).where(User.id == auth.user_id))
    user = result.scalar_one_or_none()
    if user:
        return user
    user = User(
        id=auth.user_id,
        email=auth.email or f"{auth.user_id}@local.invalid",
        tenant_id=auth.tenant_id,
        role=auth.role,
    )
    db.add(user)
    await db.flush()
    return user


async def _get_scoped_item(db: AsyncSession, media_id: str, auth: AuthContext) -> MediaItem:
    result = await db.execute(
        select(MediaItem).where(
            MediaItem.id == media_id,
            MediaItem.user_id == auth.user_id,
            MediaItem.tenant_id == auth.tenant_id,
        )
    )
    item = result.scalar_one_or_none()
    if not item:
        raise HTTPException(status_code=404, detail="Video not found")
    return item


async def _start_processing(
    db: AsyncSession,
    item: MediaItem,
    user_id: str,
    background_tasks: BackgroundTasks,
) -> None:
    if settings.MEDIA_PIPELINE_MODE != "queue":
        background_tasks.add_task(process_media_item, item.id, user_id)
        return

    try:
        enqueue_media_processing_job(item.id, user_id)
    except Exception as exc:
        item.status = "failed"
        item.processing_progress = 0
        item.error_message = str(exc)
        await db.commit()
        try:
            await delete_stored_file(item.file_path, item.storage_key)
        except StorageError as cleanup_exc:
            logger.warning("Could not discard stored media for %s: %s", item.id, cleanup_exc)
        raise HTTPException(
            status_code=503,
            detail="Media queue unavailable. Check Redis/worker availability and retry.",
        ) from exc


@router.post("/upload", response_model=MediaItemResponse, status_code=201)
async def upload_media(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    title: str = Form(default=""),
    description: str = Form(default=""),
    auth: AuthContext = Depends(require_role("editor", "admin")),
    db: AsyncSession = Depends(get_db),
):
    """Store an uploaded video, create its record and start processing without waiting."""
    clean_title = (title or "").strip()
    if not clean_title:
        await file.close()
        raise HTTPException(status_code=422, detail="Title is required")

    original_filename = sanitize_filename(file.filename or "upload.mp4")
    content_type = (file.content_type or "").lower()
    try:
        validate_video_upload(original_filename, content_type)
    except MediaValidationError as exc:
        await file.close()
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    await _ensure_user(db, auth)

    media_id = str(uuid.uuid4())
    mime_type = content_type if content_type.startswith("video/") else guess_mime(original_filename)
    try:
        stored = await store_upload(file, auth.user_id, media_id, mime_type)
    except UploadTooLargeError as exc:
        raise HTTPException(status_code=413, detail=str(exc)) from exc
    except StorageError as exc:
        logger.error("Upload storage failed for %s: %s", media_id, exc)
        raise HTTPException(status_code=500, detail="Error uploading video") from exc

    item = MediaItem(
        id=media_id,
        title=clean_title,
        description=(description or "").strip(),
        file_path=stored.file_path,
        storage_key=stored.storage_key,
        original_filename=original_filename,
        mime_type=mime_type,
        file_size_bytes=stored.size,
        user_id=auth.user_id,
        tenant_id=auth.tenant_id,
        status="uploading",
        processing_progress=0,
        sensitivity_status="pending",
        flag_reason="",
        duration_seconds=0.0,
    )
    db.add(item)
    await db.commit()
    await db.refresh(item)
    response = _serialize_item(item)

    await _start_processing(db, item, auth.user_id, background_tasks)
    logger.info("Media item %s uploaded by %s (%s bytes)", media_id, auth.user_id, stored.size)
    return response


@router.get("/", response_model=MediaListResponse)
async def list_media(
    status: Optional[MediaStatus] = Query(default=None),
    sensitivity_status: Optional[SensitivityStatus] = Query(default=None),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """List the caller's videos in their tenant, newest first."""
    query = select(MediaItem).where(
        MediaItem.user_id == auth.user_id,
        MediaItem.tenant_id == auth.tenant_id,
    )
    if status:
        query = query.where(MediaItem.status == status)
    if sensitivity_status:
        query = query.where(MediaItem.sensitivity_status == sensitivity_status)

    result = await db.execute(query.order_by(MediaItem.created_at.desc(), MediaItem.id))
    items = [_serialize_item(item) for item in result.scalars().all()]
    return MediaListResponse(items=items, count=len(items))


@router.get("/{media_id}", response_model=MediaItemResponse)
async def get_media(
    media_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Get one of the caller's videos."""
    item = await _get_scoped_item(db, media_id, auth)
    return _serialize_item(item)


def parse_byte_range(range_header: str, file_size: int) -> Tuple[int, int]:
    """Parse a single `bytes=start-end` range into inclusive offsets."""
    match = RANGE_PATTERN.match((range_header or "").strip())
    if not match or file_size <= 0:
        raise ValueError("Malformed range")
    start_raw, end_raw = match.groups()
    if not start_raw and not end_raw:
        raise ValueError("Malformed range")
    if not start_raw:
        # Suffix form: last N bytes.
        length = int(end_raw)
        if length <= 0:
            raise ValueError("Unsatisfiable range")
        return max(file_size - length, 0), file_size - 1
    start = int(start_raw)
    end = int(end_raw) if end_raw else file_size - 1
    end = min(end, file_size - 1)
    if start >= file_size or start > end:
        raise ValueError("Unsatisfiable range")
    return start, end


def _iter_file_range(path: Path, start: int, end: int) -> Iterator[bytes]:
    with path.open("rb") as handle:
        handle.seek(start)
        remaining = end - start + 1
        while remaining > 0:
            chunk = handle.read(min(STREAM_CHUNK_SIZE, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk


async def _proxy_remote_stream(item: MediaItem, range_header: Optional[str]) -> StreamingResponse:
    client = media_host_client(httpx.Timeout(30.0, read=None))
    headers = {"Range": range_header} if range_header else {}
    try:
        upstream = await client.send(client.build_request("GET", item.file_path, headers=headers), stream=True)
    except httpx.HTTPError as exc:
        await client.aclose()
        raise HTTPException(status_code=502, detail="Unable to fetch video from media host") from exc

    if upstream.status_code >= 400:
        await upstream.aclose()
        await client.aclose()
        raise HTTPException(status_code=502, detail="Unable to fetch video from media host")

    async def _close() -> None:
        await upstream.aclose()
        await client.aclose()

    passthrough = {"Accept-Ranges": "bytes"}
    for name in ("Content-Length", "Content-Range"):
        if name in upstream.headers:
            passthrough[name] = upstream.headers[name]
    return StreamingResponse(
        upstream.aiter_bytes(STREAM_CHUNK_SIZE),
        status_code=upstream.status_code,
        media_type=item.mime_type or "video/mp4",
        headers=passthrough,
        background=BackgroundTask(_close),
    )


@router.get("/{media_id}/stream")
async def stream_media(
    media_id: str,
    range_header: Optional[str] = Header(default=None, alias="Range"),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Serve video bytes; local files honour Range requests, remote files are proxied."""
    item = await _get_scoped_item(db, media_id, auth)
    if item.status != "completed":
        raise HTTPException(status_code=400, detail="Video is still processing")

    if is_remote_path(item.file_path):
        return await _proxy_remote_stream(item, range_header)

    path = Path(item.file_path)
    if not path.exists():
        raise HTTPException(status_code=404, detail="Video file missing on server")

    file_size = path.stat().st_size
    media_type = item.mime_type or "video/mp4"
    if not range_header:
        return StreamingResponse(
            _iter_file_range(path, 0, file_size - 1),
            media_type=media_type,
            headers={"Content-Length": str(file_size), "Accept-Ranges": "bytes"},
        )

    try:
        start, end = parse_byte_range(range_header, file_size)
    except ValueError as exc:
        raise HTTPException(
            status_code=416,
            detail="Requested range not satisfiable",
            headers={"Content-Range": f"bytes */{file_size}"},
        ) from exc

    return StreamingResponse(
        _iter_file_range(path, start, end),
        status_code=206,
        media_type=media_type,
        headers={
            "Content-Range": f"bytes {start}-{end}/{file_size}",
            "Accept-Ranges": "bytes",
            "Content-Length": str(end - start + 1),
        },
    )


@router.get("/{media_id}/thumbnail")
async def get_media_thumbnail(
    media_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Serve the extracted thumbnail image."""
    item = await _get_scoped_item(db, media_id, auth)
    if not item.thumbnail_path or not Path(item.thumbnail_path).exists():
        raise HTTPException(status_code=404, detail="Thumbnail not available")
    return FileResponse(item.thumbnail_path, media_type="image/jpeg")


@router.delete("/{media_id}", response_model=DeleteMediaResponse)
async def delete_media(
    media_id: str,
    auth: AuthContext = Depends(require_role("editor", "admin")),
    db: AsyncSession = Depends(get_db),
):
    """Delete the stored video, its thumbnail and its record."""
    item = await _get_scoped_item(db, media_id, auth)
    try:
        await delete_stored_file(item.file_path, item.storage_key)
    except StorageError as exc:
        logger.error("Could not delete stored media for %s: %s", media_id, exc)
        raise HTTPException(status_code=500, detail="Error deleting video") from exc

    remove_quietly(item.thumbnail_path)
    await db.delete(item)
    await db.commit()
    logger.info("Media item %s deleted by %s", media_id, auth.user_id)
    return DeleteMediaResponse(media_id=media_id, message="Video deleted successfully")
