"""Post-upload processing pipeline for media items."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.future import select

from database import async_session_maker
from models.media_item import MediaItem
from processing.sensitivity import SensitivityAnalyzer
from processing.video import extract_thumbnail, probe_video, thumbnail_seek_seconds
from services.notifier import ProgressNotifier, default_notifier
from services.storage import fetch_local_copy, remove_quietly

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = ("completed", "failed")
CHECKPOINT_STARTED = 0
CHECKPOINT_FETCHED = 20
CHECKPOINT_PROBED = 40
CHECKPOINT_THUMBNAIL = 60
CHECKPOINT_CLASSIFIED = 80
CHECKPOINT_DONE = 100


class RecordClosedError(Exception):
    """Raised when the item was finished or deleted by someone else mid-run."""


async def _get_item(media_id: str) -> Optional[MediaItem]:
    async with async_session_maker() as db:
        result = await db.execute(select(MediaItem).where(MediaItem.id == media_id))
        return result.scalar_one_or_none()


async def _update_item(media_id: str, *, completed: bool = False, **fields: Any) -> bool:
    """Apply fields to a non-terminal item. Returns False when the item is gone or already terminal."""
    async with async_session_maker() as db:
        result = await db.execute(select(MediaItem).where(MediaItem.id == media_id))
        item = result.scalar_one_or_none()
        if not item:
            return False
        if item.status in TERMINAL_STATUSES:
            logger.warning("Media item %s is already %s; update skipped", media_id, item.status)
            return False
        if "processing_progress" in fields:
            fields["processing_progress"] = max(0, min(int(fields["processing_progress"]), 100))
        if "error_message" in fields and fields["error_message"]:
            fields["error_message"] = fields["error_message"][:1000]
        for key, value in fields.items():
            setattr(item, key, value)
        now = datetime.now(timezone.utc)
        item.updated_at = now
        if completed:
            item.completed_at = now
        await db.commit()
        return True


async def _checkpoint(
    media_id: str,
    notifier: ProgressNotifier,
    progress: int,
    status: Optional[str] = None,
    **fields: Any,
) -> None:
    if status is not None:
        fields["status"] = status
    if not await _update_item(media_id, processing_progress=progress, **fields):
        raise RecordClosedError(media_id)
    await notifier.progress(media_id, progress, status)


async def process_media_item(
    media_id: str,
    user_id: str,
    *,
    notifier: Optional[ProgressNotifier] = None,
    analyzer: Optional[SensitivityAnalyzer] = None,
) -> None:
    """
    Run fetch, probe, thumbnail, classify and finalize for one media item.

    Progress is persisted and published at 0/20/40/60/80/100. Any stage error
    marks the item failed with progress reset to 0 and publishes a single
    failure event; nothing is retried or rolled back. If the item is finished
    or deleted elsewhere mid-run (e.g. by stalled-job recovery), the run stops
    without writing or publishing anything further.
    """
    notifier = notifier or default_notifier(user_id)
    analyzer = analyzer or SensitivityAnalyzer()

    item = await _get_item(media_id)
    if not item:
        logger.warning("Media item %s not found; skipping processing", media_id)
        return
    if item.status in TERMINAL_STATUSES:
        logger.warning("Media item %s already %s; skipping processing", media_id, item.status)
        return

    logger.info("Processing media item %s for user %s (source=%s)", media_id, user_id, item.file_path)
    local_path: Optional[str] = None
    is_temp = False
    try:
        await _checkpoint(media_id, notifier, CHECKPOINT_STARTED, status="processing", error_message=None)

        local_path, is_temp = await fetch_local_copy(item.file_path, media_id)
        await _checkpoint(media_id, notifier, CHECKPOINT_FETCHED)

        info = await asyncio.to_thread(probe_video, local_path)
        logger.info("Media item %s info: %s", media_id, info)
        await _checkpoint(
            media_id,
            notifier,
            CHECKPOINT_PROBED,
            duration_seconds=info.duration,
            width=info.width,
            height=info.height,
            codec=info.codec,
        )

        thumbnail_path = await asyncio.to_thread(
            extract_thumbnail,
            local_path,
            media_id,
            None,
            thumbnail_seek_seconds(info.duration),
        )
        await _checkpoint(media_id, notifier, CHECKPOINT_THUMBNAIL, thumbnail_path=thumbnail_path)

        verdict = await analyzer.analyze_async(local_path)
        logger.info("Sensitivity verdict for %s: %s", media_id, verdict)
        await _checkpoint(
            media_id,
            notifier,
            CHECKPOINT_CLASSIFIED,
            sensitivity_status=verdict.status,
            flag_reason=verdict.reason or "",
            sensitivity_confidence=verdict.confidence,
            flagged_frames=verdict.flagged_frames,
            total_frames=verdict.total_frames,
        )

        await _checkpoint(media_id, notifier, CHECKPOINT_DONE, status="completed", completed=True)
        await notifier.completed(
            media_id,
            status="completed",
            sensitivity_status=verdict.status,
            flag_reason=verdict.reason or "",
            duration=info.duration,
        )

        if is_temp:
            remove_quietly(local_path)
        logger.info("Media item %s processed successfully", media_id)
    except RecordClosedError:
        logger.warning("Media item %s was closed or removed during processing; stopping", media_id)
        if is_temp:
            remove_quietly(local_path)
    except Exception as exc:
        logger.exception("Media item %s failed: %s", media_id, exc)
        message = str(exc) or "Processing failed"
        try:
            marked = await _update_item(
                media_id,
                status="failed",
                processing_progress=0,
                error_message=message,
            )
        except Exception as update_exc:
            logger.warning("Could not mark media item %s failed: %s", media_id, update_exc)
            marked = True
        if marked:
            await notifier.failed(media_id, message)


def process_media_item_job(media_id: str, user_id: str) -> None:
    """RQ worker entrypoint for media processing jobs."""
    asyncio.run(process_media_item(media_id, user_id))
