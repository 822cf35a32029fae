"""Media processing job queue helpers (Redis/RQ)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from redis import Redis
from rq import Queue
from rq.job import Job
from sqlalchemy import func, select

from config import settings
from database import async_session_maker
from models.media_item import MediaItem


MEDIA_QUEUE_NAME = "media_processing"
IN_PROGRESS_STATUSES = ("uploading", "processing")


def get_redis_connection() -> Redis:
    """Build Redis connection used by RQ."""
    return Redis.from_url(settings.REDIS_URL)


def get_media_queue() -> Queue:
    """Return the configured media processing queue."""
    return Queue(
        name=MEDIA_QUEUE_NAME,
        connection=get_redis_connection(),
        default_timeout=1800,
    )


def enqueue_media_processing_job(media_id: str, user_id: str) -> Job:
    """Enqueue one pipeline run. Failed runs are terminal, so no retry policy is attached."""
    queue = get_media_queue()
    return queue.enqueue(
        "services.media_pipeline.process_media_item_job",
        media_id,
        user_id,
        job_id=f"media:{media_id}",
        job_timeout=1800,
        result_ttl=86400,
        failure_ttl=86400,
    )


async def recover_stalled_media_items(max_age_minutes: int = 120) -> int:
    """
    Mark media items with no activity for `max_age_minutes` as failed.

    Activity is the last checkpoint write (`updated_at`), falling back to
    `created_at` for items whose job never started, e.g. a queued job lost from Redis.
    """
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=max(max_age_minutes, 1))
    last_activity = func.coalesce(MediaItem.updated_at, MediaItem.created_at)
    async with async_session_maker() as db:
        result = await db.execute(
            select(MediaItem).where(
                MediaItem.status.in_(IN_PROGRESS_STATUSES),
                last_activity < cutoff,
            )
        )
        items = result.scalars().all()
        for item in items:
            item.status = "failed"
            item.processing_progress = 0
            item.error_message = "Processing was interrupted. Upload the video again."
            item.completed_at = datetime.now(timezone.utc)
        if items:
            await db.commit()
        return len(items)
