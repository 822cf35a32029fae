from typing import Any, Dict, List
from unittest.mock import patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from config import settings
from database import Base, get_db
from main import app
from services.notifier import ProgressNotifier
from services.session_token import create_session_token


def auth_header(user_id: str, tenant_id: str = "tenant-a", role: str = "editor") -> Dict[str, str]:
    token = create_session_token(user_id, tenant_id=tenant_id, role=role)["token"]
    return {"Authorization": f"Bearer {token}"}


class RecordingPublisher:
    """Captures published events instead of sending them to Redis."""

    def __init__(self) -> None:
        self.events: List[Dict[str, Any]] = []

    async def publish(self, channel: str, payload: Dict[str, Any]) -> None:
        self.events.append({"channel": channel, **payload})

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [event for event in self.events if event["type"] == event_type]


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def media_dirs(tmp_path):
    upload_root = tmp_path / "uploads"
    thumbnail_root = tmp_path / "thumbnails"
    temp_root = tmp_path / "tmp"
    with (
        patch.object(settings, "MEDIA_UPLOAD_DIR", str(upload_root)),
        patch.object(settings, "THUMBNAIL_DIR", str(thumbnail_root)),
        patch.object(settings, "MEDIA_TEMP_DIR", str(temp_root)),
    ):
        yield {"uploads": upload_root, "thumbnails": thumbnail_root, "tmp": temp_root}


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    db_path = tmp_path / "media.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    with (
        patch("services.media_pipeline.async_session_maker", maker),
        patch("services.media_queue.async_session_maker", maker),
    ):
        yield maker

    await engine.dispose()


@pytest_asyncio.fixture
async def api_client(session_maker, media_dirs, publisher):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    with patch(
        "services.media_pipeline.default_notifier",
        side_effect=lambda user_id: ProgressNotifier(publisher, user_id),
    ):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            yield client

    app.dependency_overrides.pop(get_db, None)
