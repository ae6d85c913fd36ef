"""packages/core 测试配置 -- 本地存储 fixture"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite
import pytest
import pytest_asyncio
from courier.core.models import LocalMessageRecord, Provenance, TextContent
from courier.core.store import LocalStoreGroup, create_local_store
from courier.core.store.sqlite_init import init_local_db


@pytest_asyncio.fixture
async def core_db_path(tmp_path: Path) -> Path:
    """核心层临时数据库路径"""
    return tmp_path / "local" / "messages.db"


@pytest_asyncio.fixture
async def core_media_dir(tmp_path: Path) -> Path:
    """核心层临时媒体缓存目录"""
    media_dir = tmp_path / "media"
    media_dir.mkdir(parents=True, exist_ok=True)
    return media_dir


@pytest_asyncio.fixture
async def core_db(tmp_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    """核心层已初始化数据库连接"""
    conn = await aiosqlite.connect(str(tmp_path / "raw.db"))
    await init_local_db(conn)
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def local_group(
    core_db_path: Path, core_media_dir: Path
) -> AsyncGenerator[LocalStoreGroup, None]:
    """device-a 的本地 Store 实例组"""
    group = await create_local_store(str(core_db_path), core_media_dir, "device-a")
    yield group
    await group.close()


@pytest.fixture
def make_record():
    """构造本地副本的工厂"""

    def _make(
        message_id: str = "01JMSG_LOCAL_0000000000001",
        chat_id: str = "01JCHAT_LOCAL_000000000001",
        text: str = "你好",
        stored_at: datetime | None = None,
        device_id: str = "device-a",
        provenance: Provenance = Provenance.SENT_BY_ME,
    ) -> LocalMessageRecord:
        now = datetime.now(UTC)
        return LocalMessageRecord(
            device_id=device_id,
            message_id=message_id,
            chat_id=chat_id,
            sender_id="alice",
            content=TextContent(text=text),
            text_body=text,
            created_at=now,
            stored_at=stored_at or now,
            provenance=provenance,
        )

    return _make
