"""Courier Core Store -- 设备本地 SQLite 持久化实现

提供工厂函数创建共享数据库连接的本地 Store 实例组。
"""

from pathlib import Path

import aiosqlite

from .local_store import SqliteLocalMessageStore
from .protocols import LocalMessageStore
from .sqlite_init import init_local_db, verify_wal_mode


class LocalStoreGroup:
    """本地 Store 实例组 -- 共享同一个数据库连接"""

    def __init__(
        self,
        conn: aiosqlite.Connection,
        media_dir: Path,
        device_id: str,
    ) -> None:
        self.conn = conn
        self.media_dir = media_dir
        self.local_store = SqliteLocalMessageStore(conn, media_dir, device_id)

    async def close(self) -> None:
        await self.conn.close()


async def create_local_store(
    db_path: str,
    media_dir: str | Path,
    device_id: str,
) -> LocalStoreGroup:
    """创建本地 Store 实例组

    Args:
        db_path: 本地 SQLite 数据库文件路径
        media_dir: 本地媒体缓存目录
        device_id: 当前设备 ID

    Returns:
        LocalStoreGroup 实例
    """
    media_path = Path(media_dir)
    media_path.mkdir(parents=True, exist_ok=True)

    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    await init_local_db(conn)

    return LocalStoreGroup(conn=conn, media_dir=media_path, device_id=device_id)


__all__ = [
    "LocalStoreGroup",
    "LocalMessageStore",
    "create_local_store",
    "SqliteLocalMessageStore",
    "init_local_db",
    "verify_wal_mode",
]
