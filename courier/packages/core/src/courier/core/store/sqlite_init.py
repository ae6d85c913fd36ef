"""设备本地 SQLite 数据库初始化

PRAGMA 配置 + 两张表 DDL + 索引创建。
本地库单写者（每设备一个），WAL + synchronous=FULL 保证写入在进程重启后仍在。
"""

import aiosqlite

# local_messages 表 DDL
_LOCAL_MESSAGES_DDL = """
CREATE TABLE IF NOT EXISTS local_messages (
    device_id                 TEXT NOT NULL,
    message_id                TEXT NOT NULL,
    chat_id                   TEXT NOT NULL,
    sender_id                 TEXT NOT NULL,
    content                   TEXT NOT NULL,
    text_body                 TEXT NOT NULL DEFAULT '',
    media_ref                 TEXT,
    cached_media_path         TEXT,
    created_at                TEXT NOT NULL,
    stored_at                 TEXT NOT NULL,
    provenance                TEXT NOT NULL,
    remote_deletion_observed  INTEGER NOT NULL DEFAULT 0,

    PRIMARY KEY (device_id, message_id)
);
"""

_LOCAL_MESSAGES_INDEXES = [
    (
        "CREATE INDEX IF NOT EXISTS idx_local_messages_chat "
        "ON local_messages(device_id, chat_id, created_at);"
    ),
    (
        "CREATE INDEX IF NOT EXISTS idx_local_messages_stored_at "
        "ON local_messages(device_id, stored_at);"
    ),
]

# processed_changes 表 DDL -- 同步流去重账本（message_id + version）
_PROCESSED_CHANGES_DDL = """
CREATE TABLE IF NOT EXISTS processed_changes (
    device_id     TEXT NOT NULL,
    message_id    TEXT NOT NULL,
    version       INTEGER NOT NULL,
    processed_at  TEXT NOT NULL,

    PRIMARY KEY (device_id, message_id, version)
);
"""


async def init_local_db(conn: aiosqlite.Connection) -> None:
    """初始化本地数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA synchronous = FULL;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    await conn.execute(_LOCAL_MESSAGES_DDL)
    await conn.execute(_PROCESSED_CHANGES_DDL)

    for idx_sql in _LOCAL_MESSAGES_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
