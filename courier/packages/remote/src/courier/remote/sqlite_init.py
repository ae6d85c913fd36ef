"""远端文档库 SQLite 初始化

多设备共享同一个数据库文件（多写者、多读者）。
跨设备协调只依赖单调、幂等的条件更新，不使用分布式锁。
"""

import aiosqlite

# chats 表 DDL
_CHATS_DDL = """
CREATE TABLE IF NOT EXISTS chats (
    chat_id       TEXT PRIMARY KEY,
    kind          TEXT NOT NULL,
    participants  TEXT NOT NULL DEFAULT '[]',
    created_at    TEXT NOT NULL
);
"""

# messages 表 DDL
_MESSAGES_DDL = """
CREATE TABLE IF NOT EXISTS messages (
    message_id          TEXT PRIMARY KEY,
    chat_id             TEXT NOT NULL,
    sender_id           TEXT NOT NULL,
    content             TEXT NOT NULL,
    text_body           TEXT NOT NULL DEFAULT '',
    media_ref           TEXT,
    created_at          TEXT NOT NULL,
    expires_at          TEXT NOT NULL,
    lifecycle_state     TEXT NOT NULL DEFAULT 'ACTIVE',
    version             INTEGER NOT NULL DEFAULT 1,
    change_seq          INTEGER NOT NULL DEFAULT 0,
    fully_delivered_at  TEXT,
    deleted_at          TEXT
);
"""

_MESSAGES_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_messages_chat ON messages(chat_id, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_messages_state_expiry ON messages(lifecycle_state, expires_at);",
    "CREATE INDEX IF NOT EXISTS idx_messages_change_seq ON messages(change_seq);",
]

# delivery_state 表 DDL -- 槽位只在创建时写入
_DELIVERY_DDL = """
CREATE TABLE IF NOT EXISTS delivery_state (
    message_id    TEXT NOT NULL,
    recipient_id  TEXT NOT NULL,
    delivered     INTEGER NOT NULL DEFAULT 0,
    read          INTEGER NOT NULL DEFAULT 0,
    delivered_at  TEXT,
    read_at       TEXT,

    PRIMARY KEY (message_id, recipient_id),
    FOREIGN KEY (message_id) REFERENCES messages(message_id)
);
"""

# lifecycle_events 表 DDL -- append-only
_EVENTS_DDL = """
CREATE TABLE IF NOT EXISTS lifecycle_events (
    event_id    TEXT PRIMARY KEY,
    message_id  TEXT NOT NULL,
    seq         INTEGER NOT NULL,
    ts          TEXT NOT NULL,
    type        TEXT NOT NULL,
    actor       TEXT NOT NULL,
    payload     TEXT NOT NULL DEFAULT '{}'
);
"""

_EVENTS_INDEXES = [
    # 消息内事件序号唯一约束
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_events_message_seq ON lifecycle_events(message_id, seq);",
]

# blob_cleanups 表 DDL -- 已删除消息遗留的待清理 blob
# claimed_at 非空表示有调用方正在删除该 blob，sweep 只认领未认领或认领已过期的行
_BLOB_CLEANUPS_DDL = """
CREATE TABLE IF NOT EXISTS blob_cleanups (
    blob_id     TEXT PRIMARY KEY,
    message_id  TEXT NOT NULL,
    ref         TEXT NOT NULL,
    attempts    INTEGER NOT NULL DEFAULT 0,
    last_error  TEXT NOT NULL DEFAULT '',
    abandoned   INTEGER NOT NULL DEFAULT 0,
    queued_at   TEXT NOT NULL,
    claimed_at  TEXT
);
"""


async def init_remote_db(conn: aiosqlite.Connection) -> None:
    """初始化远端文档库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    await conn.execute(_CHATS_DDL)
    await conn.execute(_MESSAGES_DDL)
    await conn.execute(_DELIVERY_DDL)
    await conn.execute(_EVENTS_DDL)
    await conn.execute(_BLOB_CLEANUPS_DDL)

    for idx_sql in _MESSAGES_INDEXES + _EVENTS_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()
