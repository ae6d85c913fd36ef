"""远端文档库 -- DocumentStore Protocol + SQLite 实现

所有跨设备共享的状态变更都是单调、幂等的条件更新：
- 送达/已读标记只做 OR 合并（MAX），永不回退；
- 生命周期状态用 compare-and-set 前进，并发调用只有一个成功；
- 删除对已删除或不存在的消息是成功的空操作。

每次消息变更 version + 1，并分配全局递增的 change_seq 供同步流轮询。
"""

import asyncio
import json
import sqlite3
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

import aiosqlite
import structlog
from courier.core.models import (
    ActorType,
    BlobCleanupPayload,
    ChangeEvent,
    ChangeType,
    Chat,
    DeleteOutcome,
    DeletionReason,
    DeliveryEntry,
    DeliveryPayload,
    EventType,
    LifecycleEvent,
    LifecycleState,
    MediaBlobRef,
    Message,
    MessageContent,
    MessageCreatedPayload,
    StateTransitionPayload,
    content_type_of,
    redacted,
    validate_transition,
)
from pydantic import TypeAdapter
from ulid import ULID

from .exceptions import DuplicateRecordError, RemoteStoreError
from .models import BlobCleanup, BlobCleanupFailure
from .sqlite_init import init_remote_db

log = structlog.get_logger()

_content_adapter: TypeAdapter = TypeAdapter(MessageContent)

_MESSAGE_COLUMNS = (
    "message_id, chat_id, sender_id, content, text_body, media_ref, created_at, "
    "expires_at, lifecycle_state, version, change_seq, fully_delivered_at, deleted_at"
)

# 每次变更分配的全局递增序号
_NEXT_CHANGE_SEQ = "(SELECT COALESCE(MAX(change_seq), 0) + 1 FROM messages)"


class DocumentStore(Protocol):
    """远端文档库接口（多写者、多读者、至少一次投递）"""

    async def create_chat(self, chat: Chat) -> None: ...

    async def get_chat(self, chat_id: str) -> Chat | None: ...

    async def create_message(self, message: Message) -> None: ...

    async def get_message(self, message_id: str) -> Message | None: ...

    async def register_recipients(
        self, message_id: str, recipient_ids: Iterable[str]
    ) -> bool: ...

    async def merge_delivery(
        self,
        message_id: str,
        recipient_id: str,
        at: datetime,
        read: bool = False,
    ) -> DeliveryEntry | None: ...

    async def advance_state(
        self,
        message_id: str,
        from_states: Iterable[LifecycleState],
        to_state: LifecycleState,
        at: datetime,
        actor: ActorType = ActorType.SYSTEM,
    ) -> bool: ...

    async def delete_message(
        self,
        message_id: str,
        reason: DeletionReason,
        at: datetime,
        actor: ActorType = ActorType.SYSTEM,
    ) -> DeleteOutcome: ...

    async def query_messages(
        self,
        states: Iterable[LifecycleState],
        expires_before: datetime | None = None,
        fully_delivered_before: datetime | None = None,
        chat_id: str | None = None,
        limit: int = 500,
    ) -> list[Message]: ...

    async def changes_since(self, cursor: int, limit: int = 100) -> list[ChangeEvent]: ...

    async def pending_blob_cleanups(
        self, limit: int = 100, stale_before: datetime | None = None
    ) -> list[BlobCleanup]: ...

    async def claim_blob_cleanup(self, blob_id: str, at: datetime, stale_before: datetime) -> bool: ...

    async def complete_blob_cleanup(self, blob_id: str) -> None: ...

    async def fail_blob_cleanup(
        self, blob_id: str, error: str, max_attempts: int, at: datetime
    ) -> BlobCleanupFailure | None: ...


class SqliteDocumentStore:
    """DocumentStore 的 SQLite 实现（共享数据库文件模拟远端文档库）"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn
        # 同一连接上的多语句事务必须串行，避免交错提交
        self._write_lock = asyncio.Lock()

    @property
    def conn(self) -> aiosqlite.Connection:
        return self._conn

    async def close(self) -> None:
        await self._conn.close()

    @asynccontextmanager
    async def _transaction(self, op: str) -> AsyncIterator[None]:
        """串行写事务：正常退出提交，任何异常（含取消）回滚"""
        async with self._write_lock:
            try:
                yield
                await self._conn.commit()
            except sqlite3.Error as e:
                await self._conn.rollback()
                raise RemoteStoreError(f"{op} failed: {e}") from e
            except BaseException:
                await self._conn.rollback()
                raise

    # ------------------------------------------------------------------ chats

    async def create_chat(self, chat: Chat) -> None:
        """创建会话记录"""
        async with self._transaction("create chat"):
            try:
                await self._conn.execute(
                    "INSERT INTO chats (chat_id, kind, participants, created_at) VALUES (?, ?, ?, ?)",
                    (
                        chat.chat_id,
                        chat.kind.value,
                        json.dumps(sorted(chat.participants)),
                        chat.created_at.isoformat(),
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise DuplicateRecordError(chat.chat_id) from e

    async def get_chat(self, chat_id: str) -> Chat | None:
        """根据 chat_id 查询会话"""
        cursor = await self._execute_read(
            "SELECT chat_id, kind, participants, created_at FROM chats WHERE chat_id = ?",
            (chat_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return Chat(
            chat_id=row[0],
            kind=row[1],
            participants=set(json.loads(row[2])),
            created_at=datetime.fromisoformat(row[3]),
        )

    # --------------------------------------------------------------- messages

    async def create_message(self, message: Message) -> None:
        """原子创建消息记录 + 送达槽位 + MESSAGE_CREATED 事件

        Raises:
            DuplicateRecordError: message_id 已存在
            RemoteStoreError: 其他写入失败
        """
        async with self._transaction("create message"):
            try:
                await self._conn.execute(
                    f"""
                    INSERT INTO messages ({_MESSAGE_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, {_NEXT_CHANGE_SEQ}, ?, ?)
                    """,
                    (
                        message.message_id,
                        message.chat_id,
                        message.sender_id,
                        _content_adapter.dump_json(message.content).decode(),
                        message.text_body,
                        message.media_ref.model_dump_json() if message.media_ref else None,
                        message.created_at.isoformat(),
                        message.expires_at.isoformat(),
                        message.lifecycle_state.value,
                        message.version,
                        _iso(message.fully_delivered_at),
                        _iso(message.deleted_at),
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise DuplicateRecordError(message.message_id) from e
            await self._insert_delivery_slots(
                message.message_id, message.delivery_state.values()
            )
            await self._append_event(
                message.message_id,
                EventType.MESSAGE_CREATED,
                ActorType.SENDER,
                MessageCreatedPayload(
                    chat_id=message.chat_id,
                    sender_id=message.sender_id,
                    content_type=content_type_of(message.content),
                    recipient_count=len(message.delivery_state),
                    has_media=message.media_ref is not None,
                ).model_dump(),
                message.created_at,
            )

    async def get_message(self, message_id: str) -> Message | None:
        """根据 message_id 查询消息（含 delivery_state）"""
        cursor = await self._execute_read(
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE message_id = ?",
            (message_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        delivery = await self._load_delivery([message_id])
        return self._row_to_message(row, delivery.get(message_id, {}))

    async def register_recipients(
        self, message_id: str, recipient_ids: Iterable[str]
    ) -> bool:
        """登记接收者槽位 -- 仅在消息尚无任何槽位时生效

        Returns:
            True 如果本次写入了槽位；已有槽位或消息不存在时 False
        """
        entries = [DeliveryEntry(recipient_id=rid) for rid in sorted(set(recipient_ids))]
        async with self._transaction("register recipients"):
            cursor = await self._conn.execute(
                """
                SELECT
                    (SELECT COUNT(*) FROM messages WHERE message_id = ?),
                    (SELECT COUNT(*) FROM delivery_state WHERE message_id = ?)
                """,
                (message_id, message_id),
            )
            row = await cursor.fetchone()
            if row[0] == 0 or row[1] > 0 or not entries:
                return False
            await self._insert_delivery_slots(message_id, entries)
            await self._bump_version(message_id)
        return True

    async def merge_delivery(
        self,
        message_id: str,
        recipient_id: str,
        at: datetime,
        read: bool = False,
    ) -> DeliveryEntry | None:
        """OR 合并送达/已读标记

        已读隐含已送达。重复、乱序调用是空操作，标记永不回退。
        最后一个槽位送达时记录 fully_delivered_at。

        Returns:
            合并后的 DeliveryEntry；消息或接收者槽位不存在时返回 None
        """
        read_flag = 1 if read else 0
        ts = at.isoformat()
        async with self._transaction("merge delivery"):
            cursor = await self._conn.execute(
                """
                UPDATE delivery_state
                SET delivered = 1,
                    delivered_at = COALESCE(delivered_at, ?),
                    read = MAX(read, ?),
                    read_at = CASE WHEN ? = 1 THEN COALESCE(read_at, ?) ELSE read_at END
                WHERE message_id = ? AND recipient_id = ?
                  AND (delivered = 0 OR (? = 1 AND read = 0))
                """,
                (ts, read_flag, read_flag, ts, message_id, recipient_id, read_flag),
            )
            if cursor.rowcount > 0:
                await self._conn.execute(
                    """
                    UPDATE messages
                    SET fully_delivered_at = ?
                    WHERE message_id = ? AND fully_delivered_at IS NULL
                      AND NOT EXISTS (
                          SELECT 1 FROM delivery_state
                          WHERE message_id = ? AND delivered = 0
                      )
                    """,
                    (ts, message_id, message_id),
                )
                await self._bump_version(message_id)
                await self._append_event(
                    message_id,
                    EventType.READ if read else EventType.DELIVERED,
                    ActorType.RECIPIENT,
                    DeliveryPayload(recipient_id=recipient_id).model_dump(),
                    at,
                )

        delivery = await self._load_delivery([message_id])
        return delivery.get(message_id, {}).get(recipient_id)

    async def advance_state(
        self,
        message_id: str,
        from_states: Iterable[LifecycleState],
        to_state: LifecycleState,
        at: datetime,
        actor: ActorType = ActorType.SYSTEM,
    ) -> bool:
        """compare-and-set 推进生命周期状态

        只有当前状态属于 from_states 且流转合法时才推进；
        并发调用中至多一个返回 True。
        """
        allowed = set(from_states)
        async with self._transaction("advance state"):
            current = await self._current_state(message_id)
            if current is None or current not in allowed:
                return False
            if not validate_transition(current, to_state):
                return False
            cursor = await self._conn.execute(
                f"""
                UPDATE messages
                SET lifecycle_state = ?, version = version + 1,
                    change_seq = {_NEXT_CHANGE_SEQ}
                WHERE message_id = ? AND lifecycle_state = ?
                """,
                (to_state.value, message_id, current.value),
            )
            if cursor.rowcount == 0:
                return False
            await self._append_event(
                message_id,
                EventType.STATE_TRANSITION,
                actor,
                StateTransitionPayload(from_state=current, to_state=to_state).model_dump(),
                at,
            )
        return True

    async def delete_message(
        self,
        message_id: str,
        reason: DeletionReason,
        at: datetime,
        actor: ActorType = ActorType.SYSTEM,
    ) -> DeleteOutcome:
        """幂等删除：流转到 Deleted，清空内容，媒体引用转入待清理队列

        同一事务内完成状态流转、内容擦除、blob 入队与事件写入。
        入队的 blob 由赢得流转的调用方认领，sweep 在认领过期前不会重复删除。
        已删除或不存在的消息返回 transitioned=False，不报错。
        """
        async with self._transaction("delete message"):
            for _ in range(2):
                row = await self._deletion_snapshot(message_id)
                if row is None:
                    return DeleteOutcome(message_id=message_id, found=False)

                current = LifecycleState(row[0])
                if current == LifecycleState.DELETED:
                    return DeleteOutcome(message_id=message_id, found=True)

                media_ref = MediaBlobRef(**json.loads(row[2])) if row[2] else None
                tombstone = redacted(_content_adapter.validate_json(row[1]))
                if await self._tombstone(message_id, current, tombstone, at):
                    break
                # 读与写之间另一个进程推进了状态，按新状态重读一次
            else:
                return DeleteOutcome(message_id=message_id, found=True)

            if media_ref is not None:
                await self._conn.execute(
                    """
                    INSERT OR IGNORE INTO blob_cleanups
                        (blob_id, message_id, ref, queued_at, claimed_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        media_ref.blob_id,
                        message_id,
                        media_ref.model_dump_json(),
                        at.isoformat(),
                        at.isoformat(),
                    ),
                )
            await self._append_event(
                message_id,
                EventType.STATE_TRANSITION,
                actor,
                StateTransitionPayload(
                    from_state=current,
                    to_state=LifecycleState.DELETED,
                    reason=reason,
                ).model_dump(),
                at,
            )

        log.info(
            "remote_message_deleted",
            message_id=message_id,
            from_state=current.value,
            reason=reason.value,
            has_media=media_ref is not None,
        )
        return DeleteOutcome(
            message_id=message_id,
            found=True,
            transitioned=True,
            media_ref=media_ref,
        )

    async def query_messages(
        self,
        states: Iterable[LifecycleState],
        expires_before: datetime | None = None,
        fully_delivered_before: datetime | None = None,
        chat_id: str | None = None,
        limit: int = 500,
    ) -> list[Message]:
        """按状态与时间条件查询消息，按 created_at 正序"""
        state_values = [s.value for s in states]
        if not state_values:
            return []
        clauses = [f"lifecycle_state IN ({', '.join('?' for _ in state_values)})"]
        params: list[Any] = list(state_values)
        if expires_before is not None:
            clauses.append("expires_at <= ?")
            params.append(expires_before.isoformat())
        if fully_delivered_before is not None:
            clauses.append("fully_delivered_at IS NOT NULL AND fully_delivered_at <= ?")
            params.append(fully_delivered_before.isoformat())
        if chat_id is not None:
            clauses.append("chat_id = ?")
            params.append(chat_id)
        params.append(limit)

        cursor = await self._execute_read(
            f"""
            SELECT {_MESSAGE_COLUMNS} FROM messages
            WHERE {' AND '.join(clauses)}
            ORDER BY created_at ASC, message_id ASC
            LIMIT ?
            """,
            tuple(params),
        )
        rows = await cursor.fetchall()
        delivery = await self._load_delivery([row[0] for row in rows])
        return [self._row_to_message(row, delivery.get(row[0], {})) for row in rows]

    async def changes_since(self, cursor: int, limit: int = 100) -> list[ChangeEvent]:
        """返回 change_seq > cursor 的消息最新快照（同步流轮询）"""
        db_cursor = await self._execute_read(
            f"""
            SELECT {_MESSAGE_COLUMNS} FROM messages
            WHERE change_seq > ?
            ORDER BY change_seq ASC
            LIMIT ?
            """,
            (cursor, limit),
        )
        rows = await db_cursor.fetchall()
        delivery = await self._load_delivery([row[0] for row in rows])
        changes = []
        for row in rows:
            message = self._row_to_message(row, delivery.get(row[0], {}))
            change_type = (
                ChangeType.DELETED
                if message.lifecycle_state == LifecycleState.DELETED
                else ChangeType.UPSERT
            )
            changes.append(ChangeEvent(cursor=row[10], change_type=change_type, message=message))
        return changes

    async def list_events(self, message_id: str) -> list[LifecycleEvent]:
        """查询消息的全部审计事件，按 seq 正序"""
        cursor = await self._execute_read(
            """
            SELECT event_id, message_id, seq, ts, type, actor, payload
            FROM lifecycle_events WHERE message_id = ? ORDER BY seq ASC
            """,
            (message_id,),
        )
        rows = await cursor.fetchall()
        return [
            LifecycleEvent(
                event_id=row[0],
                message_id=row[1],
                seq=row[2],
                ts=datetime.fromisoformat(row[3]),
                type=row[4],
                actor=row[5],
                payload=json.loads(row[6]) if row[6] else {},
            )
            for row in rows
        ]

    # ---------------------------------------------------------- blob cleanups

    async def pending_blob_cleanups(
        self, limit: int = 100, stale_before: datetime | None = None
    ) -> list[BlobCleanup]:
        """未放弃且无人认领的待清理 blob，按入队时间正序

        Args:
            stale_before: 认领时间早于此时刻的行视为认领方已失联，一并返回
        """
        stale = stale_before.isoformat() if stale_before is not None else ""
        cursor = await self._execute_read(
            """
            SELECT blob_id, message_id, ref, attempts, last_error, queued_at
            FROM blob_cleanups
            WHERE abandoned = 0 AND (claimed_at IS NULL OR claimed_at < ?)
            ORDER BY queued_at ASC LIMIT ?
            """,
            (stale, limit),
        )
        rows = await cursor.fetchall()
        return [
            BlobCleanup(
                blob_id=row[0],
                message_id=row[1],
                ref=MediaBlobRef(**json.loads(row[2])),
                attempts=row[3],
                last_error=row[4],
                queued_at=datetime.fromisoformat(row[5]),
            )
            for row in rows
        ]

    async def claim_blob_cleanup(self, blob_id: str, at: datetime, stale_before: datetime) -> bool:
        """认领一条待清理 blob（compare-and-set），只有认领成功的调用方去删除"""
        async with self._transaction("claim blob cleanup"):
            cursor = await self._conn.execute(
                """
                UPDATE blob_cleanups SET claimed_at = ?
                WHERE blob_id = ? AND abandoned = 0
                    AND (claimed_at IS NULL OR claimed_at < ?)
                """,
                (at.isoformat(), blob_id, stale_before.isoformat()),
            )
            return cursor.rowcount == 1

    async def complete_blob_cleanup(self, blob_id: str) -> None:
        """blob 已删除，移出队列（重复调用无副作用）"""
        async with self._transaction("complete blob cleanup"):
            await self._conn.execute("DELETE FROM blob_cleanups WHERE blob_id = ?", (blob_id,))

    async def fail_blob_cleanup(
        self, blob_id: str, error: str, max_attempts: int, at: datetime
    ) -> BlobCleanupFailure | None:
        """记录一次 blob 清理失败并释放认领；达到 max_attempts 后标记放弃"""
        async with self._transaction("record blob cleanup failure"):
            cursor = await self._conn.execute(
                "SELECT message_id, attempts FROM blob_cleanups WHERE blob_id = ?",
                (blob_id,),
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            message_id, attempts = row[0], row[1] + 1
            abandoned = attempts >= max_attempts
            await self._conn.execute(
                """
                UPDATE blob_cleanups
                SET attempts = ?, last_error = ?, abandoned = ?, claimed_at = NULL
                WHERE blob_id = ?
                """,
                (attempts, error, int(abandoned), blob_id),
            )
            await self._append_event(
                message_id,
                EventType.BLOB_CLEANUP_ABANDONED if abandoned else EventType.BLOB_CLEANUP_FAILED,
                ActorType.SCHEDULER,
                BlobCleanupPayload(blob_id=blob_id, attempts=attempts, error=error).model_dump(),
                at,
            )
        return BlobCleanupFailure(blob_id=blob_id, attempts=attempts, abandoned=abandoned)

    # ---------------------------------------------------------------- helpers

    async def _execute_read(self, sql: str, params: tuple = ()) -> aiosqlite.Cursor:
        try:
            return await self._conn.execute(sql, params)
        except sqlite3.Error as e:
            raise RemoteStoreError(f"remote read failed: {e}") from e

    async def _deletion_snapshot(self, message_id: str) -> tuple | None:
        cursor = await self._conn.execute(
            "SELECT lifecycle_state, content, media_ref FROM messages WHERE message_id = ?",
            (message_id,),
        )
        return await cursor.fetchone()

    async def _tombstone(
        self, message_id: str, current: LifecycleState, tombstone: MessageContent, at: datetime
    ) -> bool:
        """按读到的状态做条件更新；状态已被他人改变时返回 False"""
        cursor = await self._conn.execute(
            f"""
            UPDATE messages
            SET lifecycle_state = ?, content = ?, text_body = '', media_ref = NULL,
                deleted_at = ?, version = version + 1,
                change_seq = {_NEXT_CHANGE_SEQ}
            WHERE message_id = ? AND lifecycle_state = ?
            """,
            (
                LifecycleState.DELETED.value,
                _content_adapter.dump_json(tombstone).decode(),
                at.isoformat(),
                message_id,
                current.value,
            ),
        )
        return cursor.rowcount == 1

    async def _current_state(self, message_id: str) -> LifecycleState | None:
        cursor = await self._conn.execute(
            "SELECT lifecycle_state FROM messages WHERE message_id = ?",
            (message_id,),
        )
        row = await cursor.fetchone()
        return LifecycleState(row[0]) if row else None

    async def _insert_delivery_slots(
        self, message_id: str, entries: Iterable[DeliveryEntry]
    ) -> None:
        await self._conn.executemany(
            """
            INSERT INTO delivery_state
                (message_id, recipient_id, delivered, read, delivered_at, read_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    message_id,
                    entry.recipient_id,
                    int(entry.delivered),
                    int(entry.read),
                    _iso(entry.delivered_at),
                    _iso(entry.read_at),
                )
                for entry in entries
            ],
        )

    async def _bump_version(self, message_id: str) -> None:
        await self._conn.execute(
            f"""
            UPDATE messages SET version = version + 1, change_seq = {_NEXT_CHANGE_SEQ}
            WHERE message_id = ?
            """,
            (message_id,),
        )

    async def _append_event(
        self,
        message_id: str,
        event_type: EventType,
        actor: ActorType,
        payload: dict[str, Any],
        ts: datetime,
    ) -> None:
        """追加审计事件（不提交，由调用方管理事务）"""
        cursor = await self._conn.execute(
            "SELECT COALESCE(MAX(seq), 0) FROM lifecycle_events WHERE message_id = ?",
            (message_id,),
        )
        row = await cursor.fetchone()
        seq = (row[0] if row else 0) + 1
        await self._conn.execute(
            """
            INSERT INTO lifecycle_events (event_id, message_id, seq, ts, type, actor, payload)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                str(ULID()),
                message_id,
                seq,
                ts.isoformat(),
                event_type.value,
                actor.value,
                json.dumps(payload, ensure_ascii=False, default=str),
            ),
        )

    async def _load_delivery(
        self, message_ids: list[str]
    ) -> dict[str, dict[str, DeliveryEntry]]:
        if not message_ids:
            return {}
        placeholders = ", ".join("?" for _ in message_ids)
        cursor = await self._execute_read(
            f"""
            SELECT message_id, recipient_id, delivered, read, delivered_at, read_at
            FROM delivery_state WHERE message_id IN ({placeholders})
            ORDER BY recipient_id ASC
            """,
            tuple(message_ids),
        )
        rows = await cursor.fetchall()
        result: dict[str, dict[str, DeliveryEntry]] = {}
        for row in rows:
            result.setdefault(row[0], {})[row[1]] = DeliveryEntry(
                recipient_id=row[1],
                delivered=bool(row[2]),
                read=bool(row[3]),
                delivered_at=_parse_dt(row[4]),
                read_at=_parse_dt(row[5]),
            )
        return result

    @staticmethod
    def _row_to_message(
        row: aiosqlite.Row, delivery_state: dict[str, DeliveryEntry]
    ) -> Message:
        """将数据库行转换为 Message 模型"""
        return Message(
            message_id=row[0],
            chat_id=row[1],
            sender_id=row[2],
            content=_content_adapter.validate_json(row[3]),
            text_body=row[4],
            media_ref=MediaBlobRef(**json.loads(row[5])) if row[5] else None,
            created_at=datetime.fromisoformat(row[6]),
            expires_at=datetime.fromisoformat(row[7]),
            lifecycle_state=row[8],
            version=row[9],
            delivery_state=delivery_state,
            fully_delivered_at=_parse_dt(row[11]),
            deleted_at=_parse_dt(row[12]),
        )


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


async def create_document_store(db_path: str) -> SqliteDocumentStore:
    """打开（必要时创建）远端文档库

    Args:
        db_path: SQLite 数据库文件路径
    """
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = await aiosqlite.connect(db_path)
    await init_remote_db(conn)
    return SqliteDocumentStore(conn)
