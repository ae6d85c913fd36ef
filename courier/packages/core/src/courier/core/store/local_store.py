"""LocalMessageStore SQLite + 文件系统实现

每台设备持有所有收发消息的持久副本，远端删除不会影响本地副本；
副本只受本地保留策略（prune）约束。媒体字节缓存在 media_dir 下。
"""

import hashlib
import json
import sqlite3
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite
import structlog
from pydantic import TypeAdapter

from ..exceptions import LocalWriteFailed
from ..models.content import MessageContent
from ..models.message import LocalMessageRecord, MediaBlobRef

log = structlog.get_logger()

_content_adapter: TypeAdapter = TypeAdapter(MessageContent)

_COLUMNS = (
    "device_id, message_id, chat_id, sender_id, content, text_body, media_ref, "
    "cached_media_path, created_at, stored_at, provenance, remote_deletion_observed"
)


class SqliteLocalMessageStore:
    """LocalMessageStore 的 SQLite 实现"""

    def __init__(
        self,
        conn: aiosqlite.Connection,
        media_dir: Path,
        device_id: str,
    ) -> None:
        self._conn = conn
        self._media_dir = media_dir
        self._device_id = device_id

    @property
    def device_id(self) -> str:
        return self._device_id

    @property
    def media_dir(self) -> Path:
        return self._media_dir

    async def put(self, record: LocalMessageRecord) -> None:
        """持久写入本地副本（upsert）

        已存在的副本保留首次写入的内容、stored_at 与 provenance；
        remote_deletion_observed 只会从 0 变 1。返回前提交事务。

        Raises:
            LocalWriteFailed: 本地数据库写入失败
        """
        if record.device_id != self._device_id:
            raise ValueError(
                f"record belongs to device {record.device_id}, store is {self._device_id}"
            )
        try:
            await self._conn.execute(
                f"""
                INSERT INTO local_messages ({_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(device_id, message_id) DO UPDATE SET
                    media_ref = COALESCE(local_messages.media_ref, excluded.media_ref),
                    cached_media_path = COALESCE(
                        excluded.cached_media_path, local_messages.cached_media_path
                    ),
                    remote_deletion_observed = MAX(
                        local_messages.remote_deletion_observed,
                        excluded.remote_deletion_observed
                    )
                """,
                (
                    record.device_id,
                    record.message_id,
                    record.chat_id,
                    record.sender_id,
                    _content_adapter.dump_json(record.content).decode(),
                    record.text_body,
                    record.media_ref.model_dump_json() if record.media_ref else None,
                    record.cached_media_path,
                    record.created_at.isoformat(),
                    record.stored_at.isoformat(),
                    record.provenance.value,
                    int(record.remote_deletion_observed),
                ),
            )
            await self._conn.commit()
        except sqlite3.Error as e:
            await self._safe_rollback()
            log.error(
                "local_write_failed",
                message_id=record.message_id,
                error_type=type(e).__name__,
            )
            raise LocalWriteFailed(f"local write failed for {record.message_id}") from e

    async def get(self, message_id: str) -> LocalMessageRecord | None:
        """根据 message_id 查询本地副本"""
        cursor = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM local_messages WHERE device_id = ? AND message_id = ?",
            (self._device_id, message_id),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    async def query(
        self, chat_id: str, limit: int | None = None
    ) -> list[LocalMessageRecord]:
        """按会话查询历史，按 created_at 正序；limit 取最近的 N 条"""
        if limit is not None:
            cursor = await self._conn.execute(
                f"""
                SELECT * FROM (
                    SELECT {_COLUMNS} FROM local_messages
                    WHERE device_id = ? AND chat_id = ?
                    ORDER BY created_at DESC, message_id DESC
                    LIMIT ?
                ) ORDER BY created_at ASC, message_id ASC
                """,
                (self._device_id, chat_id, limit),
            )
        else:
            cursor = await self._conn.execute(
                f"""
                SELECT {_COLUMNS} FROM local_messages
                WHERE device_id = ? AND chat_id = ?
                ORDER BY created_at ASC, message_id ASC
                """,
                (self._device_id, chat_id),
            )
        rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    async def cache_media(self, message_id: str, data: bytes) -> Path:
        """缓存媒体字节，文件名为内容 SHA-256

        Raises:
            LocalWriteFailed: 文件写入失败
        """
        digest = hashlib.sha256(data).hexdigest()
        file_path = self._media_dir / message_id / digest
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_bytes(data)
        except OSError as e:
            log.error(
                "local_media_cache_failed",
                message_id=message_id,
                error_type=type(e).__name__,
            )
            raise LocalWriteFailed(f"media cache failed for {message_id}") from e
        return file_path

    async def read_media(self, message_id: str) -> bytes | None:
        """读取本地缓存的媒体字节"""
        record = await self.get(message_id)
        if record is None or not record.cached_media_path:
            return None
        file_path = Path(record.cached_media_path)
        if not file_path.exists():
            return None
        return file_path.read_bytes()

    async def mark_remote_deleted(self, message_id: str) -> bool:
        """标记已观察到远端删除，返回是否存在该副本"""
        cursor = await self._conn.execute(
            """
            UPDATE local_messages SET remote_deletion_observed = 1
            WHERE device_id = ? AND message_id = ?
            """,
            (self._device_id, message_id),
        )
        await self._conn.commit()
        return cursor.rowcount > 0

    async def has_processed(self, message_id: str, version: int) -> bool:
        cursor = await self._conn.execute(
            """
            SELECT 1 FROM processed_changes
            WHERE device_id = ? AND message_id = ? AND version = ?
            """,
            (self._device_id, message_id, version),
        )
        return await cursor.fetchone() is not None

    async def mark_processed(self, message_id: str, version: int) -> None:
        await self._conn.execute(
            """
            INSERT OR IGNORE INTO processed_changes (device_id, message_id, version, processed_at)
            VALUES (?, ?, ?, ?)
            """,
            (self._device_id, message_id, version, datetime.now(UTC).isoformat()),
        )
        await self._conn.commit()

    async def prune(self, older_than: datetime) -> int:
        """删除 stored_at 早于 older_than 的副本及其缓存文件

        Returns:
            删除的副本数量
        """
        cutoff = older_than.isoformat()
        cursor = await self._conn.execute(
            """
            SELECT message_id, cached_media_path FROM local_messages
            WHERE device_id = ? AND stored_at < ?
            """,
            (self._device_id, cutoff),
        )
        rows = await cursor.fetchall()
        if not rows:
            return 0

        for row in rows:
            if row[1]:
                self._remove_cached_file(Path(row[1]))

        try:
            await self._conn.execute(
                "DELETE FROM local_messages WHERE device_id = ? AND stored_at < ?",
                (self._device_id, cutoff),
            )
            await self._conn.execute(
                "DELETE FROM processed_changes WHERE device_id = ? AND processed_at < ?",
                (self._device_id, cutoff),
            )
            await self._conn.commit()
        except sqlite3.Error:
            await self._safe_rollback()
            raise

        return len(rows)

    async def count(self) -> int:
        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM local_messages WHERE device_id = ?",
            (self._device_id,),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def clear(self) -> int:
        """清空本设备全部本地数据（副本、去重账本、媒体缓存）"""
        cursor = await self._conn.execute(
            "SELECT cached_media_path FROM local_messages WHERE device_id = ?",
            (self._device_id,),
        )
        rows = await cursor.fetchall()
        for row in rows:
            if row[0]:
                self._remove_cached_file(Path(row[0]))
        await self._conn.execute(
            "DELETE FROM local_messages WHERE device_id = ?", (self._device_id,)
        )
        await self._conn.execute(
            "DELETE FROM processed_changes WHERE device_id = ?", (self._device_id,)
        )
        await self._conn.commit()
        return len(rows)

    async def _safe_rollback(self) -> None:
        try:
            await self._conn.rollback()
        except sqlite3.Error:
            log.warning("local_rollback_failed")

    @staticmethod
    def _remove_cached_file(file_path: Path) -> None:
        try:
            file_path.unlink(missing_ok=True)
            if file_path.parent.exists() and not any(file_path.parent.iterdir()):
                file_path.parent.rmdir()
        except OSError as e:
            log.warning(
                "local_media_remove_failed",
                path=str(file_path),
                error_type=type(e).__name__,
            )

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> LocalMessageRecord:
        """将数据库行转换为 LocalMessageRecord 模型"""
        media_ref = MediaBlobRef(**json.loads(row[6])) if row[6] else None
        return LocalMessageRecord(
            device_id=row[0],
            message_id=row[1],
            chat_id=row[2],
            sender_id=row[3],
            content=_content_adapter.validate_json(row[4]),
            text_body=row[5],
            media_ref=media_ref,
            cached_media_path=row[7],
            created_at=datetime.fromisoformat(row[8]),
            stored_at=datetime.fromisoformat(row[9]),
            provenance=row[10],
            remote_deletion_observed=bool(row[11]),
        )
