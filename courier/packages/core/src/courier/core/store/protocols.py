"""Store Protocol 接口定义

使用 Python Protocol 实现结构化子类型（duck typing）。
"""

from datetime import datetime
from pathlib import Path
from typing import Protocol

from ..models.message import LocalMessageRecord


class LocalMessageStore(Protocol):
    """设备本地消息存储接口

    单写者；写入必须在返回前落盘，不依赖远端存储健康状况。
    """

    async def put(self, record: LocalMessageRecord) -> None:
        """持久写入（upsert，保留首次 stored_at）"""
        ...

    async def get(self, message_id: str) -> LocalMessageRecord | None:
        """根据 message_id 查询本地副本"""
        ...

    async def query(
        self, chat_id: str, limit: int | None = None
    ) -> list[LocalMessageRecord]:
        """按会话查询历史，按 created_at 正序"""
        ...

    async def cache_media(self, message_id: str, data: bytes) -> Path:
        """缓存媒体字节到本地文件"""
        ...

    async def mark_remote_deleted(self, message_id: str) -> bool:
        """标记已观察到远端删除"""
        ...

    async def has_processed(self, message_id: str, version: int) -> bool:
        """同步变更是否已处理"""
        ...

    async def mark_processed(self, message_id: str, version: int) -> None:
        """记录同步变更已处理"""
        ...

    async def prune(self, older_than: datetime) -> int:
        """删除 stored_at 早于 older_than 的副本，返回删除数量"""
        ...
