"""ChangeFeed -- 同步流抽象

远端变更以「有序但可能重复」的流交付给订阅者。
去重（message_id + version）由消费方负责，而不是传输层。
"""

import asyncio
from collections.abc import AsyncIterator
from typing import Protocol

import structlog
from courier.core.models import ChangeEvent

from .document_store import DocumentStore

log = structlog.get_logger()


class ChangeFeed(Protocol):
    """变更订阅接口"""

    def subscribe(self) -> AsyncIterator[ChangeEvent]: ...


class PollingChangeFeed:
    """轮询 DocumentStore.changes_since 的变更流（至少一次）

    游标在消费方取走下一条之后才前进；订阅中断后从 start_cursor 重新开始，
    因此重启或重叠订阅会产生重复变更。
    """

    def __init__(
        self,
        document_store: DocumentStore,
        interval_s: float = 1.0,
        batch_size: int = 100,
        start_cursor: int = 0,
    ) -> None:
        self._store = document_store
        self._interval_s = interval_s
        self._batch_size = batch_size
        self._start_cursor = start_cursor

    async def subscribe(self) -> AsyncIterator[ChangeEvent]:
        cursor = self._start_cursor
        while True:
            changes = await self._store.changes_since(cursor, limit=self._batch_size)
            for change in changes:
                yield change
                cursor = change.cursor
            if len(changes) < self._batch_size:
                await asyncio.sleep(self._interval_s)

    async def poll_once(self, cursor: int = 0) -> list[ChangeEvent]:
        """单次拉取（不推进内部状态）"""
        return await self._store.changes_since(cursor, limit=self._batch_size)
