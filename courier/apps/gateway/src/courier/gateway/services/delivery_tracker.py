"""DeliveryTracker -- 每个接收者的送达/已读标记

槽位在发送时按会话成员快照，之后不增不删；
标记只做 OR 合并，重复、乱序、并发调用都不会把 true 改回 false。
"""

import asyncio
from collections.abc import Callable, Iterable
from datetime import UTC, datetime

import structlog
from courier.core.exceptions import RemoteWriteFailed
from courier.core.models import DeliveryEntry
from courier.remote import DocumentStore, RemoteStoreError

log = structlog.get_logger()


class DeliveryTracker:
    """送达状态跟踪（状态本身存放在远端文档库）"""

    def __init__(
        self,
        document_store: DocumentStore,
        timeout_s: float = 10,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = document_store
        self._timeout_s = timeout_s
        self._clock = clock or (lambda: datetime.now(UTC))

    @staticmethod
    def build_delivery_state(
        sender_id: str, recipient_ids: Iterable[str]
    ) -> dict[str, DeliveryEntry]:
        """发送时的槽位快照：每个非发送者成员一个槽位"""
        return {
            rid: DeliveryEntry(recipient_id=rid)
            for rid in sorted(set(recipient_ids))
            if rid != sender_id
        }

    async def register_recipients(self, message_id: str, recipient_ids: Iterable[str]) -> bool:
        """登记接收者（仅首次生效）"""
        return await self._call(
            "register_recipients",
            message_id,
            self._store.register_recipients(message_id, list(recipient_ids)),
        )

    async def mark_delivered(
        self, message_id: str, recipient_id: str, at: datetime | None = None
    ) -> DeliveryEntry | None:
        """标记已送达；消息或接收者未登记时返回 None"""
        entry = await self._call(
            "mark_delivered",
            message_id,
            self._store.merge_delivery(message_id, recipient_id, at or self._clock()),
        )
        if entry is None:
            log.debug("delivery_slot_unknown", message_id=message_id, recipient_id=recipient_id)
        return entry

    async def mark_read(
        self, message_id: str, recipient_id: str, at: datetime | None = None
    ) -> DeliveryEntry | None:
        """标记已读（隐含已送达）"""
        entry = await self._call(
            "mark_read",
            message_id,
            self._store.merge_delivery(message_id, recipient_id, at or self._clock(), read=True),
        )
        if entry is None:
            log.debug("delivery_slot_unknown", message_id=message_id, recipient_id=recipient_id)
        return entry

    async def is_fully_delivered(self, message_id: str) -> bool:
        message = await self._call(
            "is_fully_delivered", message_id, self._store.get_message(message_id)
        )
        return message is not None and message.is_fully_delivered()

    async def get_delivery_state(self, message_id: str) -> dict[str, DeliveryEntry] | None:
        """UI 读取送达/已读指示；远端记录已不存在时返回 None"""
        message = await self._call(
            "get_delivery_state", message_id, self._store.get_message(message_id)
        )
        return message.delivery_state if message is not None else None

    async def _call(self, op: str, message_id: str, coro):
        try:
            return await asyncio.wait_for(coro, timeout=self._timeout_s)
        except TimeoutError as e:
            log.warning("delivery_store_timeout", op=op, message_id=message_id)
            raise RemoteWriteFailed(f"{op} timed out for {message_id}") from e
        except RemoteStoreError as e:
            log.warning(
                "delivery_store_failed",
                op=op,
                message_id=message_id,
                error_type=type(e).__name__,
            )
            raise RemoteWriteFailed(f"{op} failed for {message_id}: {e}") from e
