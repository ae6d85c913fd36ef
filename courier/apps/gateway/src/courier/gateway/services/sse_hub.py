"""SSEHub -- 内存中的消息变更广播器

每个订阅者持有一个 asyncio.Queue，按 message_id 订阅；
ChangeConsumer 每看到一个新版本就广播一次快照。
"""

import asyncio
from collections import defaultdict

from courier.core.models import ChangeEvent


class SSEHub:
    """SSE 广播器 -- 基于 asyncio.Queue 的发布/订阅"""

    def __init__(self, queue_maxsize: int = 100) -> None:
        # message_id -> set of asyncio.Queue
        self._subscribers: dict[str, set[asyncio.Queue]] = defaultdict(set)
        self._queue_maxsize = queue_maxsize
        # message_id -> 最近广播过的 version，过滤重复与乱序
        self._last_version: dict[str, int] = {}

    def subscriber_count(self, message_id: str) -> int:
        return len(self._subscribers.get(message_id, ()))

    async def subscribe(self, message_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_maxsize)
        self._subscribers[message_id].add(queue)
        return queue

    async def unsubscribe(self, message_id: str, queue: asyncio.Queue) -> None:
        self._subscribers[message_id].discard(queue)
        if not self._subscribers[message_id]:
            del self._subscribers[message_id]

    async def broadcast(self, change: ChangeEvent) -> bool:
        """广播一条变更；旧版本或重复版本被忽略

        Returns:
            True 如果变更被分发（即使当前没有订阅者）
        """
        message_id, version = change.dedup_key
        if self._last_version.get(message_id, 0) >= version:
            return False
        self._last_version[message_id] = version

        dead_queues = []
        for queue in self._subscribers.get(message_id, set()):
            try:
                queue.put_nowait(change)
            except asyncio.QueueFull:
                dead_queues.append(queue)

        # 消费过慢的订阅者直接断开，客户端重连后从历史补齐
        for q in dead_queues:
            self._subscribers[message_id].discard(q)
        if message_id in self._subscribers and not self._subscribers[message_id]:
            del self._subscribers[message_id]
        return True
