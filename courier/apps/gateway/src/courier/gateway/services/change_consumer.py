"""ChangeConsumer -- 把同步流变更交给 Coordinator

同步流是至少一次投递；去重由 Coordinator 按 message_id + version 完成。
单条变更处理失败只记录并放入重试表，不中断消费循环。
"""

import asyncio

import structlog
from courier.core.models import ChangeEvent
from courier.remote import ChangeFeed

from .coordinator import MessageLifecycleCoordinator
from .sse_hub import SSEHub

log = structlog.get_logger()


class ChangeConsumer:
    """同步流消费者"""

    def __init__(
        self,
        feed: ChangeFeed,
        coordinator: MessageLifecycleCoordinator,
        retry_interval_s: float = 5.0,
        hub: SSEHub | None = None,
    ) -> None:
        self._feed = feed
        self._coordinator = coordinator
        self._hub = hub
        self._retry_interval_s = retry_interval_s
        # message_id -> 最近一次处理失败的变更
        self._failed: dict[str, ChangeEvent] = {}
        self._tasks: list[asyncio.Task] = []
        self.processed = 0
        self.duplicates = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    @property
    def pending_retries(self) -> list[str]:
        return sorted(self._failed)

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._consume()),
            asyncio.create_task(self._retry_loop()),
        ]
        log.info("change_consumer_started", device_id=self._coordinator.device_id)

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        log.info("change_consumer_stopped", device_id=self._coordinator.device_id)

    async def handle(self, change: ChangeEvent) -> bool:
        """处理单条变更，失败时记录并保留待重试"""
        message_id = change.message.message_id
        try:
            handled = await self._coordinator.on_message_received(change)
        except Exception as e:
            self.failures += 1
            pending = self._failed.get(message_id)
            if pending is None or pending.version <= change.version:
                self._failed[message_id] = change
            log.warning(
                "change_processing_failed",
                message_id=message_id,
                version=change.version,
                error_type=type(e).__name__,
            )
            return False

        pending = self._failed.get(message_id)
        if pending is not None and pending.version <= change.version:
            self._failed.pop(message_id, None)
        if handled:
            self.processed += 1
        else:
            self.duplicates += 1
        if self._hub is not None:
            await self._hub.broadcast(change)
        return handled

    async def retry_failed(self) -> int:
        """重试之前失败的变更，返回本次成功数"""
        succeeded = 0
        for change in list(self._failed.values()):
            if await self.handle(change):
                succeeded += 1
        return succeeded

    async def _consume(self) -> None:
        while True:
            try:
                async for change in self._feed.subscribe():
                    await self.handle(change)
            except Exception as e:
                # 重新订阅会重放已见过的变更，由去重吸收
                log.warning("change_feed_interrupted", error_type=type(e).__name__)
            await asyncio.sleep(self._retry_interval_s)

    async def _retry_loop(self) -> None:
        while True:
            await asyncio.sleep(self._retry_interval_s)
            if self._failed:
                await self.retry_failed()
