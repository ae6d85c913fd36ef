"""ExpirationScheduler / LocalRetentionSweeper -- 周期性后台清理

ExpirationScheduler 每轮处理三类工作：
1. expires_at 已过的 Active / PendingDeletion 消息（TTL 硬上限）
2. 宽限期已过仍停在 PendingDeletion 的消息（重启后丢失的计时器）
3. 删除失败、留在队列中的 blob（先认领，避免与正在删除的调用方重复删除）

删除与宽限期计时器共用 Coordinator.delete_message，重复触发无副作用。
单条消息失败只记录日志，不阻塞本轮其他消息，也不终止调度循环。

LocalRetentionSweeper 只按本地存储时间清理设备副本，与远端生命周期无关。
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import structlog
from courier.core.config import LifecycleConfig
from courier.core.exceptions import RemoteDeleteFailed
from courier.core.models import (
    DELETABLE_STATES,
    ActorType,
    DeletionReason,
    LifecycleState,
    SweepReport,
)
from courier.core.store import LocalMessageStore
from courier.remote import BlobCleanup, DocumentStore, RemoteStoreError

from .coordinator import MessageLifecycleCoordinator
from .media_manager import MediaBlobManager

log = structlog.get_logger()

# 单轮每类工作的处理上限
_SWEEP_BATCH_SIZE = 500


class ExpirationScheduler:
    """远端过期清理调度器（可注入、可独立启停）"""

    def __init__(
        self,
        coordinator: MessageLifecycleCoordinator,
        document_store: DocumentStore,
        media_manager: MediaBlobManager,
        config: LifecycleConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._store = document_store
        self._media = media_manager
        self._config = config or coordinator.config
        self._clock = clock or (lambda: datetime.now(UTC))
        self._task: asyncio.Task | None = None
        self._sweep_lock = asyncio.Lock()
        self._last_report: SweepReport | None = None
        self._totals: dict[str, int] = {
            "sweeps": 0,
            "expired_deleted": 0,
            "grace_deleted": 0,
            "already_deleted": 0,
            "failed": 0,
            "blobs_cleaned": 0,
            "blobs_failed": 0,
            "blobs_abandoned": 0,
        }

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_report(self) -> SweepReport | None:
        return self._last_report

    @property
    def totals(self) -> dict[str, int]:
        return dict(self._totals)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        log.info("expiration_scheduler_started", interval_s=self._config.sweep_interval_s)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        log.info("expiration_scheduler_stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self.sweep()
            except Exception:
                log.exception("expiration_sweep_crashed")
            await asyncio.sleep(self._config.sweep_interval_s)

    async def sweep(self) -> SweepReport:
        """执行一轮清理；并发调用串行执行"""
        async with self._sweep_lock:
            report = SweepReport(started_at=self._clock())
            try:
                await self._sweep_expired(report)
                await self._sweep_grace_elapsed(report)
                await self._retry_blob_cleanups(report)
            except RemoteStoreError as e:
                # 查询失败：本轮提前结束，下个周期重试
                log.warning("expiration_sweep_query_failed", error_type=type(e).__name__)
            report.finished_at = self._clock()
            self._record(report)
            return report

    async def _sweep_expired(self, report: SweepReport) -> None:
        now = self._clock()
        expired = await self._store.query_messages(
            DELETABLE_STATES,
            expires_before=now,
            limit=_SWEEP_BATCH_SIZE,
        )
        for message in expired:
            await self._delete_with_retry(message.message_id, DeletionReason.EXPIRED, report)

    async def _sweep_grace_elapsed(self, report: SweepReport) -> None:
        cutoff = self._clock() - timedelta(seconds=self._config.grace_window_s)
        overdue = await self._store.query_messages(
            [LifecycleState.PENDING_DELETION],
            fully_delivered_before=cutoff,
            limit=_SWEEP_BATCH_SIZE,
        )
        for message in overdue:
            await self._delete_with_retry(message.message_id, DeletionReason.ACKNOWLEDGED, report)

    async def _delete_with_retry(
        self, message_id: str, reason: DeletionReason, report: SweepReport
    ) -> None:
        """单条消息删除：有限次数线性退避重试，耗尽后留给下个周期"""
        attempts = self._config.max_delete_attempts
        for attempt in range(1, attempts + 1):
            try:
                outcome = await self._coordinator.delete_message(
                    message_id, reason, ActorType.SCHEDULER
                )
            except RemoteDeleteFailed:
                if attempt < attempts:
                    await asyncio.sleep(self._config.delete_retry_backoff_s * attempt)
                    continue
                log.error(
                    "remote_delete_retries_exhausted",
                    message_id=message_id,
                    attempts=attempts,
                    reason=reason.value,
                )
                report.failed += 1
                report.failed_message_ids.append(message_id)
                return
            except Exception:
                log.exception("remote_delete_unexpected_error", message_id=message_id)
                report.failed += 1
                report.failed_message_ids.append(message_id)
                return

            if not outcome.transitioned:
                report.already_deleted += 1
            elif reason == DeletionReason.EXPIRED:
                report.expired_deleted += 1
            else:
                report.grace_deleted += 1
            return

    async def _retry_blob_cleanups(self, report: SweepReport) -> None:
        # 认领未过期的行属于正在删除 blob 的调用方（通常是赢得删除的计时器）
        stale_before = self._clock() - timedelta(seconds=self._config.blob_claim_lease_s)
        cleanups = await self._store.pending_blob_cleanups(
            limit=_SWEEP_BATCH_SIZE, stale_before=stale_before
        )
        for cleanup in cleanups:
            if not await self._store.claim_blob_cleanup(
                cleanup.blob_id, self._clock(), stale_before
            ):
                continue
            await self._retry_blob_cleanup(cleanup, report)

    async def _retry_blob_cleanup(self, cleanup: BlobCleanup, report: SweepReport) -> None:
        try:
            await self._media.delete(cleanup.ref)
            await self._store.complete_blob_cleanup(cleanup.blob_id)
            report.blobs_cleaned += 1
            return
        except (RemoteDeleteFailed, RemoteStoreError) as e:
            error = type(e).__name__

        failure = await self._store.fail_blob_cleanup(
            cleanup.blob_id,
            error,
            self._config.max_blob_cleanup_attempts,
            self._clock(),
        )
        if failure is not None and failure.abandoned:
            log.error(
                "blob_cleanup_abandoned",
                blob_id=cleanup.blob_id,
                message_id=cleanup.message_id,
                attempts=failure.attempts,
            )
            report.blobs_abandoned += 1
        else:
            log.warning("blob_cleanup_failed", blob_id=cleanup.blob_id, error_type=error)
            report.blobs_failed += 1

    def _record(self, report: SweepReport) -> None:
        self._last_report = report
        self._totals["sweeps"] += 1
        for key in (
            "expired_deleted",
            "grace_deleted",
            "already_deleted",
            "failed",
            "blobs_cleaned",
            "blobs_failed",
            "blobs_abandoned",
        ):
            self._totals[key] += getattr(report, key)
        log.info(
            "expiration_sweep_completed",
            deleted=report.deleted,
            already_deleted=report.already_deleted,
            failed=report.failed,
            blobs_cleaned=report.blobs_cleaned,
            blobs_abandoned=report.blobs_abandoned,
        )


class LocalRetentionSweeper:
    """本地副本保留清理（默认 30 天）"""

    def __init__(
        self,
        local_store: LocalMessageStore,
        retention_days: int = 30,
        interval_s: float = 6 * 3600,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._local = local_store
        self._retention = timedelta(days=retention_days)
        self._interval_s = interval_s
        self._clock = clock or (lambda: datetime.now(UTC))
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def sweep(self) -> int:
        """删除存储时间早于保留期的本地副本，返回删除数"""
        horizon = self._clock() - self._retention
        removed = await self._local.prune(horizon)
        log.info("local_retention_sweep_completed", removed=removed, horizon=horizon.isoformat())
        return removed

    async def _run(self) -> None:
        while True:
            try:
                await self.sweep()
            except Exception:
                log.exception("local_retention_sweep_failed")
            await asyncio.sleep(self._interval_s)
