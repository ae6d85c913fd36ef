"""MessageLifecycleCoordinator -- 消息生命周期编排

每台设备一个实例，负责：
1. send_message: 上传媒体 -> 原子创建远端记录（含接收者槽位）-> 写本地副本
2. on_message_received: 写本地副本 -> 标记本设备用户已送达（按 message_id + version 去重）
3. on_message_read: 确保本地副本存在后标记已读
4. 全部送达后 Active -> PendingDeletion，宽限期结束后删除远端内容
5. delete_message: 宽限期计时器与过期清理共用的唯一幂等删除路径

状态机只前进不回退；跨设备协调完全依赖远端的 compare-and-set 与 OR 合并。
"""

import asyncio
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta

import structlog
from courier.core.config import MESSAGE_PREVIEW_LENGTH, LifecycleConfig
from courier.core.exceptions import (
    CourierError,
    NotFound,
    RemoteDeleteFailed,
    RemoteWriteFailed,
)
from courier.core.models import (
    ActorType,
    ChangeEvent,
    ChangeType,
    Chat,
    ChatKind,
    DeleteOutcome,
    DeletionReason,
    DeliveryEntry,
    LifecycleState,
    LocalMessageRecord,
    MediaBlobRef,
    Message,
    MessageContent,
    Provenance,
    SendResult,
    TextContent,
    content_mime,
    is_media,
    summary_text,
)
from courier.core.store import LocalMessageStore
from courier.remote import (
    BlobNotFoundError,
    DocumentStore,
    NullPushNotifier,
    PushNotifier,
    RemoteStoreError,
)
from pydantic import TypeAdapter
from ulid import ULID

from .delivery_tracker import DeliveryTracker
from .media_manager import MediaBlobManager

log = structlog.get_logger()

_content_adapter: TypeAdapter = TypeAdapter(MessageContent)

# 记录中除内容外的字段开销估算（ID、时间戳、槽位等）
_RECORD_OVERHEAD_BYTES = 16 * 1024


class MessageLifecycleCoordinator:
    """消息生命周期协调器"""

    def __init__(
        self,
        device_id: str,
        user_id: str,
        document_store: DocumentStore,
        local_store: LocalMessageStore,
        media_manager: MediaBlobManager,
        delivery_tracker: DeliveryTracker,
        push_notifier: PushNotifier | None = None,
        config: LifecycleConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.device_id = device_id
        self.user_id = user_id
        self._store = document_store
        self._local = local_store
        self._media = media_manager
        self._tracker = delivery_tracker
        self._push = push_notifier or NullPushNotifier()
        self._config = config or LifecycleConfig()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._grace_timers: dict[str, asyncio.Task] = {}
        self._background: set[asyncio.Task] = set()

    @property
    def config(self) -> LifecycleConfig:
        return self._config

    @property
    def pending_grace_timers(self) -> list[str]:
        return sorted(self._grace_timers)

    # ------------------------------------------------------------------ chats

    async def create_chat(
        self, participants: Iterable[str], kind: ChatKind | None = None
    ) -> Chat:
        """创建会话，当前用户自动加入成员"""
        members = set(participants) | {self.user_id}
        if kind is None:
            kind = ChatKind.DIRECT if len(members) == 2 else ChatKind.GROUP
        chat = Chat(
            chat_id=str(ULID()),
            kind=kind,
            participants=members,
            created_at=self._clock(),
        )
        try:
            await self._remote(self._store.create_chat(chat))
        except (RemoteStoreError, TimeoutError) as e:
            raise RemoteWriteFailed(f"create chat failed: {e}") from e
        log.info("chat_created", chat_id=chat.chat_id, kind=chat.kind.value, members=len(members))
        return chat

    # ------------------------------------------------------------------- send

    async def send_message(
        self,
        content: MessageContent,
        chat_id: str,
        recipients: Iterable[str] | None = None,
        payload: bytes | None = None,
        ttl: timedelta | None = None,
    ) -> SendResult:
        """发送消息

        全有或全无：远端记录创建失败、本地写入失败或调用被取消时，
        已上传的 blob 与已创建的远端记录都会回滚。

        Raises:
            NotFound: 会话不存在
            ValueError: 接收者不属于会话、没有接收者或媒体缺少 payload
            UploadFailed: 媒体上传失败
            RemoteWriteFailed: 远端记录写入失败
            LocalWriteFailed: 发送方设备本地持久化失败
        """
        chat = await self._load_chat(chat_id)
        if recipients is not None:
            outsiders = set(recipients) - chat.participants
            if outsiders:
                raise ValueError(f"recipients not in chat {chat_id}: {sorted(outsiders)}")
        recipient_ids = (
            set(recipients) if recipients is not None else set(chat.participants)
        ) - {self.user_id}
        if not recipient_ids:
            raise ValueError("message requires at least one recipient")
        if is_media(content) and payload is None:
            raise ValueError(f"{content.type} message requires a payload")

        message_id = str(ULID())
        now = self._clock()
        expires_at = now + (ttl or timedelta(seconds=self._config.default_ttl_s))
        text_body = summary_text(content)
        remote_content = content
        media_ref: MediaBlobRef | None = None
        record_created = False

        log.info(
            "send_started",
            message_id=message_id,
            chat_id=chat_id,
            content_type=content.type,
            recipients=len(recipient_ids),
        )
        try:
            if is_media(content):
                media_ref = await self._media.upload(payload, chat_id, content_mime(content))
            elif self._media.requires_blob(self._inline_size(content, text_body)):
                # 超大文本走 blob，远端记录只保留预览
                payload = content.text.encode("utf-8")
                media_ref = await self._media.upload(payload, chat_id, content_mime(content))
                text_body = content.text[:MESSAGE_PREVIEW_LENGTH]
                remote_content = TextContent(text=text_body)

            message = Message(
                message_id=message_id,
                chat_id=chat_id,
                sender_id=self.user_id,
                content=remote_content,
                text_body=text_body,
                media_ref=media_ref,
                created_at=now,
                expires_at=expires_at,
                delivery_state=DeliveryTracker.build_delivery_state(self.user_id, recipient_ids),
            )
            try:
                await self._remote(self._store.create_message(message))
            except (RemoteStoreError, TimeoutError) as e:
                retryable = getattr(e, "retryable", True)
                raise RemoteWriteFailed(
                    f"remote record write failed for {message_id}", retryable=retryable
                ) from e
            record_created = True

            await self._write_local(
                message,
                content=content,
                text_body=summary_text(content),
                provenance=Provenance.SENT_BY_ME,
                media_bytes=payload if media_ref is not None else None,
            )
        except (CourierError, asyncio.CancelledError) as e:
            await asyncio.shield(
                self._rollback_send(message_id, media_ref, record_created, type(e).__name__)
            )
            raise

        self._spawn(self._notify(message, recipient_ids))
        log.info("send_completed", message_id=message_id, chat_id=chat_id)
        return SendResult(
            message_id=message_id,
            chat_id=chat_id,
            expires_at=expires_at,
            recipient_count=len(recipient_ids),
            media_ref=media_ref,
        )

    # ---------------------------------------------------------------- receive

    async def on_message_received(self, change: ChangeEvent) -> bool:
        """处理同步流中的一条变更（可能重复）

        Returns:
            True 表示本次处理了变更；重复或与本设备无关时 False

        Raises:
            LocalWriteFailed: 本地写入失败，变更不标记为已处理，重投时重试
        """
        message = change.message
        message_id, version = change.dedup_key
        if await self._local.has_processed(message_id, version):
            log.debug("change_duplicate", message_id=message_id, version=version)
            return False

        if (
            change.change_type == ChangeType.DELETED
            or message.lifecycle_state == LifecycleState.DELETED
        ):
            # 远端删除只影响远端副本；本地副本仅打标记
            observed = await self._local.mark_remote_deleted(message_id)
            self._cancel_grace_timer(message_id)
            await self._local.mark_processed(message_id, version)
            return observed

        is_sender = message.sender_id == self.user_id
        is_recipient = self.user_id in message.delivery_state
        if not (is_sender or is_recipient):
            await self._local.mark_processed(message_id, version)
            return False

        provenance = Provenance.SENT_BY_ME if is_sender else Provenance.RECEIVED_FROM
        existing = await self._local.get(message_id)
        if existing is None or (
            message.media_ref is not None and existing.cached_media_path is None
        ):
            await self._store_received_copy(message, provenance)

        became_delivered = False
        if is_recipient and not message.delivery_state[self.user_id].delivered:
            # 本地副本已落盘，才能替本设备用户确认送达
            entry = await self._tracker.mark_delivered(message_id, self.user_id)
            became_delivered = entry is not None and entry.delivered

        if became_delivered or (
            message.lifecycle_state == LifecycleState.ACTIVE and message.is_fully_delivered()
        ):
            await self._maybe_begin_deletion(message_id)

        await self._local.mark_processed(message_id, version)
        return True

    async def on_message_read(self, message_id: str) -> DeliveryEntry | None:
        """当前用户已读消息

        已读隐含送达：本设备还没有本地副本时先从远端拉取并落盘，再标记。
        远端已删除或当前用户不是接收者时返回 None，不做任何标记。
        """
        if await self._local.get(message_id) is None:
            try:
                message = await self._remote(self._store.get_message(message_id))
            except (RemoteStoreError, TimeoutError) as e:
                raise RemoteWriteFailed(f"read lookup failed for {message_id}") from e
            if (
                message is None
                or message.lifecycle_state == LifecycleState.DELETED
                or self.user_id not in message.delivery_state
            ):
                log.info("read_without_local_copy", message_id=message_id, user_id=self.user_id)
                return None
            await self._store_received_copy(message, Provenance.RECEIVED_FROM)

        entry = await self._tracker.mark_read(message_id, self.user_id)
        if entry is not None:
            await self._maybe_begin_deletion(message_id)
        return entry

    # ----------------------------------------------------------------- delete

    async def delete_message(
        self,
        message_id: str,
        reason: DeletionReason = DeletionReason.MANUAL,
        actor: ActorType = ActorType.SYSTEM,
    ) -> DeleteOutcome:
        """幂等删除远端内容

        只有赢得 Deleted 流转的调用方才会删除 blob；blob 删除失败留给下一轮 sweep。

        Raises:
            RemoteDeleteFailed: 远端文档库不可达，消息保持原状态等待重试
        """
        try:
            outcome = await self._remote(
                self._store.delete_message(message_id, reason, self._clock(), actor)
            )
        except (RemoteStoreError, TimeoutError) as e:
            log.warning(
                "remote_delete_failed",
                message_id=message_id,
                reason=reason.value,
                error_type=type(e).__name__,
            )
            raise RemoteDeleteFailed(f"remote delete failed for {message_id}") from e

        if outcome.transitioned:
            self._cancel_grace_timer(message_id)
            if outcome.media_ref is not None:
                await self._cleanup_blob(outcome.media_ref)
        return outcome

    async def close(self) -> None:
        """取消所有宽限期计时器与后台任务"""
        tasks = [*self._grace_timers.values(), *self._background]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._grace_timers.clear()
        self._background.clear()

    # ---------------------------------------------------------------- helpers

    async def _remote(self, coro):
        return await asyncio.wait_for(coro, timeout=self._config.metadata_timeout_s)

    async def _load_chat(self, chat_id: str) -> Chat:
        try:
            chat = await self._remote(self._store.get_chat(chat_id))
        except (RemoteStoreError, TimeoutError) as e:
            raise RemoteWriteFailed(f"chat lookup failed for {chat_id}") from e
        if chat is None:
            raise NotFound("chat", chat_id)
        return chat

    @staticmethod
    def _inline_size(content: MessageContent, text_body: str) -> int:
        return (
            len(_content_adapter.dump_json(content))
            + len(text_body.encode("utf-8"))
            + _RECORD_OVERHEAD_BYTES
        )

    async def _write_local(
        self,
        message: Message,
        content: MessageContent,
        text_body: str,
        provenance: Provenance,
        media_bytes: bytes | None,
    ) -> None:
        """写本地副本；有媒体时先缓存字节再写记录"""
        cached_path = None
        if media_bytes is not None and is_media(content):
            cached_path = str(await self._local.cache_media(message.message_id, media_bytes))
        await self._local.put(
            LocalMessageRecord(
                device_id=self.device_id,
                message_id=message.message_id,
                chat_id=message.chat_id,
                sender_id=message.sender_id,
                content=content,
                text_body=text_body,
                media_ref=message.media_ref,
                cached_media_path=cached_path,
                created_at=message.created_at,
                stored_at=self._clock(),
                provenance=provenance,
            )
        )

    async def _store_received_copy(self, message: Message, provenance: Provenance) -> None:
        """拉取 blob 并写入接收方本地副本"""
        content = message.content
        text_body = message.text_body
        media_bytes = None
        if message.media_ref is not None:
            try:
                media_bytes = await self._media.fetch(message.media_ref)
            except BlobNotFoundError:
                log.warning(
                    "received_blob_missing",
                    message_id=message.message_id,
                    blob_id=message.media_ref.blob_id,
                )
            if media_bytes is not None and not is_media(content):
                # 超大文本：远端只有预览，完整正文在 blob 里
                full_text = media_bytes.decode("utf-8")
                content = TextContent(text=full_text)
                text_body = full_text
                media_bytes = None
        await self._write_local(message, content, text_body, provenance, media_bytes)
        log.info(
            "local_copy_stored",
            message_id=message.message_id,
            provenance=provenance.value,
            device_id=self.device_id,
        )

    async def _maybe_begin_deletion(self, message_id: str) -> None:
        """全部送达后 CAS 进入 PendingDeletion，赢家负责启动宽限期计时器"""
        if not await self._tracker.is_fully_delivered(message_id):
            return
        try:
            won = await self._remote(
                self._store.advance_state(
                    message_id,
                    [LifecycleState.ACTIVE],
                    LifecycleState.PENDING_DELETION,
                    self._clock(),
                    ActorType.RECIPIENT,
                )
            )
        except (RemoteStoreError, TimeoutError) as e:
            # 过期清理会补上遗漏的 PendingDeletion 消息
            log.warning(
                "pending_deletion_transition_failed",
                message_id=message_id,
                error_type=type(e).__name__,
            )
            return
        if won:
            log.info(
                "message_fully_delivered",
                message_id=message_id,
                grace_window_s=self._config.grace_window_s,
            )
            self._schedule_grace_deletion(message_id)

    def _schedule_grace_deletion(self, message_id: str) -> None:
        if message_id in self._grace_timers:
            return
        task = asyncio.create_task(self._grace_then_delete(message_id))
        self._grace_timers[message_id] = task
        task.add_done_callback(lambda _t: self._grace_timers.pop(message_id, None))

    async def _grace_then_delete(self, message_id: str) -> None:
        await asyncio.sleep(self._config.grace_window_s)
        try:
            await self.delete_message(
                message_id, DeletionReason.ACKNOWLEDGED, ActorType.GRACE_TIMER
            )
        except RemoteDeleteFailed:
            log.warning("grace_delete_deferred_to_sweep", message_id=message_id)

    def _cancel_grace_timer(self, message_id: str) -> None:
        task = self._grace_timers.get(message_id)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _cleanup_blob(self, ref: MediaBlobRef) -> None:
        """删除 Deleted 消息的 blob；失败时记一次重试，留给 sweep"""
        try:
            await self._media.delete(ref)
            await self._remote(self._store.complete_blob_cleanup(ref.blob_id))
        except (RemoteDeleteFailed, RemoteStoreError, TimeoutError) as e:
            log.warning("blob_cleanup_deferred", blob_id=ref.blob_id, error_type=type(e).__name__)
            try:
                await self._remote(
                    self._store.fail_blob_cleanup(
                        ref.blob_id,
                        type(e).__name__,
                        self._config.max_blob_cleanup_attempts,
                        self._clock(),
                    )
                )
            except (RemoteStoreError, TimeoutError):
                log.warning("blob_cleanup_failure_not_recorded", blob_id=ref.blob_id)

    async def _rollback_send(
        self,
        message_id: str,
        media_ref: MediaBlobRef | None,
        record_created: bool,
        cause: str,
    ) -> None:
        """撤销未完成的发送：删除远端记录（连带 blob）或孤立的 blob"""
        log.warning(
            "send_rolled_back",
            message_id=message_id,
            cause=cause,
            record_created=record_created,
            has_media=media_ref is not None,
        )
        try:
            if record_created:
                await self.delete_message(message_id, DeletionReason.MANUAL, ActorType.SENDER)
            elif media_ref is not None:
                await self._media.delete(media_ref)
        except RemoteDeleteFailed:
            log.error(
                "send_rollback_failed",
                message_id=message_id,
                blob_id=media_ref.blob_id if media_ref else None,
            )

    async def _notify(self, message: Message, recipient_ids: set[str]) -> None:
        try:
            await self._push.notify(
                message.chat_id,
                message.message_id,
                sorted(recipient_ids),
                message.text_body[:MESSAGE_PREVIEW_LENGTH],
            )
        except Exception as e:
            log.warning(
                "push_notify_failed",
                message_id=message.message_id,
                error_type=type(e).__name__,
            )

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
