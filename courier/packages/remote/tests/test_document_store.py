"""SqliteDocumentStore 单元测试

测试内容：
1. 会话与消息的创建 / 查询，重复 ID 报错
2. 送达/已读标记单调合并，fully_delivered_at 记录
3. advance_state compare-and-set 并发只有一个赢家
4. 幂等删除：墓碑内容、blob 入队、事件写入
5. blob 清理队列认领、失败计数与放弃
6. changes_since 变更流与审计事件序号
"""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from courier.core.models import (
    ActorType,
    ChangeType,
    Chat,
    ChatKind,
    DeletionReason,
    EventType,
    LifecycleState,
)
from courier.remote import DuplicateRecordError, SqliteDocumentStore


class TestChats:
    """会话记录"""

    async def test_create_and_get_chat(self, doc_store: SqliteDocumentStore):
        chat = Chat(
            chat_id="01JCHAT_REMOTE_00000000001",
            kind=ChatKind.GROUP,
            participants={"alice", "bob", "carol"},
            created_at=datetime.now(UTC),
        )
        await doc_store.create_chat(chat)
        loaded = await doc_store.get_chat(chat.chat_id)
        assert loaded is not None
        assert loaded.participants == {"alice", "bob", "carol"}
        assert await doc_store.get_chat("missing") is None

    async def test_duplicate_chat_rejected(self, doc_store: SqliteDocumentStore):
        chat = Chat(
            chat_id="c1",
            kind=ChatKind.DIRECT,
            participants={"alice", "bob"},
            created_at=datetime.now(UTC),
        )
        await doc_store.create_chat(chat)
        with pytest.raises(DuplicateRecordError) as exc_info:
            await doc_store.create_chat(chat)
        assert exc_info.value.retryable is False


class TestMessages:
    """消息创建与查询"""

    async def test_create_and_get_message(self, doc_store: SqliteDocumentStore, make_message):
        message = make_message()
        await doc_store.create_message(message)

        loaded = await doc_store.get_message(message.message_id)
        assert loaded is not None
        assert loaded.lifecycle_state == LifecycleState.ACTIVE
        assert loaded.version == 1
        assert loaded.recipient_ids == {"bob", "carol"}
        assert loaded.content.text == "你好"

        events = await doc_store.list_events(message.message_id)
        assert [e.type for e in events] == [EventType.MESSAGE_CREATED]
        assert events[0].payload["recipient_count"] == 2

    async def test_duplicate_message_rejected(
        self, doc_store: SqliteDocumentStore, make_message
    ):
        await doc_store.create_message(make_message())
        with pytest.raises(DuplicateRecordError):
            await doc_store.create_message(make_message())
        # 失败的写入不留下多余事件
        events = await doc_store.list_events("01JMSG_REMOTE_000000000001")
        assert len(events) == 1

    async def test_register_recipients_only_when_empty(
        self, doc_store: SqliteDocumentStore, make_message
    ):
        """槽位在发送时快照，之后不再增删"""
        await doc_store.create_message(make_message(message_id="m-empty", recipients=()))
        assert await doc_store.register_recipients("m-empty", ["bob"]) is True
        assert await doc_store.register_recipients("m-empty", ["dave"]) is False

        loaded = await doc_store.get_message("m-empty")
        assert loaded.recipient_ids == {"bob"}
        assert loaded.version == 2
        assert await doc_store.register_recipients("missing", ["bob"]) is False

    async def test_query_messages_by_expiry(
        self, doc_store: SqliteDocumentStore, make_message
    ):
        now = datetime.now(UTC)
        await doc_store.create_message(
            make_message(message_id="m-old", expires_in=timedelta(seconds=-1))
        )
        await doc_store.create_message(make_message(message_id="m-new"))

        expired = await doc_store.query_messages(
            [LifecycleState.ACTIVE], expires_before=now
        )
        assert [m.message_id for m in expired] == ["m-old"]
        assert await doc_store.query_messages([]) == []


class TestDeliveryMerge:
    """送达/已读标记合并"""

    async def test_merge_is_monotonic(self, doc_store: SqliteDocumentStore, make_message):
        await doc_store.create_message(make_message())
        at = datetime.now(UTC)

        entry = await doc_store.merge_delivery("01JMSG_REMOTE_000000000001", "bob", at)
        assert entry.delivered is True
        assert entry.read is False

        # 重复送达是空操作，不递增版本
        before = await doc_store.get_message("01JMSG_REMOTE_000000000001")
        await doc_store.merge_delivery("01JMSG_REMOTE_000000000001", "bob", at)
        after = await doc_store.get_message("01JMSG_REMOTE_000000000001")
        assert after.version == before.version

        read = await doc_store.merge_delivery(
            "01JMSG_REMOTE_000000000001", "bob", at, read=True
        )
        assert read.read is True
        assert read.delivered_at == entry.delivered_at

        # 乱序的送达回报不会把已读改回去
        again = await doc_store.merge_delivery("01JMSG_REMOTE_000000000001", "bob", at)
        assert again.read is True

    async def test_read_implies_delivered(self, doc_store: SqliteDocumentStore, make_message):
        await doc_store.create_message(make_message())
        entry = await doc_store.merge_delivery(
            "01JMSG_REMOTE_000000000001", "carol", datetime.now(UTC), read=True
        )
        assert entry.delivered is True
        assert entry.read is True

    async def test_unknown_recipient_returns_none(
        self, doc_store: SqliteDocumentStore, make_message
    ):
        await doc_store.create_message(make_message())
        assert (
            await doc_store.merge_delivery("01JMSG_REMOTE_000000000001", "mallory", datetime.now(UTC))
            is None
        )
        assert await doc_store.merge_delivery("missing", "bob", datetime.now(UTC)) is None

    async def test_fully_delivered_at_set_on_last_slot(
        self, doc_store: SqliteDocumentStore, make_message
    ):
        await doc_store.create_message(make_message())
        at = datetime.now(UTC)
        await doc_store.merge_delivery("01JMSG_REMOTE_000000000001", "bob", at)
        partial = await doc_store.get_message("01JMSG_REMOTE_000000000001")
        assert partial.fully_delivered_at is None

        await doc_store.merge_delivery("01JMSG_REMOTE_000000000001", "carol", at)
        full = await doc_store.get_message("01JMSG_REMOTE_000000000001")
        assert full.fully_delivered_at is not None
        assert full.is_fully_delivered() is True

        events = await doc_store.list_events("01JMSG_REMOTE_000000000001")
        assert [e.type for e in events].count(EventType.DELIVERED) == 2
        assert [e.seq for e in events] == list(range(1, len(events) + 1))


class TestAdvanceState:
    """compare-and-set 状态推进"""

    async def test_single_winner(self, doc_store: SqliteDocumentStore, make_message):
        """并发推进只有一个调用方成功"""
        await doc_store.create_message(make_message())
        at = datetime.now(UTC)
        results = await asyncio.gather(
            *[
                doc_store.advance_state(
                    "01JMSG_REMOTE_000000000001",
                    [LifecycleState.ACTIVE],
                    LifecycleState.PENDING_DELETION,
                    at,
                    ActorType.RECIPIENT,
                )
                for _ in range(5)
            ]
        )
        assert results.count(True) == 1
        loaded = await doc_store.get_message("01JMSG_REMOTE_000000000001")
        assert loaded.lifecycle_state == LifecycleState.PENDING_DELETION

    async def test_rejects_backward_transition(
        self, doc_store: SqliteDocumentStore, make_message
    ):
        await doc_store.create_message(make_message())
        at = datetime.now(UTC)
        await doc_store.delete_message("01JMSG_REMOTE_000000000001", DeletionReason.MANUAL, at)
        assert (
            await doc_store.advance_state(
                "01JMSG_REMOTE_000000000001",
                [LifecycleState.DELETED],
                LifecycleState.ACTIVE,
                at,
            )
            is False
        )

    async def test_missing_message(self, doc_store: SqliteDocumentStore):
        assert (
            await doc_store.advance_state(
                "missing",
                [LifecycleState.ACTIVE],
                LifecycleState.PENDING_DELETION,
                datetime.now(UTC),
            )
            is False
        )


class TestDeleteMessage:
    """幂等删除"""

    async def test_delete_tombstones_and_queues_blob(
        self, doc_store: SqliteDocumentStore, make_message
    ):
        await doc_store.create_message(make_message(with_media=True))
        outcome = await doc_store.delete_message(
            "01JMSG_REMOTE_000000000001",
            DeletionReason.ACKNOWLEDGED,
            datetime.now(UTC),
            ActorType.GRACE_TIMER,
        )
        assert outcome.found is True
        assert outcome.transitioned is True
        assert outcome.media_ref.blob_id == "blob-01JMSG_REMOTE_000000000001"

        loaded = await doc_store.get_message("01JMSG_REMOTE_000000000001")
        assert loaded.lifecycle_state == LifecycleState.DELETED
        assert loaded.media_ref is None
        assert loaded.text_body == ""
        assert loaded.content.caption == ""
        assert loaded.content.mime == "image/png"
        assert loaded.deleted_at is not None

        # 删除方已认领，sweep 在认领过期前看不到这条
        assert await doc_store.pending_blob_cleanups() == []
        pending = await doc_store.pending_blob_cleanups(
            stale_before=datetime.now(UTC) + timedelta(seconds=1)
        )
        assert [c.blob_id for c in pending] == ["blob-01JMSG_REMOTE_000000000001"]

        last = (await doc_store.list_events("01JMSG_REMOTE_000000000001"))[-1]
        assert last.type == EventType.STATE_TRANSITION
        assert last.actor == ActorType.GRACE_TIMER
        assert last.payload["reason"] == DeletionReason.ACKNOWLEDGED

    async def test_delete_is_idempotent(self, doc_store: SqliteDocumentStore, make_message):
        await doc_store.create_message(make_message())
        at = datetime.now(UTC)
        first = await doc_store.delete_message("01JMSG_REMOTE_000000000001", DeletionReason.MANUAL, at)
        second = await doc_store.delete_message(
            "01JMSG_REMOTE_000000000001", DeletionReason.EXPIRED, at
        )
        assert first.transitioned is True
        assert second.found is True
        assert second.transitioned is False

        missing = await doc_store.delete_message("missing", DeletionReason.MANUAL, at)
        assert missing.found is False

    async def test_concurrent_delete_single_transition(
        self, doc_store: SqliteDocumentStore, make_message
    ):
        await doc_store.create_message(make_message(with_media=True))
        at = datetime.now(UTC)
        outcomes = await asyncio.gather(
            *[
                doc_store.delete_message("01JMSG_REMOTE_000000000001", DeletionReason.EXPIRED, at)
                for _ in range(4)
            ]
        )
        assert sum(o.transitioned for o in outcomes) == 1
        assert len(await doc_store.pending_blob_cleanups(stale_before=at + timedelta(seconds=1))) == 1

    async def test_delete_rereads_after_concurrent_transition(
        self, doc_store: SqliteDocumentStore, make_message, monkeypatch
    ):
        """读到 Active 后另一进程推进到 PendingDeletion，条件更新落空时重读再删"""
        await doc_store.create_message(make_message())
        at = datetime.now(UTC)
        await doc_store.advance_state(
            "01JMSG_REMOTE_000000000001",
            [LifecycleState.ACTIVE],
            LifecycleState.PENDING_DELETION,
            at,
        )

        real_snapshot = doc_store._deletion_snapshot
        calls = []

        async def stale_first(message_id):
            row = await real_snapshot(message_id)
            calls.append(row[0])
            if len(calls) == 1:
                return (LifecycleState.ACTIVE.value, *row[1:])
            return row

        monkeypatch.setattr(doc_store, "_deletion_snapshot", stale_first)
        outcome = await doc_store.delete_message(
            "01JMSG_REMOTE_000000000001", DeletionReason.EXPIRED, at
        )

        assert outcome.transitioned is True
        assert len(calls) == 2
        loaded = await doc_store.get_message("01JMSG_REMOTE_000000000001")
        assert loaded.lifecycle_state == LifecycleState.DELETED
        last = (await doc_store.list_events("01JMSG_REMOTE_000000000001"))[-1]
        assert last.payload["from_state"] == LifecycleState.PENDING_DELETION


class TestBlobCleanupQueue:
    """blob 清理队列"""

    async def test_fail_then_abandon(self, doc_store: SqliteDocumentStore, make_message):
        await doc_store.create_message(make_message(with_media=True))
        at = datetime.now(UTC)
        await doc_store.delete_message("01JMSG_REMOTE_000000000001", DeletionReason.MANUAL, at)
        blob_id = "blob-01JMSG_REMOTE_000000000001"

        first = await doc_store.fail_blob_cleanup(blob_id, "BlobStoreError", 2, at)
        assert first.attempts == 1
        assert first.abandoned is False
        assert (await doc_store.pending_blob_cleanups())[0].last_error == "BlobStoreError"

        second = await doc_store.fail_blob_cleanup(blob_id, "BlobStoreError", 2, at)
        assert second.abandoned is True
        assert await doc_store.pending_blob_cleanups() == []

        types = [e.type for e in await doc_store.list_events("01JMSG_REMOTE_000000000001")]
        assert EventType.BLOB_CLEANUP_FAILED in types
        assert types[-1] == EventType.BLOB_CLEANUP_ABANDONED

    async def test_deleter_holds_claim_until_stale(
        self, doc_store: SqliteDocumentStore, make_message
    ):
        await doc_store.create_message(make_message(with_media=True))
        at = datetime.now(UTC)
        await doc_store.delete_message("01JMSG_REMOTE_000000000001", DeletionReason.MANUAL, at)
        blob_id = "blob-01JMSG_REMOTE_000000000001"

        # 认领未过期：其他调用方认领失败
        assert await doc_store.claim_blob_cleanup(blob_id, at, stale_before=at) is False
        # 认领过期（删除方失联）：可被接管，且只有一个接管者
        later = at + timedelta(minutes=10)
        stale = at + timedelta(minutes=5)
        assert await doc_store.claim_blob_cleanup(blob_id, later, stale_before=stale) is True
        assert await doc_store.claim_blob_cleanup(blob_id, later, stale_before=stale) is False

    async def test_failure_releases_claim(self, doc_store: SqliteDocumentStore, make_message):
        await doc_store.create_message(make_message(with_media=True))
        at = datetime.now(UTC)
        await doc_store.delete_message("01JMSG_REMOTE_000000000001", DeletionReason.MANUAL, at)
        blob_id = "blob-01JMSG_REMOTE_000000000001"

        await doc_store.fail_blob_cleanup(blob_id, "BlobStoreError", 5, at)
        assert [c.blob_id for c in await doc_store.pending_blob_cleanups()] == [blob_id]
        assert await doc_store.claim_blob_cleanup(blob_id, at, stale_before=at) is True
        assert await doc_store.pending_blob_cleanups() == []

    async def test_complete_removes_entry(self, doc_store: SqliteDocumentStore, make_message):
        await doc_store.create_message(make_message(with_media=True))
        await doc_store.delete_message(
            "01JMSG_REMOTE_000000000001", DeletionReason.MANUAL, datetime.now(UTC)
        )
        await doc_store.complete_blob_cleanup("blob-01JMSG_REMOTE_000000000001")
        await doc_store.complete_blob_cleanup("blob-01JMSG_REMOTE_000000000001")
        assert await doc_store.pending_blob_cleanups() == []
        assert (
            await doc_store.fail_blob_cleanup("blob-01JMSG_REMOTE_000000000001", "x", 3, datetime.now(UTC))
            is None
        )


class TestChangesSince:
    """变更流"""

    async def test_every_mutation_advances_cursor(
        self, doc_store: SqliteDocumentStore, make_message
    ):
        await doc_store.create_message(make_message(message_id="m1"))
        await doc_store.create_message(make_message(message_id="m2"))
        changes = await doc_store.changes_since(0)
        assert [c.message.message_id for c in changes] == ["m1", "m2"]
        cursor = changes[-1].cursor

        await doc_store.merge_delivery("m1", "bob", datetime.now(UTC))
        later = await doc_store.changes_since(cursor)
        assert [c.message.message_id for c in later] == ["m1"]
        assert later[0].version == 2
        assert later[0].change_type == ChangeType.UPSERT

        await doc_store.delete_message("m1", DeletionReason.MANUAL, datetime.now(UTC))
        deleted = await doc_store.changes_since(later[0].cursor)
        assert deleted[0].change_type == ChangeType.DELETED

    async def test_limit(self, doc_store: SqliteDocumentStore, make_message):
        for i in range(3):
            await doc_store.create_message(make_message(message_id=f"m{i}"))
        assert len(await doc_store.changes_since(0, limit=2)) == 2
