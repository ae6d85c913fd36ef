"""apps/gateway 测试配置 -- 共享远端 + 多设备节点 fixture

所有设备共用一个远端文档库与 blob 存储，每台设备有独立的本地库。
"""

import asyncio
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from pathlib import Path

import pytest
import pytest_asyncio
from courier.core.config import LifecycleConfig
from courier.core.store import LocalStoreGroup, create_local_store
from courier.gateway.services.coordinator import MessageLifecycleCoordinator
from courier.gateway.services.delivery_tracker import DeliveryTracker
from courier.gateway.services.media_manager import MediaBlobManager
from courier.remote import (
    BlobStore,
    FileSystemBlobStore,
    PushNotifier,
    SqliteDocumentStore,
    create_document_store,
)


@dataclass
class Node:
    """一台设备上的服务组合"""

    coordinator: MessageLifecycleCoordinator
    local_group: LocalStoreGroup
    media_manager: MediaBlobManager
    delivery_tracker: DeliveryTracker

    @property
    def local_store(self):
        return self.local_group.local_store


@pytest.fixture
def lifecycle_config() -> LifecycleConfig:
    """测试用短宽限期配置"""
    return LifecycleConfig(
        grace_window_s=0.2,
        metadata_timeout_s=5,
        upload_timeout_s=5,
        delete_retry_backoff_s=0,
    )


@pytest_asyncio.fixture
async def doc_store(tmp_path: Path) -> AsyncGenerator[SqliteDocumentStore, None]:
    store = await create_document_store(str(tmp_path / "remote" / "documents.db"))
    yield store
    await store.close()


@pytest.fixture
def blob_store(tmp_path: Path) -> FileSystemBlobStore:
    return FileSystemBlobStore(tmp_path / "remote" / "blobs")


@pytest_asyncio.fixture
async def make_node(
    tmp_path: Path,
    doc_store: SqliteDocumentStore,
    blob_store: FileSystemBlobStore,
    lifecycle_config: LifecycleConfig,
):
    """创建设备节点的工厂，测试结束时统一关闭"""
    nodes: list[Node] = []

    async def _make(
        user_id: str,
        device_id: str | None = None,
        config: LifecycleConfig | None = None,
        push_notifier: PushNotifier | None = None,
        blob: BlobStore | None = None,
    ) -> Node:
        device_id = device_id or f"{user_id}-phone"
        device_dir = tmp_path / "devices" / device_id
        group = await create_local_store(
            str(device_dir / "messages.db"), device_dir / "media", device_id
        )
        media_manager = MediaBlobManager(blob or blob_store, upload_timeout_s=5, delete_timeout_s=5)
        tracker = DeliveryTracker(doc_store, timeout_s=5)
        coordinator = MessageLifecycleCoordinator(
            device_id=device_id,
            user_id=user_id,
            document_store=doc_store,
            local_store=group.local_store,
            media_manager=media_manager,
            delivery_tracker=tracker,
            push_notifier=push_notifier,
            config=config or lifecycle_config,
        )
        node = Node(coordinator, group, media_manager, tracker)
        nodes.append(node)
        return node

    yield _make

    for node in nodes:
        await node.coordinator.close()
        await node.local_group.close()


@pytest.fixture
def sync_nodes(doc_store: SqliteDocumentStore):
    """把远端当前全部变更投递给各节点（同步流的确定性替身）"""

    async def _sync(*nodes: Node) -> None:
        changes = await doc_store.changes_since(0, limit=1000)
        for node in nodes:
            for change in changes:
                await node.coordinator.on_message_received(change)

    return _sync


@pytest.fixture
def wait_for_state(doc_store: SqliteDocumentStore):
    """轮询等待远端消息到达指定状态"""

    async def _wait(message_id: str, state, timeout: float = 2.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            message = await doc_store.get_message(message_id)
            if message is not None and message.lifecycle_state == state:
                return message
            if loop.time() > deadline:
                raise AssertionError(
                    f"{message_id} did not reach {state}: "
                    f"{message.lifecycle_state if message else None}"
                )
            await asyncio.sleep(0.01)

    return _wait
