"""集成测试共享 fixture -- 多用户、多设备共享同一远端"""

import asyncio
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest_asyncio
from courier.core.config import LifecycleConfig
from courier.core.store import LocalStoreGroup, create_local_store
from courier.gateway.services.coordinator import MessageLifecycleCoordinator
from courier.gateway.services.delivery_tracker import DeliveryTracker
from courier.gateway.services.expiration_scheduler import ExpirationScheduler
from courier.gateway.services.media_manager import MediaBlobManager
from courier.remote import (
    BlobStore,
    FileSystemBlobStore,
    SqliteDocumentStore,
    create_document_store,
)


class Device:
    """一台设备：本地库 + 生命周期服务"""

    def __init__(
        self,
        coordinator: MessageLifecycleCoordinator,
        local_group: LocalStoreGroup,
        media_manager: MediaBlobManager,
    ) -> None:
        self.coordinator = coordinator
        self.local_group = local_group
        self.media_manager = media_manager

    @property
    def local_store(self):
        return self.local_group.local_store

    async def close(self) -> None:
        await self.coordinator.close()
        await self.local_group.close()


class Cluster:
    """共享远端文档库 + blob 存储，设备按需加入"""

    def __init__(self, root: Path, document_store: SqliteDocumentStore, config: LifecycleConfig):
        self.root = root
        self.document_store = document_store
        self.blob_store = FileSystemBlobStore(root / "remote" / "blobs")
        self.config = config
        self.devices: list[Device] = []

    async def add_device(
        self,
        user_id: str,
        device_id: str | None = None,
        blob_store: BlobStore | None = None,
        config: LifecycleConfig | None = None,
    ) -> Device:
        device_id = device_id or f"{user_id}-phone"
        device_dir = self.root / "devices" / device_id
        group = await create_local_store(
            str(device_dir / "messages.db"), device_dir / "media", device_id
        )
        media_manager = MediaBlobManager(blob_store or self.blob_store)
        coordinator = MessageLifecycleCoordinator(
            device_id=device_id,
            user_id=user_id,
            document_store=self.document_store,
            local_store=group.local_store,
            media_manager=media_manager,
            delivery_tracker=DeliveryTracker(self.document_store),
            config=config or self.config,
        )
        device = Device(coordinator, group, media_manager)
        self.devices.append(device)
        return device

    def scheduler(self, device: Device) -> ExpirationScheduler:
        return ExpirationScheduler(
            device.coordinator, self.document_store, device.media_manager, device.coordinator.config
        )

    async def sync(self, *devices: Device) -> None:
        """把当前全部远端变更投递给指定设备"""
        changes = await self.document_store.changes_since(0, limit=1000)
        for device in devices:
            for change in changes:
                await device.coordinator.on_message_received(change)

    def blob_files(self) -> list[Path]:
        root = self.blob_store.root
        if not root.exists():
            return []
        return [p for p in root.rglob("*") if p.is_file()]

    async def wait_for_state(self, message_id: str, state, timeout: float = 3.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            message = await self.document_store.get_message(message_id)
            if message is not None and message.lifecycle_state == state:
                return message
            if loop.time() > deadline:
                raise AssertionError(f"{message_id} did not reach {state}")
            await asyncio.sleep(0.01)


@pytest_asyncio.fixture
async def cluster(tmp_data_dir: Path) -> AsyncGenerator[Cluster, None]:
    document_store = await create_document_store(str(tmp_data_dir / "remote" / "documents.db"))
    config = LifecycleConfig(grace_window_s=0.2, delete_retry_backoff_s=0)
    c = Cluster(tmp_data_dir, document_store, config)
    yield c
    for device in c.devices:
        await device.close()
    await document_store.close()
