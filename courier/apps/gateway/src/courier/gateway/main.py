"""FastAPI 应用主文件

app 创建 + lifespan 管理：
本地库 / 远端文档库 / blob 存储初始化 -> 生命周期服务装配 -> 后台任务启停 -> 路由注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from courier.core.config import (
    get_blob_dir,
    get_device_identity,
    get_local_db_path,
    get_media_cache_dir,
    get_remote_db_path,
    load_lifecycle_config,
)
from courier.core.store import create_local_store
from courier.remote import (
    BlobStore,
    FileSystemBlobStore,
    HttpBlobStore,
    NullPushNotifier,
    PollingChangeFeed,
    PushNotifier,
    RemoteConfig,
    WebhookPushNotifier,
    create_document_store,
    load_remote_config,
)
from fastapi import FastAPI

from .errors import register_error_handlers
from .middleware.logging_config import bind_device_context, setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import chats, health, maintenance, messages, stream
from .services.change_consumer import ChangeConsumer
from .services.coordinator import MessageLifecycleCoordinator
from .services.delivery_tracker import DeliveryTracker
from .services.expiration_scheduler import ExpirationScheduler, LocalRetentionSweeper
from .services.media_manager import MediaBlobManager
from .services.sse_hub import SSEHub

log = structlog.get_logger()


def create_blob_store(remote_config: RemoteConfig, upload_timeout_s: float) -> BlobStore:
    """按配置选择 blob 存储后端"""
    if remote_config.blob_backend == "http":
        return HttpBlobStore(
            base_url=remote_config.blob_base_url,
            token=remote_config.blob_token.get_secret_value(),
            timeout_s=upload_timeout_s,
        )
    return FileSystemBlobStore(get_blob_dir())


def create_push_notifier(remote_config: RemoteConfig) -> PushNotifier:
    if remote_config.push_webhook_url:
        return WebhookPushNotifier(remote_config.push_webhook_url)
    return NullPushNotifier()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时装配服务并启动后台任务，关闭时逆序清理"""
    device_id, user_id = get_device_identity()
    bind_device_context(device_id, user_id)
    lifecycle_config = load_lifecycle_config()
    remote_config = load_remote_config()

    local_group = await create_local_store(get_local_db_path(), get_media_cache_dir(), device_id)
    document_store = await create_document_store(get_remote_db_path())
    blob_store = create_blob_store(remote_config, lifecycle_config.upload_timeout_s)
    push_notifier = create_push_notifier(remote_config)

    media_manager = MediaBlobManager(
        blob_store,
        upload_timeout_s=lifecycle_config.upload_timeout_s,
        delete_timeout_s=lifecycle_config.metadata_timeout_s,
    )
    delivery_tracker = DeliveryTracker(
        document_store, timeout_s=lifecycle_config.metadata_timeout_s
    )
    coordinator = MessageLifecycleCoordinator(
        device_id=device_id,
        user_id=user_id,
        document_store=document_store,
        local_store=local_group.local_store,
        media_manager=media_manager,
        delivery_tracker=delivery_tracker,
        push_notifier=push_notifier,
        config=lifecycle_config,
    )
    scheduler = ExpirationScheduler(coordinator, document_store, media_manager, lifecycle_config)
    retention_sweeper = LocalRetentionSweeper(
        local_group.local_store,
        retention_days=lifecycle_config.local_retention_days,
        interval_s=lifecycle_config.local_sweep_interval_s,
    )
    sse_hub = SSEHub()
    change_consumer = ChangeConsumer(
        PollingChangeFeed(document_store, interval_s=remote_config.sync_poll_interval_s),
        coordinator,
        hub=sse_hub,
    )

    app.state.device_id = device_id
    app.state.local_group = local_group
    app.state.document_store = document_store
    app.state.media_manager = media_manager
    app.state.delivery_tracker = delivery_tracker
    app.state.coordinator = coordinator
    app.state.scheduler = scheduler
    app.state.retention_sweeper = retention_sweeper
    app.state.change_consumer = change_consumer
    app.state.sse_hub = sse_hub

    scheduler.start()
    retention_sweeper.start()
    change_consumer.start()
    log.info(
        "courier_node_started",
        blob_backend=remote_config.blob_backend,
        grace_window_s=lifecycle_config.grace_window_s,
        sweep_interval_s=lifecycle_config.sweep_interval_s,
    )

    yield

    await change_consumer.stop()
    await retention_sweeper.stop()
    await scheduler.stop()
    await coordinator.close()
    for client in (blob_store, push_notifier):
        if isinstance(client, (HttpBlobStore, WebhookPushNotifier)):
            await client.close()
    await document_store.close()
    await local_group.close()
    log.info("courier_node_stopped")


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="Courier Gateway",
        version="0.1.0",
        description="消息生命周期节点 API（每台设备一个实例）",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    setup_logging()
    setup_logfire(app)

    register_error_handlers(app)

    app.include_router(chats.router, tags=["chats"])
    app.include_router(messages.router, tags=["messages"])
    app.include_router(maintenance.router, tags=["maintenance"])
    app.include_router(stream.router, tags=["stream"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
