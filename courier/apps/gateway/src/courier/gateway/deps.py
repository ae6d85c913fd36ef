"""依赖注入模块 -- 通过 FastAPI Depends 注入服务实例

服务实例通过 app.state 管理，在 lifespan 中初始化/清理。
"""

from courier.core.store import LocalStoreGroup
from courier.remote import DocumentStore
from fastapi import Request

from .services.coordinator import MessageLifecycleCoordinator
from .services.delivery_tracker import DeliveryTracker
from .services.expiration_scheduler import ExpirationScheduler
from .services.sse_hub import SSEHub


def get_local_group(request: Request) -> LocalStoreGroup:
    """从 app.state 获取本地 Store 实例组"""
    return request.app.state.local_group


def get_document_store(request: Request) -> DocumentStore:
    return request.app.state.document_store


def get_coordinator(request: Request) -> MessageLifecycleCoordinator:
    return request.app.state.coordinator


def get_delivery_tracker(request: Request) -> DeliveryTracker:
    return request.app.state.delivery_tracker


def get_scheduler(request: Request) -> ExpirationScheduler:
    return request.app.state.scheduler


def get_sse_hub(request: Request) -> SSEHub:
    return request.app.state.sse_hub
