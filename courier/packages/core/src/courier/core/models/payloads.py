"""LifecycleEvent payload 子类型"""

from pydantic import BaseModel, Field

from .enums import ContentType, DeletionReason, LifecycleState


class MessageCreatedPayload(BaseModel):
    """MESSAGE_CREATED 事件 payload"""

    chat_id: str
    sender_id: str
    content_type: ContentType
    recipient_count: int
    has_media: bool = False


class DeliveryPayload(BaseModel):
    """DELIVERED / READ 事件 payload"""

    recipient_id: str


class StateTransitionPayload(BaseModel):
    """STATE_TRANSITION 事件 payload"""

    from_state: LifecycleState
    to_state: LifecycleState
    reason: DeletionReason | None = None


class BlobCleanupPayload(BaseModel):
    """BLOB_CLEANUP_FAILED / BLOB_CLEANUP_ABANDONED 事件 payload"""

    blob_id: str
    attempts: int
    error: str = Field(default="", description="错误类型，不含底层细节")
