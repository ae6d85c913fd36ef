"""Courier Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .content import (
    AudioContent,
    DocumentContent,
    ImageContent,
    MessageContent,
    TextContent,
    VideoContent,
    content_mime,
    content_type_of,
    is_media,
    redacted,
    summary_text,
)
from .enums import (
    DELETABLE_STATES,
    MEDIA_CONTENT_TYPES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    ActorType,
    ChangeType,
    ChatKind,
    ContentType,
    DeletionReason,
    EventType,
    LifecycleState,
    Provenance,
    validate_transition,
)
from .event import LifecycleEvent
from .message import (
    ChangeEvent,
    Chat,
    DeliveryEntry,
    LocalMessageRecord,
    MediaBlobRef,
    Message,
)
from .payloads import (
    BlobCleanupPayload,
    DeliveryPayload,
    MessageCreatedPayload,
    StateTransitionPayload,
)
from .results import DeleteOutcome, SendResult, SweepReport

__all__ = [
    # 枚举
    "ContentType",
    "LifecycleState",
    "ChatKind",
    "Provenance",
    "ChangeType",
    "EventType",
    "ActorType",
    "DeletionReason",
    "MEDIA_CONTENT_TYPES",
    # 状态机
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "DELETABLE_STATES",
    "validate_transition",
    # 内容
    "MessageContent",
    "TextContent",
    "ImageContent",
    "VideoContent",
    "AudioContent",
    "DocumentContent",
    "content_mime",
    "content_type_of",
    "is_media",
    "redacted",
    "summary_text",
    # 消息
    "Message",
    "Chat",
    "DeliveryEntry",
    "MediaBlobRef",
    "LocalMessageRecord",
    "ChangeEvent",
    # 事件
    "LifecycleEvent",
    "MessageCreatedPayload",
    "DeliveryPayload",
    "StateTransitionPayload",
    "BlobCleanupPayload",
    # 结果
    "SendResult",
    "DeleteOutcome",
    "SweepReport",
]
