"""枚举定义 -- 消息内容类型、生命周期状态机、事件类型

包含 LifecycleState 状态机（只能前进：Active -> PendingDeletion -> Deleted），
以及 VALID_TRANSITIONS 合法流转映射和 TERMINAL_STATES 终态集合。
"""

from enum import StrEnum


class ContentType(StrEnum):
    """消息内容类型（tagged variant 的判别字段）"""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"


MEDIA_CONTENT_TYPES: frozenset[ContentType] = frozenset(
    {
        ContentType.IMAGE,
        ContentType.VIDEO,
        ContentType.AUDIO,
        ContentType.DOCUMENT,
    }
)


class LifecycleState(StrEnum):
    """远端消息生命周期状态"""

    ACTIVE = "ACTIVE"
    PENDING_DELETION = "PENDING_DELETION"
    DELETED = "DELETED"


# 合法状态流转：只前进，不回退
VALID_TRANSITIONS: dict[LifecycleState, set[LifecycleState]] = {
    LifecycleState.ACTIVE: {
        LifecycleState.PENDING_DELETION,
        LifecycleState.DELETED,
    },
    LifecycleState.PENDING_DELETION: {LifecycleState.DELETED},
    # 终态不可再流转
    LifecycleState.DELETED: set(),
}

TERMINAL_STATES: set[LifecycleState] = {LifecycleState.DELETED}

# 可被删除的状态（ExpirationScheduler 与宽限计时器共用）
DELETABLE_STATES: tuple[LifecycleState, ...] = (
    LifecycleState.ACTIVE,
    LifecycleState.PENDING_DELETION,
)


class ChatKind(StrEnum):
    """会话类型"""

    DIRECT = "direct"
    GROUP = "group"


class Provenance(StrEnum):
    """本地副本来源"""

    SENT_BY_ME = "sent_by_me"
    RECEIVED_FROM = "received_from"


class ChangeType(StrEnum):
    """同步流变更类型"""

    UPSERT = "upsert"
    DELETED = "deleted"


class EventType(StrEnum):
    """生命周期审计事件类型"""

    MESSAGE_CREATED = "MESSAGE_CREATED"
    DELIVERED = "DELIVERED"
    READ = "READ"
    STATE_TRANSITION = "STATE_TRANSITION"
    BLOB_CLEANUP_FAILED = "BLOB_CLEANUP_FAILED"
    BLOB_CLEANUP_ABANDONED = "BLOB_CLEANUP_ABANDONED"


class ActorType(StrEnum):
    """触发者类型"""

    SENDER = "sender"
    RECIPIENT = "recipient"
    GRACE_TIMER = "grace_timer"
    SCHEDULER = "scheduler"
    SYSTEM = "system"


class DeletionReason(StrEnum):
    """删除原因"""

    ACKNOWLEDGED = "acknowledged"
    EXPIRED = "expired"
    MANUAL = "manual"


def validate_transition(from_state: LifecycleState, to_state: LifecycleState) -> bool:
    """验证状态流转是否合法

    Args:
        from_state: 当前状态
        to_state: 目标状态

    Returns:
        True 如果流转合法，否则 False
    """
    allowed = VALID_TRANSITIONS.get(from_state, set())
    return to_state in allowed
