"""Message / Chat / LocalMessageRecord 领域模型

Message 是远端文档库中的共享记录，delivery_state 在发送时按会话成员快照，
之后不再增删槽位；LocalMessageRecord 是设备本地的持久副本，
与远端生命周期完全解耦。
"""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from .content import MessageContent
from .enums import ChangeType, ChatKind, LifecycleState, Provenance


class DeliveryEntry(BaseModel):
    """单个接收者的送达/已读标记（只会 false -> true）"""

    recipient_id: str = Field(description="接收者 ID")
    delivered: bool = Field(default=False)
    read: bool = Field(default=False)
    delivered_at: datetime | None = Field(default=None)
    read_at: datetime | None = Field(default=None)


class MediaBlobRef(BaseModel):
    """媒体 blob 引用"""

    blob_id: str = Field(description="唯一标识，ULID 格式")
    remote_url: str = Field(description="blob 存储地址")
    size_bytes: int = Field(ge=0, description="内容大小（字节）")
    uploaded_at: datetime = Field(description="上传时间")
    mime: str = Field(default="application/octet-stream", description="MIME 类型")
    sha256: str = Field(default="", description="SHA-256 哈希")


class Chat(BaseModel):
    """会话 -- 成员集合在发送时快照进消息"""

    chat_id: str = Field(description="唯一标识，ULID 格式")
    kind: ChatKind = Field(description="direct / group")
    participants: set[str] = Field(description="成员 ID 集合")
    created_at: datetime = Field(description="创建时间")

    @model_validator(mode="after")
    def _check_participants(self) -> "Chat":
        if self.kind == ChatKind.DIRECT and len(self.participants) != 2:
            raise ValueError("direct chat requires exactly two participants")
        if len(self.participants) < 2:
            raise ValueError("chat requires at least two participants")
        return self


class Message(BaseModel):
    """远端消息记录

    version 在每次远端变更时递增，与 message_id 共同作为同步去重键。
    expires_at 一经设置不可修改，是远端保留时长的硬上限。
    """

    message_id: str = Field(description="唯一标识，ULID 格式")
    chat_id: str = Field(description="所属会话 ID")
    sender_id: str = Field(description="发送者 ID")
    content: MessageContent = Field(description="消息内容（tagged variant）")
    text_body: str = Field(default="", description="文本正文 / 媒体说明")
    media_ref: MediaBlobRef | None = Field(default=None, description="媒体 blob 引用")
    created_at: datetime = Field(description="创建时间")
    expires_at: datetime = Field(description="远端保留截止时间")
    delivery_state: dict[str, DeliveryEntry] = Field(
        default_factory=dict,
        description="recipient_id -> 送达/已读标记",
    )
    lifecycle_state: LifecycleState = Field(default=LifecycleState.ACTIVE)
    version: int = Field(default=1, ge=1, description="远端版本号，单调递增")
    fully_delivered_at: datetime | None = Field(default=None)
    deleted_at: datetime | None = Field(default=None)

    @property
    def recipient_ids(self) -> set[str]:
        return set(self.delivery_state)

    def is_fully_delivered(self) -> bool:
        return bool(self.delivery_state) and all(
            entry.delivered for entry in self.delivery_state.values()
        )


class LocalMessageRecord(BaseModel):
    """设备本地消息副本

    只受本地保留策略约束，远端删除仅置 remote_deletion_observed 标记。
    """

    device_id: str = Field(description="设备 ID")
    message_id: str = Field(description="消息 ID")
    chat_id: str = Field(description="所属会话 ID")
    sender_id: str = Field(description="发送者 ID")
    content: MessageContent = Field(description="消息内容副本")
    text_body: str = Field(default="", description="文本正文副本")
    media_ref: MediaBlobRef | None = Field(default=None)
    cached_media_path: str | None = Field(
        default=None,
        description="本地缓存的媒体文件路径",
    )
    created_at: datetime = Field(description="消息创建时间")
    stored_at: datetime = Field(description="本地写入时间")
    provenance: Provenance = Field(description="sent_by_me / received_from")
    remote_deletion_observed: bool = Field(default=False)


class ChangeEvent(BaseModel):
    """同步流中的一条变更（至少一次投递，可能重复）"""

    cursor: int = Field(default=0, description="变更游标")
    change_type: ChangeType = Field(default=ChangeType.UPSERT)
    message: Message = Field(description="变更后的消息快照")

    @property
    def version(self) -> int:
        return self.message.version

    @property
    def dedup_key(self) -> tuple[str, int]:
        return self.message.message_id, self.message.version
