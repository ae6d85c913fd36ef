"""操作结果模型"""

from datetime import datetime

from pydantic import BaseModel, Field

from .message import MediaBlobRef


class SendResult(BaseModel):
    """send_message 成功结果"""

    message_id: str
    chat_id: str
    expires_at: datetime
    recipient_count: int
    media_ref: MediaBlobRef | None = None


class DeleteOutcome(BaseModel):
    """幂等删除结果

    found=False 或 transitioned=False 都视为成功（已删除 / 不存在）。
    media_ref 仅在本次调用赢得 Deleted 流转时返回，用于清理 blob。
    """

    message_id: str
    found: bool = False
    transitioned: bool = False
    media_ref: MediaBlobRef | None = None


class SweepReport(BaseModel):
    """一次过期清理的统计"""

    started_at: datetime
    finished_at: datetime | None = None
    expired_deleted: int = 0
    grace_deleted: int = 0
    already_deleted: int = 0
    failed: int = 0
    blobs_cleaned: int = 0
    blobs_failed: int = 0
    blobs_abandoned: int = 0
    failed_message_ids: list[str] = Field(default_factory=list)

    @property
    def deleted(self) -> int:
        return self.expired_deleted + self.grace_deleted
