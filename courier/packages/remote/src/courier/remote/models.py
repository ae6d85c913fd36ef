"""远端适配器数据模型"""

from datetime import datetime

from courier.core.models import MediaBlobRef
from pydantic import BaseModel, Field


class BlobCleanup(BaseModel):
    """待清理的 blob（消息已 Deleted，blob 删除尚未成功）"""

    blob_id: str
    message_id: str
    ref: MediaBlobRef
    attempts: int = Field(default=0, ge=0)
    last_error: str = ""
    queued_at: datetime


class BlobCleanupFailure(BaseModel):
    """一次 blob 清理失败后的状态"""

    blob_id: str
    attempts: int
    abandoned: bool
