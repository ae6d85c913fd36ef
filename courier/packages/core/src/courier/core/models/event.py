"""LifecycleEvent 领域模型

远端审计事件表 append-only，不允许更新或删除。
event_id 使用 ULID 格式，时间有序；seq 在同一消息内严格单调递增。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import ActorType, EventType


class LifecycleEvent(BaseModel):
    """消息生命周期事件"""

    event_id: str = Field(description="唯一标识，ULID 格式，时间有序")
    message_id: str = Field(description="关联的消息 ID")
    seq: int = Field(description="消息内序号，严格单调递增")
    ts: datetime = Field(description="事件时间戳")
    type: EventType = Field(description="事件类型")
    actor: ActorType = Field(description="触发者")
    payload: dict[str, Any] = Field(default_factory=dict, description="结构化 payload")
