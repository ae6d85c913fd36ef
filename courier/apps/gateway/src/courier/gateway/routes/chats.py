"""会话路由

POST /api/chats: 创建会话（当前设备用户自动加入）。
POST /api/chats/{chat_id}/messages: 发送消息，媒体字节以 base64 放在 payload_b64。
GET /api/chats/{chat_id}/messages: 本地历史（远端删除后仍可读）。
"""

import base64
import binascii
from datetime import timedelta

from courier.core.models import ChatKind, MessageContent
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from ..deps import get_coordinator, get_local_group

router = APIRouter()


class CreateChatRequest(BaseModel):
    """创建会话请求体"""

    participants: list[str] = Field(min_length=1, description="除自己以外的成员")
    kind: ChatKind | None = Field(default=None, description="不填时按人数推断")


class SendMessageRequest(BaseModel):
    """发送消息请求体"""

    content: MessageContent
    recipients: list[str] | None = Field(default=None, description="不填时取会话全体成员")
    payload_b64: str | None = Field(default=None, description="媒体字节（base64）")
    ttl_s: float | None = Field(default=None, gt=0, description="远端保留时长（秒）")


@router.post("/api/chats")
async def create_chat(body: CreateChatRequest, coordinator=Depends(get_coordinator)):
    chat = await coordinator.create_chat(body.participants, body.kind)
    return JSONResponse(
        status_code=201,
        content={
            "chat_id": chat.chat_id,
            "kind": chat.kind.value,
            "participants": sorted(chat.participants),
            "created_at": chat.created_at.isoformat(),
        },
    )


@router.post("/api/chats/{chat_id}/messages")
async def send_message(
    chat_id: str,
    body: SendMessageRequest,
    coordinator=Depends(get_coordinator),
):
    """发送消息

    - 201: 远端记录与发送方本地副本都已持久化
    - 502 / 503 / 507: 发送失败，error.retryable 指示能否重试
    """
    payload = None
    if body.payload_b64 is not None:
        try:
            payload = base64.b64decode(body.payload_b64, validate=True)
        except binascii.Error as e:
            raise ValueError(f"payload_b64 is not valid base64: {e}") from e

    result = await coordinator.send_message(
        body.content,
        chat_id,
        recipients=body.recipients,
        payload=payload,
        ttl=timedelta(seconds=body.ttl_s) if body.ttl_s else None,
    )
    return JSONResponse(status_code=201, content=result.model_dump(mode="json"))


@router.get("/api/chats/{chat_id}/messages")
async def list_chat_messages(
    chat_id: str,
    limit: int | None = Query(default=None, ge=1, le=1000, description="最近 N 条"),
    local_group=Depends(get_local_group),
):
    """读取本设备的会话历史，按 created_at 正序"""
    records = await local_group.local_store.query(chat_id, limit=limit)
    return {
        "chat_id": chat_id,
        "messages": [
            {
                **record.model_dump(mode="json", exclude={"cached_media_path"}),
                "has_cached_media": record.cached_media_path is not None,
            }
            for record in records
        ],
    }
