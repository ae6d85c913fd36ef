"""SSE 消息生命周期流

GET /api/stream/message/{message_id}: 实时推送指定消息的送达/已读/删除进展。
先推送远端审计事件历史，再推送同步流看到的新版本快照；
消息到达 Deleted 时携带 final: true 并结束。支持 Last-Event-ID 断线重连与心跳保活。
"""

import asyncio
import json

from courier.core.config import SSE_HEARTBEAT_INTERVAL
from courier.core.exceptions import NotFound
from courier.core.models import ChangeEvent, LifecycleEvent, LifecycleState
from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from ..deps import get_document_store, get_sse_hub

router = APIRouter()


def _event_to_sse(event: LifecycleEvent) -> dict:
    data = {
        "event_id": event.event_id,
        "message_id": event.message_id,
        "seq": event.seq,
        "ts": event.ts.isoformat(),
        "type": event.type,
        "actor": event.actor,
        "payload": event.payload,
    }
    return {
        "id": event.event_id,
        "event": event.type,
        "data": json.dumps(data, ensure_ascii=False),
    }


def _change_to_sse(change: ChangeEvent) -> dict:
    message = change.message
    is_final = message.lifecycle_state == LifecycleState.DELETED
    data = {
        "message_id": message.message_id,
        "version": message.version,
        "lifecycle_state": message.lifecycle_state.value,
        "delivery": {
            rid: {"delivered": entry.delivered, "read": entry.read}
            for rid, entry in sorted(message.delivery_state.items())
        },
        "final": is_final,
    }
    return {
        "id": f"{message.message_id}:{message.version}",
        "event": "MESSAGE_UPDATED",
        "data": json.dumps(data, ensure_ascii=False),
    }


@router.get("/api/stream/message/{message_id}")
async def stream_message_events(
    message_id: str,
    request: Request,
    document_store=Depends(get_document_store),
    sse_hub=Depends(get_sse_hub),
):
    """SSE 事件流端点

    远端记录不存在时 404；已删除的消息只推送历史后结束。
    """
    message = await document_store.get_message(message_id)
    if message is None:
        raise NotFound("message", message_id)

    last_event_id = request.headers.get("last-event-id")

    async def event_generator():
        # 订阅先于读历史，避免两者之间的变更丢失
        queue = await sse_hub.subscribe(message_id)
        try:
            events = await document_store.list_events(message_id)
            if last_event_id:
                events = [e for e in events if e.event_id > last_event_id]
            for event in events:
                yield _event_to_sse(event)

            if message.lifecycle_state == LifecycleState.DELETED:
                return

            while True:
                try:
                    change = await asyncio.wait_for(queue.get(), timeout=SSE_HEARTBEAT_INTERVAL)
                except TimeoutError:
                    yield {"comment": "heartbeat"}
                    continue
                yield _change_to_sse(change)
                if change.message.lifecycle_state == LifecycleState.DELETED:
                    return
        finally:
            await sse_hub.unsubscribe(message_id, queue)

    return EventSourceResponse(event_generator())
