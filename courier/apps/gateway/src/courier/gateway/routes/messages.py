"""消息路由

GET /api/messages/{message_id}: 本地副本 + 远端生命周期状态（远端仍存在时）。
GET /api/messages/{message_id}/media: 本地缓存的媒体字节。
GET /api/messages/{message_id}/delivery: 送达/已读指示。
POST /api/messages/{message_id}/read: 当前用户已读。
"""

from courier.core.exceptions import NotFound
from fastapi import APIRouter, Depends
from starlette.responses import Response

from ..deps import get_coordinator, get_delivery_tracker, get_document_store, get_local_group

router = APIRouter()


@router.get("/api/messages/{message_id}")
async def get_message(
    message_id: str,
    local_group=Depends(get_local_group),
    document_store=Depends(get_document_store),
):
    local = await local_group.local_store.get(message_id)
    remote = await document_store.get_message(message_id)
    if local is None and remote is None:
        raise NotFound("message", message_id)

    return {
        "message_id": message_id,
        "local": (
            local.model_dump(mode="json", exclude={"cached_media_path"}) if local else None
        ),
        "remote": (
            {
                "lifecycle_state": remote.lifecycle_state.value,
                "version": remote.version,
                "expires_at": remote.expires_at.isoformat(),
                "fully_delivered_at": (
                    remote.fully_delivered_at.isoformat() if remote.fully_delivered_at else None
                ),
                "deleted_at": remote.deleted_at.isoformat() if remote.deleted_at else None,
            }
            if remote
            else None
        ),
    }


@router.get("/api/messages/{message_id}/media")
async def get_message_media(message_id: str, local_group=Depends(get_local_group)):
    record = await local_group.local_store.get(message_id)
    data = await local_group.local_store.read_media(message_id)
    if record is None or data is None:
        raise NotFound("media", message_id)
    mime = record.media_ref.mime if record.media_ref else "application/octet-stream"
    return Response(content=data, media_type=mime)


@router.get("/api/messages/{message_id}/delivery")
async def get_delivery(message_id: str, tracker=Depends(get_delivery_tracker)):
    """送达/已读指示（远端记录不存在时 404）"""
    state = await tracker.get_delivery_state(message_id)
    if state is None:
        raise NotFound("message", message_id)
    entries = sorted(state.values(), key=lambda e: e.recipient_id)
    return {
        "message_id": message_id,
        "fully_delivered": bool(entries) and all(e.delivered for e in entries),
        "recipients": [e.model_dump(mode="json") for e in entries],
    }


@router.post("/api/messages/{message_id}/read")
async def mark_read(message_id: str, coordinator=Depends(get_coordinator)):
    entry = await coordinator.on_message_read(message_id)
    if entry is None:
        raise NotFound("delivery slot", message_id)
    return entry.model_dump(mode="json")
