"""PushNotifier -- 推送通知适配器

推送是尽力而为：调用方不等待结果，失败只记录日志。
"""

from typing import Protocol

import httpx
import structlog

log = structlog.get_logger()


class PushNotifier(Protocol):
    """推送通知接口"""

    async def notify(
        self,
        chat_id: str,
        message_id: str,
        recipient_ids: list[str],
        preview: str,
    ) -> None: ...


class NullPushNotifier:
    """不发送任何推送（未配置 webhook 时使用）"""

    async def notify(
        self,
        chat_id: str,
        message_id: str,
        recipient_ids: list[str],
        preview: str,
    ) -> None:
        return None


class WebhookPushNotifier:
    """以 JSON POST 形式投递推送请求"""

    def __init__(
        self,
        url: str,
        timeout_s: float = 5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._client = httpx.AsyncClient(timeout=timeout_s, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    async def notify(
        self,
        chat_id: str,
        message_id: str,
        recipient_ids: list[str],
        preview: str,
    ) -> None:
        resp = await self._client.post(
            self._url,
            json={
                "chat_id": chat_id,
                "message_id": message_id,
                "recipient_ids": sorted(recipient_ids),
                "preview": preview,
            },
        )
        resp.raise_for_status()
        log.debug("push_sent", message_id=message_id, recipients=len(recipient_ids))
