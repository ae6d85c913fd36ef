"""TraceMiddleware

从路径中提取 message_id / chat_id 绑定到 structlog contextvars，
同一条消息的发送、送达、删除日志可以串起来查。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

_ULID_LENGTH = 26

# 路径段 -> 绑定的上下文字段
_TRACE_SEGMENTS = {"messages": "message_id", "chats": "chat_id"}


class TraceMiddleware(BaseHTTPMiddleware):
    """消息级追踪中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        parts = request.url.path.strip("/").split("/")
        bound = {}
        for i, part in enumerate(parts[:-1]):
            key = _TRACE_SEGMENTS.get(part)
            candidate = parts[i + 1]
            if key and len(candidate) == _ULID_LENGTH:
                bound[key] = candidate

        if bound:
            structlog.contextvars.bind_contextvars(**bound)

        return await call_next(request)
