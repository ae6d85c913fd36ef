"""BlobStore -- 媒体 blob 存储适配器

两种实现：
- FileSystemBlobStore: 本地目录，URL 形如 file:///.../<chat_id>/<blob_id>
- HttpBlobStore: 对象存储 HTTP 接口（PUT / GET / DELETE）

delete 对不存在的 blob 视为成功。
"""

import asyncio
from pathlib import Path
from typing import Protocol
from urllib.parse import unquote, urlparse

import httpx
import structlog

from .exceptions import BlobNotFoundError, BlobStoreError, BlobStoreUnreachableError

log = structlog.get_logger()

# 健康检查超时（硬编码，应快速响应）
HEALTH_CHECK_TIMEOUT_S = 5

# 连接类异常类型集合（触发 BlobStoreUnreachableError，可重试）
_CONNECTION_ERROR_TYPES = (
    ConnectionError,
    TimeoutError,
    httpx.ConnectError,
    httpx.ConnectTimeout,
    httpx.TimeoutException,
    httpx.NetworkError,
)


class BlobStore(Protocol):
    """blob 存储接口"""

    async def put(self, key: str, data: bytes, content_type: str) -> str: ...

    async def get(self, url: str) -> bytes: ...

    async def delete(self, url: str) -> None: ...

    async def health_check(self) -> bool: ...


class FileSystemBlobStore:
    """基于本地目录的 blob 存储"""

    def __init__(self, root: Path) -> None:
        self._root = Path(root).resolve()

    @property
    def root(self) -> Path:
        return self._root

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        path = self._key_path(key)
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as e:
            raise BlobStoreError(f"blob write failed: {key}: {e}") from e
        log.debug("blob_stored", key=key, size=len(data), content_type=content_type)
        return path.as_uri()

    async def get(self, url: str) -> bytes:
        path = self._url_path(url)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as e:
            raise BlobNotFoundError(url) from e
        except OSError as e:
            raise BlobStoreError(f"blob read failed: {url}: {e}") from e

    async def delete(self, url: str) -> None:
        path = self._url_path(url)
        try:
            await asyncio.to_thread(path.unlink, True)
        except OSError as e:
            raise BlobStoreError(f"blob delete failed: {url}: {e}") from e

    async def health_check(self) -> bool:
        return self._root.is_dir() or not self._root.exists()

    def _key_path(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if not path.is_relative_to(self._root):
            raise BlobStoreError(f"blob key escapes store root: {key}", retryable=False)
        return path

    def _url_path(self, url: str) -> Path:
        parsed = urlparse(url)
        if parsed.scheme != "file":
            raise BlobStoreError(f"unsupported blob url: {url}", retryable=False)
        path = Path(unquote(parsed.path)).resolve()
        if not path.is_relative_to(self._root):
            raise BlobStoreError(f"blob url outside store root: {url}", retryable=False)
        return path

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".part")
        tmp.write_bytes(data)
        tmp.replace(path)


class HttpBlobStore:
    """对象存储 HTTP 客户端

    PUT {base_url}/{key} 上传，返回的 URL 即对象地址；GET / DELETE 直接作用于该地址。
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout_s: float = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Args:
            base_url: 对象存储基础 URL
            token: Bearer 访问令牌（可为空）
            timeout_s: 单次请求超时（秒）
            transport: 自定义 httpx transport（测试注入 MockTransport）
        """
        self._base_url = base_url.rstrip("/")
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(
            headers=headers,
            timeout=timeout_s,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        url = f"{self._base_url}/{key.lstrip('/')}"
        resp = await self._request("PUT", url, content=data, headers={"Content-Type": content_type})
        self._raise_for_status(resp, url)
        log.debug("blob_uploaded", url=url, size=len(data))
        return url

    async def get(self, url: str) -> bytes:
        resp = await self._request("GET", url)
        if resp.status_code == 404:
            raise BlobNotFoundError(url)
        self._raise_for_status(resp, url)
        return resp.content

    async def delete(self, url: str) -> None:
        resp = await self._request("DELETE", url)
        if resp.status_code == 404:
            log.debug("blob_already_absent", url=url)
            return
        self._raise_for_status(resp, url)

    async def health_check(self) -> bool:
        """检查对象存储可达性（不抛异常）"""
        try:
            resp = await self._client.get(f"{self._base_url}/", timeout=HEALTH_CHECK_TIMEOUT_S)
            return resp.status_code < 500
        except httpx.HTTPError as e:
            log.debug("blob_health_check_failed", url=self._base_url, error=str(e))
            return False

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, url, **kwargs)
        except _CONNECTION_ERROR_TYPES as e:
            log.warning(
                "blob_store_unreachable",
                method=method,
                url=url,
                error_type=type(e).__name__,
            )
            raise BlobStoreUnreachableError(url=url, original_error=e) from e

    @staticmethod
    def _raise_for_status(resp: httpx.Response, url: str) -> None:
        if resp.is_success:
            return
        # 5xx / 429 可重试；其他 4xx 重试无意义
        retryable = resp.status_code >= 500 or resp.status_code == 429
        raise BlobStoreError(
            f"blob store returned {resp.status_code} for {resp.request.method} {url}",
            retryable=retryable,
        )
