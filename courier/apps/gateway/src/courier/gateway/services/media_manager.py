"""MediaBlobManager -- 媒体 blob 上传/删除

不做隐式重试，重试策略由调用方决定：
- 发送路径把 UploadFailed 返回给 UI；
- 清理路径把 RemoteDeleteFailed 留给下一轮 sweep。
"""

import asyncio
import hashlib
from collections.abc import Callable
from datetime import UTC, datetime

import structlog
from courier.core.config import INLINE_RECORD_MAX_BYTES
from courier.core.exceptions import RemoteDeleteFailed, UploadFailed
from courier.core.models import MediaBlobRef
from courier.remote import BlobNotFoundError, BlobStore, BlobStoreError, BlobStoreUnreachableError
from ulid import ULID

log = structlog.get_logger()


class MediaBlobManager:
    """媒体 blob 管理"""

    def __init__(
        self,
        blob_store: BlobStore,
        upload_timeout_s: float = 30,
        delete_timeout_s: float = 10,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._blob_store = blob_store
        self._upload_timeout_s = upload_timeout_s
        self._delete_timeout_s = delete_timeout_s
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def blob_store(self) -> BlobStore:
        return self._blob_store

    @staticmethod
    def requires_blob(size_bytes: int) -> bool:
        """内容大小超过单条远端记录上限时必须走 blob 上传"""
        return size_bytes > INLINE_RECORD_MAX_BYTES

    async def upload(self, payload: bytes, chat_id: str, mime: str) -> MediaBlobRef:
        """上传媒体字节，返回稳定引用

        Raises:
            UploadFailed: 网络错误、超时或存储拒绝；retryable 取决于失败类型
        """
        blob_id = str(ULID())
        key = f"{chat_id}/{blob_id}"
        try:
            url = await asyncio.wait_for(
                self._blob_store.put(key, payload, mime),
                timeout=self._upload_timeout_s,
            )
        except TimeoutError as e:
            log.warning("media_upload_timeout", blob_id=blob_id, timeout_s=self._upload_timeout_s)
            raise UploadFailed(f"upload timed out after {self._upload_timeout_s}s") from e
        except BlobStoreError as e:
            log.warning(
                "media_upload_failed",
                blob_id=blob_id,
                error_type=type(e).__name__,
                retryable=e.retryable,
            )
            raise UploadFailed(f"upload failed: {e}", retryable=e.retryable) from e

        ref = MediaBlobRef(
            blob_id=blob_id,
            remote_url=url,
            size_bytes=len(payload),
            uploaded_at=self._clock(),
            mime=mime,
            sha256=hashlib.sha256(payload).hexdigest(),
        )
        log.info("media_uploaded", blob_id=blob_id, chat_id=chat_id, size_bytes=ref.size_bytes)
        return ref

    async def delete(self, ref: MediaBlobRef) -> None:
        """删除 blob；已不存在时视为成功

        Raises:
            RemoteDeleteFailed: 存储不可达或拒绝删除
        """
        try:
            await asyncio.wait_for(
                self._blob_store.delete(ref.remote_url),
                timeout=self._delete_timeout_s,
            )
        except BlobNotFoundError:
            log.debug("media_already_absent", blob_id=ref.blob_id)
            return
        except TimeoutError as e:
            raise RemoteDeleteFailed(f"blob delete timed out: {ref.blob_id}") from e
        except BlobStoreError as e:
            raise RemoteDeleteFailed(f"blob delete failed: {ref.blob_id}: {e}") from e
        log.info("media_deleted", blob_id=ref.blob_id)

    async def fetch(self, ref: MediaBlobRef) -> bytes:
        """下载 blob 字节（接收方缓存本地副本用）

        Raises:
            BlobNotFoundError: blob 已被删除
            BlobStoreError: 其他存储错误
        """
        try:
            return await asyncio.wait_for(
                self._blob_store.get(ref.remote_url),
                timeout=self._upload_timeout_s,
            )
        except TimeoutError as e:
            raise BlobStoreUnreachableError(url=ref.remote_url, original_error=e) from e
