"""远端适配器异常体系

适配器层只抛出这里的异常，由服务层翻译成 UploadFailed / RemoteWriteFailed /
RemoteDeleteFailed 等生命周期异常。
"""

from courier.core.exceptions import CourierError


class RemoteStoreError(CourierError):
    """远端文档库操作失败"""

    code = "REMOTE_STORE_ERROR"


class DuplicateRecordError(RemoteStoreError):
    """记录已存在（重复 ID），重试无意义"""

    code = "DUPLICATE_RECORD"

    def __init__(self, record_id: str) -> None:
        super().__init__(f"record already exists: {record_id}", retryable=False)
        self.record_id = record_id


class BlobStoreError(CourierError):
    """blob 存储操作失败"""

    code = "BLOB_STORE_ERROR"


class BlobNotFoundError(BlobStoreError):
    """blob 不存在"""

    code = "BLOB_NOT_FOUND"

    def __init__(self, url: str) -> None:
        super().__init__(f"blob not found: {url}", retryable=False)
        self.url = url


class BlobStoreUnreachableError(BlobStoreError):
    """blob 存储不可达（连接失败、超时、DNS 解析失败等）"""

    code = "BLOB_STORE_UNREACHABLE"

    def __init__(self, url: str, original_error: Exception) -> None:
        """
        Args:
            url: 尝试访问的地址
            original_error: 原始异常
        """
        super().__init__(
            f"blob store unreachable: {url} -- {original_error}",
            retryable=True,
        )
        self.url = url
        self.original_error = original_error
