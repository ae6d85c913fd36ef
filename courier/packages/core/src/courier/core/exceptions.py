"""消息生命周期异常体系

send 路径的失败以类型化异常返回给调用方（UI 据此提供重试）；
后台清理路径的失败在 Coordinator / Scheduler 边界捕获并记录，下个周期重试。
"""


class CourierError(Exception):
    """基础异常"""

    code = "COURIER_ERROR"

    def __init__(self, message: str, retryable: bool = True) -> None:
        """
        Args:
            message: 错误描述
            retryable: 调用方是否可以安全重试
        """
        super().__init__(message)
        self.retryable = retryable


class UploadFailed(CourierError):
    """媒体上传失败（网络 / 配额），默认可重试"""

    code = "UPLOAD_FAILED"


class RemoteWriteFailed(CourierError):
    """远端记录写入失败，默认可重试"""

    code = "REMOTE_WRITE_FAILED"


class RemoteDeleteFailed(CourierError):
    """远端删除失败 -- 非致命，留给下一轮清理"""

    code = "REMOTE_DELETE_FAILED"


class LocalWriteFailed(CourierError):
    """本地持久化失败 -- 对发送路径致命

    消息无法至少在发送方设备上持久化时，不视为发送成功。
    """

    code = "LOCAL_WRITE_FAILED"

    def __init__(self, message: str) -> None:
        super().__init__(message, retryable=False)


class NotFound(CourierError):
    """对象不存在（删除路径上视为成功）"""

    code = "NOT_FOUND"

    def __init__(self, kind: str, object_id: str) -> None:
        super().__init__(f"{kind} not found: {object_id}", retryable=False)
        self.kind = kind
        self.object_id = object_id
