"""配置模块 -- 可通过环境变量覆盖

包含数据目录、本地/远端数据库路径、生命周期时间参数等可配置项。
INLINE_RECORD_MAX_BYTES 是远端文档库的硬限制，不可通过环境变量调整。
"""

import os
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

log = structlog.get_logger()


def _get_base_dir() -> Path:
    """获取 data 基础目录"""
    return Path(os.environ.get("COURIER_DATA_DIR", "data"))


def get_local_db_path() -> str:
    """获取设备本地 SQLite 数据库路径"""
    return os.environ.get(
        "COURIER_LOCAL_DB_PATH",
        str(_get_base_dir() / "local" / "messages.db"),
    )


def get_media_cache_dir() -> Path:
    """获取本地媒体缓存目录"""
    return Path(
        os.environ.get(
            "COURIER_MEDIA_CACHE_DIR",
            str(_get_base_dir() / "local" / "media"),
        )
    )


def get_remote_db_path() -> str:
    """获取远端文档库 SQLite 路径（多设备共享）"""
    return os.environ.get(
        "COURIER_REMOTE_DB_PATH",
        str(_get_base_dir() / "remote" / "documents.db"),
    )


def get_blob_dir() -> Path:
    """获取文件系统 blob 存储根目录"""
    return Path(
        os.environ.get(
            "COURIER_BLOB_DIR",
            str(_get_base_dir() / "remote" / "blobs"),
        )
    )


def get_device_identity() -> tuple[str, str]:
    """获取 (device_id, user_id)"""
    return (
        os.environ.get("COURIER_DEVICE_ID", "device-local"),
        os.environ.get("COURIER_USER_ID", "owner"),
    )


# 单条远端记录的最大字节数（超过此阈值的内容必须走 blob 上传）
INLINE_RECORD_MAX_BYTES: int = 900 * 1024

# 消息预览截断长度
MESSAGE_PREVIEW_LENGTH: int = 200

# SSE 心跳间隔（秒）
SSE_HEARTBEAT_INTERVAL: int = 15


class LifecycleConfig(BaseModel):
    """消息生命周期参数

    环境变量:
        COURIER_GRACE_WINDOW_S: 全部送达后到远端删除的宽限期（秒，默认 30）
        COURIER_SWEEP_INTERVAL_S: 过期清理周期（秒，默认 3600）
        COURIER_DEFAULT_TTL_S: 默认远端保留时长（秒，默认 7 天）
        COURIER_LOCAL_RETENTION_DAYS: 本地副本保留天数（默认 30）
        COURIER_LOCAL_SWEEP_INTERVAL_S: 本地保留清理周期（秒，默认 6 小时）
        COURIER_UPLOAD_TIMEOUT_S: 媒体上传超时（秒，默认 30）
        COURIER_METADATA_TIMEOUT_S: 远端元数据读写超时（秒，默认 10）
        COURIER_MAX_DELETE_ATTEMPTS: 单轮清理中每条消息的删除尝试次数（默认 3）
        COURIER_DELETE_RETRY_BACKOFF_S: 删除重试线性退避基数（秒，默认 2）
        COURIER_MAX_BLOB_CLEANUP_ATTEMPTS: blob 清理放弃前的累计尝试次数（默认 5）
        COURIER_BLOB_CLAIM_LEASE_S: blob 清理认领的有效期，过期后 sweep 可接管（秒，默认 300）
    """

    grace_window_s: float = Field(default=30.0, ge=0)
    sweep_interval_s: float = Field(default=3600.0, gt=0)
    default_ttl_s: float = Field(default=7 * 24 * 3600.0, gt=0)
    local_retention_days: int = Field(default=30, ge=1)
    local_sweep_interval_s: float = Field(default=6 * 3600.0, gt=0)
    upload_timeout_s: float = Field(default=30.0, gt=0)
    metadata_timeout_s: float = Field(default=10.0, gt=0)
    max_delete_attempts: int = Field(default=3, ge=1)
    delete_retry_backoff_s: float = Field(default=2.0, ge=0)
    max_blob_cleanup_attempts: int = Field(default=5, ge=1)
    blob_claim_lease_s: float = Field(default=300.0, gt=0)


_ENV_FIELDS: dict[str, str] = {
    "COURIER_GRACE_WINDOW_S": "grace_window_s",
    "COURIER_SWEEP_INTERVAL_S": "sweep_interval_s",
    "COURIER_DEFAULT_TTL_S": "default_ttl_s",
    "COURIER_LOCAL_RETENTION_DAYS": "local_retention_days",
    "COURIER_LOCAL_SWEEP_INTERVAL_S": "local_sweep_interval_s",
    "COURIER_UPLOAD_TIMEOUT_S": "upload_timeout_s",
    "COURIER_METADATA_TIMEOUT_S": "metadata_timeout_s",
    "COURIER_MAX_DELETE_ATTEMPTS": "max_delete_attempts",
    "COURIER_DELETE_RETRY_BACKOFF_S": "delete_retry_backoff_s",
    "COURIER_MAX_BLOB_CLEANUP_ATTEMPTS": "max_blob_cleanup_attempts",
    "COURIER_BLOB_CLAIM_LEASE_S": "blob_claim_lease_s",
}


def load_lifecycle_config() -> LifecycleConfig:
    """从环境变量加载生命周期配置

    非法值记录警告并回退默认值，不阻塞启动。
    """
    defaults = LifecycleConfig()
    kwargs: dict = {}

    for env_var, field_name in _ENV_FIELDS.items():
        val = os.environ.get(env_var)
        if val is None or val == "":
            continue
        annotation = LifecycleConfig.model_fields[field_name].annotation
        try:
            parsed = annotation(val)
            # 逐字段校验范围约束
            LifecycleConfig(**{field_name: parsed})
        except ValueError:
            log.warning(
                "invalid_lifecycle_config",
                env_var=env_var,
                value=val,
                fallback=getattr(defaults, field_name),
            )
            continue
        kwargs[field_name] = parsed

    return LifecycleConfig(**kwargs)
