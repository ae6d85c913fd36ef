"""RemoteConfig -- 远端协作方配置加载

从环境变量加载 blob 存储、推送与同步流配置。
"""

import os
from typing import Literal

import structlog
from pydantic import BaseModel, Field, SecretStr

log = structlog.get_logger()


class RemoteConfig(BaseModel):
    """远端适配器配置 -- 从环境变量加载

    环境变量:
        COURIER_BLOB_BACKEND: blob 存储后端（filesystem/http）
        COURIER_BLOB_BASE_URL: HTTP 对象存储基础 URL
        COURIER_BLOB_TOKEN: HTTP 对象存储访问令牌
        COURIER_PUSH_WEBHOOK_URL: 推送 webhook 地址（为空则不推送）
        COURIER_SYNC_POLL_INTERVAL_S: 同步流轮询间隔（秒，默认 1）
    """

    blob_backend: Literal["filesystem", "http"] = Field(
        default="filesystem",
        description="blob 存储后端：filesystem / http",
    )
    blob_base_url: str = Field(
        default="http://localhost:9000/courier-media",
        description="HTTP 对象存储基础 URL",
    )
    blob_token: SecretStr = Field(
        default=SecretStr(""),
        description="HTTP 对象存储访问令牌",
    )
    push_webhook_url: str = Field(
        default="",
        description="推送 webhook 地址",
    )
    sync_poll_interval_s: float = Field(
        default=1.0,
        gt=0,
        description="同步流轮询间隔（秒）",
    )


def load_remote_config() -> RemoteConfig:
    """从环境变量加载远端配置

    非法数值记录 warning 并回退默认值，不阻塞启动。
    """
    kwargs: dict = {}

    if val := os.environ.get("COURIER_BLOB_BACKEND"):
        if val in ("filesystem", "http"):
            kwargs["blob_backend"] = val
        else:
            log.warning(
                "invalid_blob_backend_config",
                env_var="COURIER_BLOB_BACKEND",
                value=val,
                fallback="filesystem",
            )

    if val := os.environ.get("COURIER_BLOB_BASE_URL"):
        kwargs["blob_base_url"] = val

    if val := os.environ.get("COURIER_BLOB_TOKEN"):
        kwargs["blob_token"] = SecretStr(val)

    if val := os.environ.get("COURIER_PUSH_WEBHOOK_URL"):
        kwargs["push_webhook_url"] = val

    if val := os.environ.get("COURIER_SYNC_POLL_INTERVAL_S"):
        try:
            interval = float(val)
            if interval <= 0:
                raise ValueError(val)
            kwargs["sync_poll_interval_s"] = interval
        except ValueError:
            log.warning(
                "invalid_poll_interval_config",
                env_var="COURIER_SYNC_POLL_INTERVAL_S",
                value=val,
                fallback=1.0,
            )

    return RemoteConfig(**kwargs)
