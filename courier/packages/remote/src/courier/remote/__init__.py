"""Courier Remote -- 远端协作方适配层

packages/remote 的公开接口导出：文档库、blob 存储、同步流、推送。
"""

# 适配器
from .blob_store import BlobStore, FileSystemBlobStore, HttpBlobStore
from .change_feed import ChangeFeed, PollingChangeFeed

# 配置
from .config import RemoteConfig, load_remote_config
from .document_store import DocumentStore, SqliteDocumentStore, create_document_store

# 异常
from .exceptions import (
    BlobNotFoundError,
    BlobStoreError,
    BlobStoreUnreachableError,
    DuplicateRecordError,
    RemoteStoreError,
)
from .models import BlobCleanup, BlobCleanupFailure
from .push import NullPushNotifier, PushNotifier, WebhookPushNotifier

__all__ = [
    "DocumentStore",
    "SqliteDocumentStore",
    "create_document_store",
    "BlobStore",
    "FileSystemBlobStore",
    "HttpBlobStore",
    "ChangeFeed",
    "PollingChangeFeed",
    "PushNotifier",
    "NullPushNotifier",
    "WebhookPushNotifier",
    "BlobCleanup",
    "BlobCleanupFailure",
    "RemoteConfig",
    "load_remote_config",
    "RemoteStoreError",
    "DuplicateRecordError",
    "BlobStoreError",
    "BlobNotFoundError",
    "BlobStoreUnreachableError",
]
