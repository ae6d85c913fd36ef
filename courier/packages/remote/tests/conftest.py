"""Remote 包测试 fixtures"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import pytest_asyncio
from courier.core.models import (
    DeliveryEntry,
    ImageContent,
    MediaBlobRef,
    Message,
    TextContent,
)
from courier.remote import SqliteDocumentStore, create_document_store


@pytest_asyncio.fixture
async def doc_store(tmp_path: Path) -> AsyncGenerator[SqliteDocumentStore, None]:
    """临时远端文档库"""
    store = await create_document_store(str(tmp_path / "remote" / "documents.db"))
    yield store
    await store.close()


@pytest.fixture
def make_message():
    """构造远端消息的工厂（默认 alice -> bob, carol）"""

    def _make(
        message_id: str = "01JMSG_REMOTE_000000000001",
        recipients: tuple[str, ...] = ("bob", "carol"),
        with_media: bool = False,
        expires_in: timedelta = timedelta(days=7),
        created_at: datetime | None = None,
    ) -> Message:
        now = created_at or datetime.now(UTC)
        media_ref = None
        content = TextContent(text="你好")
        if with_media:
            content = ImageContent(mime="image/png", caption="照片")
            media_ref = MediaBlobRef(
                blob_id=f"blob-{message_id}",
                remote_url=f"file:///tmp/blobs/{message_id}",
                size_bytes=4,
                uploaded_at=now,
                mime="image/png",
            )
        return Message(
            message_id=message_id,
            chat_id="01JCHAT_REMOTE_00000000001",
            sender_id="alice",
            content=content,
            text_body="你好" if not with_media else "照片",
            media_ref=media_ref,
            created_at=now,
            expires_at=now + expires_in,
            delivery_state={rid: DeliveryEntry(recipient_id=rid) for rid in recipients},
        )

    return _make
