"""消息内容 -- tagged variant

每种内容类型只携带自己需要的字段，通过 type 字段判别。
媒体字节不放在内容里，发送时随 payload 单独传入，上传后以 MediaBlobRef 引用。
"""

from typing import Annotated, Literal

from pydantic import BaseModel, Field

from .enums import ContentType


class TextContent(BaseModel):
    """纯文本"""

    type: Literal["text"] = "text"
    text: str = Field(description="文本内容")


class ImageContent(BaseModel):
    """图片"""

    type: Literal["image"] = "image"
    mime: str = Field(default="image/jpeg", description="MIME 类型")
    caption: str = Field(default="", description="图片说明")
    width: int | None = Field(default=None, ge=1)
    height: int | None = Field(default=None, ge=1)


class VideoContent(BaseModel):
    """视频"""

    type: Literal["video"] = "video"
    mime: str = Field(default="video/mp4", description="MIME 类型")
    caption: str = Field(default="", description="视频说明")
    duration_s: float | None = Field(default=None, ge=0)


class AudioContent(BaseModel):
    """语音 / 音频"""

    type: Literal["audio"] = "audio"
    mime: str = Field(default="audio/aac", description="MIME 类型")
    duration_s: float | None = Field(default=None, ge=0)


class DocumentContent(BaseModel):
    """文档"""

    type: Literal["document"] = "document"
    mime: str = Field(default="application/octet-stream", description="MIME 类型")
    filename: str = Field(description="文件名")


MessageContent = Annotated[
    TextContent | ImageContent | VideoContent | AudioContent | DocumentContent,
    Field(discriminator="type"),
]


def content_type_of(content: MessageContent) -> ContentType:
    return ContentType(content.type)


def is_media(content: MessageContent) -> bool:
    """内容是否需要媒体 blob"""
    return not isinstance(content, TextContent)


def summary_text(content: MessageContent) -> str:
    """内容的文本部分：文本正文、媒体说明或文件名"""
    if isinstance(content, TextContent):
        return content.text
    if isinstance(content, DocumentContent):
        return content.filename
    return getattr(content, "caption", "")


def redacted(content: MessageContent) -> MessageContent:
    """删除后保留的墓碑内容：保留类型与 MIME，清空用户可见文本"""
    if isinstance(content, TextContent):
        return content.model_copy(update={"text": ""})
    if isinstance(content, DocumentContent):
        return content.model_copy(update={"filename": ""})
    if isinstance(content, (ImageContent, VideoContent)):
        return content.model_copy(update={"caption": ""})
    return content


def content_mime(content: MessageContent) -> str:
    """内容对应的 MIME 类型（文本为 text/plain）"""
    if isinstance(content, TextContent):
        return "text/plain; charset=utf-8"
    return content.mime
