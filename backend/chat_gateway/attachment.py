"""上传文件的内存表示（服务端分发与客户端快照共用）"""
import mimetypes
from dataclasses import dataclass
from pathlib import Path

DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class Attachment:
    """一个文件：文件名、MIME 类型与原始字节（不持久化）"""

    filename: str
    mime_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path, mime_type: str = None) -> "Attachment":
        """从本地文件读取，MIME 类型按扩展名猜测"""
        path = Path(path)
        guessed, _ = mimetypes.guess_type(path.name)
        return cls(
            filename=path.name,
            mime_type=mime_type or guessed or DEFAULT_MIME_TYPE,
            data=path.read_bytes(),
        )
