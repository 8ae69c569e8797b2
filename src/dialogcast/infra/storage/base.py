"""dialogcast.infra.storage.base

对象存储接口：生成结果（混音 WAV、SRT、VTT、JSON）的最终去处。

职责：
- upload(data, key, content_type) -> key
- get_signed_url(key) -> url

说明：
- 流水线本身不依赖具体存储；CLI 使用 LocalStorage。
"""
from abc import ABC, abstractmethod


class ObjectStorage(ABC):
    @abstractmethod
    def upload(self, data: bytes, key: str, content_type: str) -> str:
        """写入对象，返回 key。"""

    @abstractmethod
    def get_signed_url(self, key: str, *, expires_seconds: int = 36000) -> str:
        """返回可访问对象的 URL。"""

    @abstractmethod
    def exists(self, key: str) -> bool:
        ...
