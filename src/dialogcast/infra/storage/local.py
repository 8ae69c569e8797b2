"""dialogcast.infra.storage.local

本地文件系统存储：key 映射为 root 下的相对路径，写入是原子的。
"""
import json
from pathlib import Path

from dialogcast.pipeline.core.atomic import atomic_write
from dialogcast.utils.logger import get_logger

from .base import ObjectStorage

logger = get_logger("storage")


class LocalStorage(ObjectStorage):
    def __init__(self, root: str | Path):
        self.root = Path(root).expanduser().resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise ValueError(f"object key escapes storage root: {key}")
        return path

    def exists(self, key: str) -> bool:
        return self._path(key).exists()

    def upload(self, data: bytes, key: str, content_type: str) -> str:
        path = self._path(key)
        atomic_write(data, path)
        # content type 记录在旁路文件中，便于之后按原类型提供下载
        atomic_write(json.dumps({"content_type": content_type}), path.with_name(f".{path.name}.meta"))
        logger.info(f"stored {key} ({len(data)} bytes, {content_type})")
        return key

    def content_type(self, key: str) -> str | None:
        meta = self._path(key).with_name(f".{self._path(key).name}.meta")
        if not meta.exists():
            return None
        return json.loads(meta.read_text(encoding="utf-8")).get("content_type")

    def get_signed_url(self, key: str, *, expires_seconds: int = 36000) -> str:
        # 本地文件没有签名，直接返回 file:// URI
        path = self._path(key)
        if not path.exists():
            raise FileNotFoundError(f"object not found: {key}")
        return path.as_uri()
