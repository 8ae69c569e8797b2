from .base import ObjectStorage
from .local import LocalStorage

__all__ = ["LocalStorage", "ObjectStorage"]
