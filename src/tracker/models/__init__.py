from .base import Base
from .kv_entry import KeyValueEntry

__all__ = [
    "Base",
    "KeyValueEntry",
]
