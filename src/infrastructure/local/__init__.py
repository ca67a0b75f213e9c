from .engine import LocalEngine
from .keys import StorageKeys
from .store import KeyValueStore, StoreFormatError

__all__ = ["KeyValueStore", "LocalEngine", "StorageKeys", "StoreFormatError"]
