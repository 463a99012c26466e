"""
내구성 키-값 저장소

모든 무상태 호출이 공유하는 유일한 저장소입니다.
백엔드는 설정(store_backend)으로 선택합니다.
"""

from stockboard.storage.base import KeyValueStore, build_store
from stockboard.storage.file import FileStore
from stockboard.storage.memory import MemoryStore
from stockboard.storage.redis_store import RedisStore

__all__ = ["KeyValueStore", "MemoryStore", "FileStore", "RedisStore", "build_store"]
