"""
로컬 파일 저장소

키마다 JSON 파일 하나에 값과 만료시각(epoch 초)을 기록합니다.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import time
from typing import Callable, Optional

from stockboard.storage.base import KeyValueStore

logger = logging.getLogger(__name__)


def _safe_name(key: str) -> str:
    safe = key.replace(":", "_").replace("/", "_")
    if len(safe) > 150:
        safe = hashlib.md5(key.encode()).hexdigest()
    return f"{safe}.json"


class FileStore(KeyValueStore):
    def __init__(self, directory: str, clock: Callable[[], float] = time.time) -> None:
        self._directory = directory
        self._clock = clock

    def _path(self, key: str) -> str:
        return os.path.join(self._directory, _safe_name(key))

    async def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as fh:
                doc = json.load(fh)
        except (OSError, ValueError) as exc:
            logger.warning("file store read failed (key=%s): %s", key, exc)
            return None
        if not isinstance(doc, dict):
            logger.warning("file store entry is not an object (key=%s)", key)
            return None

        expires_at = doc.get("expires_at")
        if expires_at is not None and expires_at <= self._clock():
            try:
                os.remove(path)
            except FileNotFoundError:
                pass
            return None
        return doc.get("value")

    async def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        if ttl_seconds is not None and ttl_seconds <= 0:
            return
        os.makedirs(self._directory, exist_ok=True)
        expires_at = self._clock() + ttl_seconds if ttl_seconds is not None else None
        path = self._path(key)
        # 같은 디렉터리의 임시 파일에 쓴 뒤 교체해 반쯤 쓰인 파일을 남기지 않는다
        tmp_path = f"{path}.{os.getpid()}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump({"value": value, "expires_at": expires_at}, fh, ensure_ascii=False)
        os.replace(tmp_path, path)

    async def delete(self, key: str) -> bool:
        try:
            os.remove(self._path(key))
            return True
        except FileNotFoundError:
            return False
