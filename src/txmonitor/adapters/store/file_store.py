"""
Key-value store kept in a single JSON file.

Every ``set`` rewrites the whole file through a temp file in the same
directory followed by ``os.replace``, so a crash leaves either the old or the
new file on disk, never a partial one.
"""

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional

from loguru import logger

from ...ports.store import KeyValueStorePort


class JsonFileStore(KeyValueStorePort):
    def __init__(self, path: str):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
        return data.get(key)

    async def set(self, key: str, blob: str) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            data[key] = blob
            await asyncio.to_thread(self._write, data)

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as exc:
            logger.error(f"[FileStore] {self.path} is not valid JSON, starting empty: {exc}")
            return {}
        if not isinstance(data, dict):
            logger.error(f"[FileStore] {self.path} does not hold an object, starting empty")
            return {}
        return data

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(suffix=self.path.suffix, prefix=f".{self.path.stem}_tmp_", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.path)
        except BaseException:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise
