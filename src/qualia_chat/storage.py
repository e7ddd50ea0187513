"""Durable client-side key/value storage backed by a JSON file."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Optional

import aiofiles
import aiofiles.os

logger = logging.getLogger(__name__)

THREAD_ID_KEY = "threadId"
QUEUE_KEY = "queuedMessages"


class ClientStore:
    """Persists small JSON records so they survive a restart."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def _read_all(self) -> dict[str, Any]:
        if not await aiofiles.os.path.exists(self.path):
            return {}
        async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
            raw = await f.read()
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Client state at {self.path} is corrupt, starting fresh")
            return {}
        return data if isinstance(data, dict) else {}

    async def _write_all(self, data: dict[str, Any]) -> None:
        await aiofiles.os.makedirs(self.path.parent, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(data, indent=2, default=str))
        await aiofiles.os.replace(tmp_path, self.path)

    async def get(self, key: str, default: Optional[Any] = None) -> Any:
        async with self._lock:
            data = await self._read_all()
        return data.get(key, default)

    async def set(self, key: str, value: Any) -> None:
        async with self._lock:
            data = await self._read_all()
            data[key] = value
            await self._write_all(data)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            data = await self._read_all()
            if key not in data:
                return False
            del data[key]
            await self._write_all(data)
            return True
