"""
File-backed key-value store for single-host deployments.

All records live in one JSON document. Every mutation rewrites the document
to a temp file, fsyncs it and atomically replaces the original, so a crash
leaves either the old or the new document on disk, never a torn one.

File IO runs in the default executor and an asyncio.Lock serialises
read-modify-write cycles. One process owns the file; several processes must
share a Redis store instead.
"""

from __future__ import annotations

import asyncio
import fnmatch
import os
from pathlib import Path
from typing import Dict, List, Optional

from swapkeeper.core import json_utils
from swapkeeper.core.errors import VaultUnavailable

import logging

log = logging.getLogger("swapkeeper")


class FileKeyValueStore:
    def __init__(self, state_dir: str, filename: str = "secret_vault.json", fsync: bool = True) -> None:
        self.path = Path(state_dir) / filename
        self.tmp = self.path.with_suffix(".tmp")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fsync = fsync
        self._lock = asyncio.Lock()

    # ---- sync helpers (executor) ----

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json_utils.loads(self.path.read_bytes())
        except (OSError, json_utils.JSONDecodeError) as exc:
            # Never fall back to {}: the next write would wipe every stored secret.
            raise VaultUnavailable(f"cannot read vault file {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise VaultUnavailable(f"vault file {self.path} does not hold a JSON object")
        return data

    def _write(self, data: Dict[str, str]) -> None:
        try:
            with open(self.tmp, "wb") as fh:
                fh.write(json_utils.dumps_pretty(data))
                fh.flush()
                if self._fsync:
                    os.fsync(fh.fileno())
            os.replace(self.tmp, self.path)
            if self._fsync:
                self._fsync_dir()
        except OSError as exc:
            raise VaultUnavailable(f"cannot write vault file {self.path}: {exc}") from exc

    def _fsync_dir(self) -> None:
        # Directory fsync makes the rename durable; not supported everywhere.
        try:
            fd = os.open(self.path.parent, os.O_RDONLY)
        except OSError:
            return
        try:
            os.fsync(fd)
        except OSError:
            pass
        finally:
            os.close(fd)

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn, *args)

    # ---- store interface ----

    async def set_if_absent(self, key: str, value: str) -> bool:
        async with self._lock:
            data = await self._run(self._read)
            if key in data:
                return False
            data[key] = value
            await self._run(self._write, data)
            return True

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            data = await self._run(self._read)
            return data.get(key)

    async def delete(self, key: str) -> None:
        async with self._lock:
            data = await self._run(self._read)
            if key not in data:
                return
            del data[key]
            await self._run(self._write, data)

    async def keys(self, pattern: str) -> List[str]:
        async with self._lock:
            data = await self._run(self._read)
            return [k for k in data if fnmatch.fnmatchcase(k, pattern)]

    async def close(self) -> None:
        return None
