"""Filesystem-backed object store with per-key generations.

Used for local runs and end-to-end tests of resolution and parallel upload.

Layout: <root>/<bucket>/versioning            (present when versioning is enabled)
        <root>/<bucket>/objects/<quoted key>/<generation>.bin

The live generation of a key is its highest generation. Writes are atomic
(tmp + rename).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
import time
import uuid
from pathlib import Path
from typing import AsyncIterable
from typing import AsyncIterator
from typing import BinaryIO
from typing import Optional
from typing import Sequence
from urllib.parse import quote
from urllib.parse import unquote


logger = logging.getLogger(__name__)

# Server-side compose accepts at most this many sources per request
MAX_COMPOSE_SOURCES = 32


class FileSystemObjectStore:
    def __init__(self, root_dir: str, read_block_size: int = 1024 * 1024) -> None:
        self.root = Path(root_dir)
        self.root.mkdir(parents=True, exist_ok=True)
        self.read_block_size = read_block_size
        self._last_generation = 0
        # Commits run in worker threads
        self._generation_lock = threading.Lock()

    def _bucket_dir(self, bucket: str) -> Path:
        if not bucket or "/" in bucket or bucket in (".", ".."):
            raise ValueError(f"Invalid bucket name: {bucket!r}")
        path = self.root / bucket
        if not path.is_dir():
            raise FileNotFoundError(f"bucket {bucket} does not exist")
        return path

    def _key_dir(self, bucket: str, key: str) -> Path:
        return self._bucket_dir(bucket) / "objects" / quote(key, safe="")

    def _next_generation(self) -> int:
        # Microsecond clock, forced strictly increasing; never 0
        with self._generation_lock:
            generation = max(time.time_ns() // 1000, self._last_generation + 1)
            self._last_generation = generation
            return generation

    def _generations(self, key_dir: Path) -> list[int]:
        if not key_dir.is_dir():
            return []
        return sorted(int(p.stem) for p in key_dir.glob("*.bin"))

    def create_bucket(self, bucket: str, versioning: bool = False) -> None:
        path = self.root / bucket
        (path / "objects").mkdir(parents=True, exist_ok=True)
        self.set_versioning(bucket, versioning)

    def set_versioning(self, bucket: str, enabled: bool) -> None:
        marker = self._bucket_dir(bucket) / "versioning"
        if enabled:
            marker.touch()
        else:
            with contextlib.suppress(FileNotFoundError):
                marker.unlink()

    async def is_versioning_enabled(self, bucket: str) -> bool:
        return await asyncio.to_thread(lambda: (self._bucket_dir(bucket) / "versioning").exists())

    def _list_keys_sync(self, bucket: str, prefix: str) -> list[str]:
        objects_dir = self._bucket_dir(bucket) / "objects"
        keys = []
        for key_dir in objects_dir.iterdir():
            key = unquote(key_dir.name)
            if key.startswith(prefix) and self._generations(key_dir):
                keys.append(key)
        return keys

    async def list_object_keys(self, bucket: str, prefix: str) -> list[str]:
        return await asyncio.to_thread(self._list_keys_sync, bucket, prefix)

    async def list_generations(self, bucket: str, key: str) -> list[int]:
        return await asyncio.to_thread(lambda: self._generations(self._key_dir(bucket, key)))

    def _commit_sync(self, bucket: str, key: str, tmp_path: Path) -> Optional[int]:
        key_dir = self._key_dir(bucket, key)
        versioned = (self._bucket_dir(bucket) / "versioning").exists()
        previous = self._generations(key_dir)
        generation = self._next_generation()
        tmp_path.replace(key_dir / f"{generation}.bin")
        if not versioned:
            for old in previous:
                with contextlib.suppress(FileNotFoundError):
                    (key_dir / f"{old}.bin").unlink()
        logger.debug(f"FS: committed {bucket}/{key} generation={generation} versioned={versioned}")
        return generation if versioned else None

    def _tmp_path_sync(self, bucket: str, key: str, kind: str) -> Path:
        key_dir = self._key_dir(bucket, key)
        key_dir.mkdir(parents=True, exist_ok=True)
        return key_dir / f".{kind}-{uuid.uuid4().hex}.tmp"

    async def upload_range(
        self,
        bucket: str,
        key: str,
        content_type: str,
        body: AsyncIterable[bytes],
        predefined_acl: str = "",
    ) -> Optional[int]:
        tmp_path = await asyncio.to_thread(self._tmp_path_sync, bucket, key, "upload")
        try:
            f = await asyncio.to_thread(tmp_path.open, "wb")
            try:
                async for block in body:
                    await asyncio.to_thread(f.write, block)
            finally:
                await asyncio.to_thread(f.close)
            return await asyncio.to_thread(self._commit_sync, bucket, key, tmp_path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                await asyncio.to_thread(tmp_path.unlink)
            raise

    def _compose_sync(self, bucket: str, destination_key: str, part_keys: Sequence[str]) -> None:
        sources = []
        for part_key in part_keys:
            generations = self._generations(self._key_dir(bucket, part_key))
            if not generations:
                raise FileNotFoundError(f"source object {bucket}/{part_key} does not exist")
            sources.append(self._key_dir(bucket, part_key) / f"{generations[-1]}.bin")

        tmp_path = self._tmp_path_sync(bucket, destination_key, "compose")
        try:
            with tmp_path.open("wb") as out:
                for source in sources:
                    with source.open("rb") as src:
                        while block := src.read(self.read_block_size):
                            out.write(block)
            self._commit_sync(bucket, destination_key, tmp_path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                tmp_path.unlink()
            raise

    async def compose(self, bucket: str, destination_key: str, part_keys: Sequence[str]) -> None:
        if not part_keys:
            raise ValueError("compose requires at least one source object")
        if len(part_keys) > MAX_COMPOSE_SOURCES:
            raise ValueError(f"compose accepts at most {MAX_COMPOSE_SOURCES} source objects, got {len(part_keys)}")
        await asyncio.to_thread(self._compose_sync, bucket, destination_key, list(part_keys))

    def _delete_sync(self, bucket: str, key: str, generation: Optional[int]) -> None:
        key_dir = self._key_dir(bucket, key)
        generations = self._generations(key_dir)
        targets = generations if generation is None else [g for g in generations if g == generation]
        if not targets:
            raise FileNotFoundError(f"object {bucket}/{key} generation={generation} does not exist")
        for g in targets:
            (key_dir / f"{g}.bin").unlink()

    async def delete_object(self, bucket: str, key: str, generation: Optional[int] = None) -> None:
        await asyncio.to_thread(self._delete_sync, bucket, key, generation)

    def _open_generation_sync(self, bucket: str, key: str, generation: Optional[int]) -> BinaryIO:
        key_dir = self._key_dir(bucket, key)
        generations = self._generations(key_dir)
        if generation is None:
            if not generations:
                raise FileNotFoundError(f"object {bucket}/{key} does not exist")
            generation = generations[-1]
        elif generation not in generations:
            raise FileNotFoundError(f"object {bucket}/{key} generation={generation} does not exist")
        return (key_dir / f"{generation}.bin").open("rb")

    async def download_object(self, bucket: str, key: str, generation: Optional[int] = None) -> AsyncIterator[bytes]:
        f = await asyncio.to_thread(self._open_generation_sync, bucket, key, generation)
        try:
            while block := await asyncio.to_thread(f.read, self.read_block_size):
                yield block
        finally:
            f.close()
