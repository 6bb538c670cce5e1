from __future__ import annotations

from typing import AsyncIterable
from typing import AsyncIterator
from typing import Optional
from typing import Protocol
from typing import Sequence
from typing import runtime_checkable


@runtime_checkable
class ObjectStoreClient(Protocol):
    """Operations the core needs from a bucket. Pagination, auth and retries live behind it.

    Generations are ``Optional[int]``: None asks for, or reports, no specific generation.
    """

    async def list_object_keys(self, bucket: str, prefix: str) -> list[str]: ...
    async def list_generations(self, bucket: str, key: str) -> list[int]: ...
    async def is_versioning_enabled(self, bucket: str) -> bool: ...
    async def upload_range(
        self,
        bucket: str,
        key: str,
        content_type: str,
        body: AsyncIterable[bytes],
        predefined_acl: str = "",
    ) -> Optional[int]: ...
    async def compose(self, bucket: str, destination_key: str, part_keys: Sequence[str]) -> None: ...
    async def delete_object(self, bucket: str, key: str, generation: Optional[int] = None) -> None: ...
    def download_object(self, bucket: str, key: str, generation: Optional[int] = None) -> AsyncIterator[bytes]: ...


@runtime_checkable
class ProgressSink(Protocol):
    def add(self, n_bytes: int) -> None: ...


class NullProgress:
    def add(self, n_bytes: int) -> None:
        return None


class ByteCounter:
    """Progress sink that only counts bytes."""

    def __init__(self) -> None:
        self.total = 0

    def add(self, n_bytes: int) -> None:
        self.total += n_bytes
