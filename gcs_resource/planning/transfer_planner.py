"""Pure planning logic for parallel uploads.

No IO; deterministic mapping from file size and threshold to byte ranges.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import List

from gcs_resource.errors import ConfigurationError
from gcs_resource.utils import format_mib


logger = logging.getLogger(__name__)

DEFAULT_MAX_PARALLELISM = 32


def part_key_for(destination_key: str, index: int) -> str:
    return f"{destination_key}.part{index}"


@dataclass(frozen=True)
class ChunkRange:
    index: int
    offset: int
    length: int
    # The final chunk reads to EOF instead of a bounded length
    to_eof: bool = False

    @property
    def end(self) -> int:
        return self.offset + self.length


@dataclass(frozen=True)
class TransferPlan:
    file_size: int
    chunk_size: int
    thread_count: int
    ranges: List[ChunkRange]
    destination_key: str = ""
    clamped: bool = False

    @property
    def is_parallel(self) -> bool:
        return self.thread_count > 1

    @property
    def part_keys(self) -> List[str]:
        if not self.is_parallel:
            return []
        return [part_key_for(self.destination_key, r.index) for r in self.ranges]

    def for_destination(self, destination_key: str) -> "TransferPlan":
        return dataclasses.replace(self, destination_key=destination_key)


def _single_part(file_size: int, destination_key: str) -> TransferPlan:
    return TransferPlan(
        file_size=file_size,
        chunk_size=file_size,
        thread_count=1,
        ranges=[ChunkRange(index=0, offset=0, length=file_size, to_eof=True)],
        destination_key=destination_key,
    )


def plan_transfer(
    file_size: int,
    threshold_bytes: int,
    max_parallelism: int = DEFAULT_MAX_PARALLELISM,
    *,
    destination_key: str = "",
) -> TransferPlan:
    """Split a file into chunk ranges for a parallel upload.

    Args:
        file_size: Size of the local file in bytes.
        threshold_bytes: Requested chunk size; <= 0 disables chunking.
        max_parallelism: Upper bound on the number of chunks.
        destination_key: Object key the parts are composed into.

    Returns:
        A TransferPlan whose ranges cover [0, file_size) exactly once. More
        chunks than max_parallelism are clamped by growing the chunk size,
        which is logged as a warning.
    """
    if file_size < 0:
        raise ConfigurationError(f"Invalid file_size={file_size}; cannot plan upload")
    if max_parallelism < 1:
        raise ConfigurationError(f"Invalid max_parallelism={max_parallelism}; must be at least 1")

    if threshold_bytes <= 0 or file_size == 0:
        return _single_part(file_size, destination_key)

    chunk_size = threshold_bytes
    threads = (file_size + chunk_size - 1) // chunk_size
    clamped = False
    if threads > max_parallelism:
        # Round up unless that would leave the last chunk empty; otherwise floor and let the last chunk read to EOF
        threads = max_parallelism
        ceil_chunk = (file_size + threads - 1) // threads
        if (threads - 1) * ceil_chunk < file_size:
            chunk_size = ceil_chunk
        else:
            chunk_size = file_size // threads
        clamped = True
        logger.warning(
            f"Only up to {max_parallelism} threads are supported. Parallel upload threshold is ignored. "
            f"Using {format_mib(chunk_size)} for each thread."
        )

    if threads == 1:
        return _single_part(file_size, destination_key)

    ranges: List[ChunkRange] = []
    for index in range(threads):
        offset = index * chunk_size
        last = index == threads - 1
        length = file_size - offset if last else chunk_size
        ranges.append(ChunkRange(index=index, offset=offset, length=length, to_eof=last))

    logger.debug(f"Planned parallel upload file_size={file_size} threads={threads} chunk_size={chunk_size}")
    return TransferPlan(
        file_size=file_size,
        chunk_size=chunk_size,
        thread_count=threads,
        ranges=ranges,
        destination_key=destination_key,
        clamped=clamped,
    )
