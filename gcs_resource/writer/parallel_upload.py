"""Single-part and parallel (chunk + compose) uploads of a local file."""

from __future__ import annotations

import asyncio
import enum
import logging
import os
import time
from typing import Any
from typing import AsyncIterator
from typing import BinaryIO
from typing import List
from typing import Optional

from opentelemetry import trace

from gcs_resource.adapters.object_store import NullProgress
from gcs_resource.adapters.object_store import ObjectStoreClient
from gcs_resource.adapters.object_store import ProgressSink
from gcs_resource.config import Config
from gcs_resource.config import get_config
from gcs_resource.models import ResolvedObject
from gcs_resource.models import Source
from gcs_resource.models import UploadParams
from gcs_resource.planning.transfer_planner import ChunkRange
from gcs_resource.planning.transfer_planner import TransferPlan
from gcs_resource.planning.transfer_planner import plan_transfer
from gcs_resource.services.operation_id_service import operation_scope
from gcs_resource.utils import async_timing_context
from gcs_resource.utils import format_mib
from gcs_resource.utils import log_timing
from gcs_resource.versions.token import compile_pattern
from gcs_resource.versions.token import extract
from gcs_resource.versions.token import prefix_hint


logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_READ_BLOCK_SIZE = 1024 * 1024


class UploadState(str, enum.Enum):
    PLANNED = "planned"
    FANNING_OUT = "fanning_out"
    COMPOSING = "composing"
    CLEANING_UP = "cleaning_up"
    DONE = "done"
    FAILED = "failed"


async def read_range(
    handle: BinaryIO,
    length: Optional[int],
    *,
    block_size: int = DEFAULT_READ_BLOCK_SIZE,
    progress: Optional[ProgressSink] = None,
) -> AsyncIterator[bytes]:
    """Yield blocks from the handle's current position; ``length=None`` reads to EOF."""
    remaining = length
    while remaining is None or remaining > 0:
        want = block_size if remaining is None else min(block_size, remaining)
        block = await asyncio.to_thread(handle.read, want)
        if not block:
            break
        if remaining is not None:
            remaining -= len(block)
        if progress is not None:
            progress.add(len(block))
        yield block


class ParallelUploadCoordinator:
    """Uploads a file as one object, or as concurrent parts composed server-side.

    Parts are named ``<destination>.part<N>``. After a successful compose every
    part is deleted; a failed delete only logs a warning. If any part upload
    fails, the first failure in plan order is raised once all parts have
    finished and nothing is composed.
    """

    def __init__(
        self,
        store: ObjectStoreClient,
        bucket: str,
        *,
        content_type: str = "",
        predefined_acl: str = "",
        progress: Optional[ProgressSink] = None,
        max_concurrency: Optional[int] = None,
        cleanup_parts_on_failure: bool = False,
        read_block_size: int = DEFAULT_READ_BLOCK_SIZE,
    ) -> None:
        self.store = store
        self.bucket = bucket
        self.content_type = content_type
        self.predefined_acl = predefined_acl
        self.progress: ProgressSink = progress if progress is not None else NullProgress()
        self.max_concurrency = max_concurrency
        self.cleanup_parts_on_failure = cleanup_parts_on_failure
        self.read_block_size = read_block_size
        self.state = UploadState.PLANNED

    async def execute(self, plan: TransferPlan, local_file: str, destination_key: str) -> Optional[int]:
        """Run the plan and return the destination's generation (None when the bucket is not versioned)."""
        plan = plan.for_destination(destination_key)
        self.state = UploadState.PLANNED
        with operation_scope(), tracer.start_as_current_span(
            "upload.execute",
            attributes={
                "gcs.bucket": self.bucket,
                "gcs.object_key": destination_key,
                "upload.file_size": plan.file_size,
                "upload.threads": plan.thread_count,
            },
        ):
            logger.info(
                f"Uploading {local_file} to gs://{self.bucket}/{destination_key} "
                f"size={format_mib(plan.file_size)} parallel={plan.is_parallel} threads={plan.thread_count}"
            )
            try:
                versioned = await self.store.is_versioning_enabled(self.bucket)
                if plan.is_parallel:
                    generation = await self._execute_parallel(plan, local_file, destination_key, versioned)
                else:
                    generation = await self._execute_single(local_file, destination_key)
            except BaseException:
                self.state = UploadState.FAILED
                raise

            self.state = UploadState.DONE
            return generation if versioned else None

    async def _execute_single(self, local_file: str, destination_key: str) -> Optional[int]:
        self.state = UploadState.FANNING_OUT
        handle = await asyncio.to_thread(open, local_file, "rb")
        try:
            async with async_timing_context("upload.single", extra={"object_key": destination_key}):
                return await self.store.upload_range(
                    self.bucket,
                    destination_key,
                    self.content_type,
                    read_range(handle, None, block_size=self.read_block_size, progress=self.progress),
                    self.predefined_acl,
                )
        finally:
            handle.close()

    async def _upload_chunk(self, chunk: ChunkRange, part_key: str, local_file: str) -> Optional[int]:
        with tracer.start_as_current_span(
            "upload.chunk",
            attributes={"upload.chunk_index": chunk.index, "upload.offset": chunk.offset, "upload.length": chunk.length},
        ):
            t0 = time.perf_counter()
            handle = await asyncio.to_thread(open, local_file, "rb")
            try:
                await asyncio.to_thread(handle.seek, chunk.offset)
                body = read_range(
                    handle,
                    None if chunk.to_eof else chunk.length,
                    block_size=self.read_block_size,
                    progress=self.progress,
                )
                generation = await self.store.upload_range(
                    self.bucket, part_key, self.content_type, body, self.predefined_acl
                )
            finally:
                handle.close()
            log_timing(
                "upload.chunk",
                (time.perf_counter() - t0) * 1000.0,
                extra={"part_key": part_key, "size_bytes": chunk.length},
            )
            return generation

    async def _execute_parallel(
        self, plan: TransferPlan, local_file: str, destination_key: str, versioned: bool
    ) -> Optional[int]:
        part_keys = plan.part_keys
        concurrency = self.max_concurrency or plan.thread_count
        semaphore = asyncio.Semaphore(max(1, concurrency))

        async def upload_chunk(chunk: ChunkRange, part_key: str) -> Optional[int]:
            async with semaphore:
                return await self._upload_chunk(chunk, part_key, local_file)

        self.state = UploadState.FANNING_OUT
        with tracer.start_as_current_span("upload.fan_out", attributes={"upload.parts": len(part_keys)}):
            # Slots follow plan order regardless of completion order
            results: List[Any] = await asyncio.gather(
                *[upload_chunk(chunk, key) for chunk, key in zip(plan.ranges, part_keys)],
                return_exceptions=True,
            )

        failures = [(key, r) for key, r in zip(part_keys, results) if isinstance(r, BaseException)]
        if failures:
            first_key, first_error = failures[0]
            logger.error(
                f"Parallel upload of {destination_key} failed: {len(failures)}/{len(part_keys)} parts failed; "
                f"first failure on {first_key}: {first_error}"
            )
            if self.cleanup_parts_on_failure:
                uploaded = [key for key, r in zip(part_keys, results) if not isinstance(r, BaseException)]
                await self._delete_parts(uploaded)
            raise first_error

        self.state = UploadState.COMPOSING
        logger.info(f"Sending compose request to merge {len(part_keys)} parts into {destination_key}")
        with tracer.start_as_current_span("upload.compose", attributes={"upload.parts": len(part_keys)}):
            async with async_timing_context("upload.compose", extra={"parts": len(part_keys)}):
                await self.store.compose(self.bucket, destination_key, part_keys)

        self.state = UploadState.CLEANING_UP
        await self._delete_parts(part_keys)

        if not versioned:
            return None
        generations = await self.store.list_generations(self.bucket, destination_key)
        return generations[-1] if generations else None

    async def _delete_parts(self, part_keys: List[str]) -> None:
        with tracer.start_as_current_span("upload.cleanup", attributes={"upload.parts": len(part_keys)}):
            for part_key in part_keys:
                try:
                    await self.store.delete_object(self.bucket, part_key, None)
                except Exception as e:
                    logger.warning(f"Failed to delete part {part_key}: {e}")


async def upload_file(
    store: ObjectStoreClient,
    bucket: str,
    local_file: str,
    destination_key: str,
    *,
    threshold_bytes: int = 0,
    max_parallelism: int = 32,
    **coordinator_kwargs: Any,
) -> Optional[int]:
    """Plan and run an upload of ``local_file`` to ``destination_key``."""
    file_size = (await asyncio.to_thread(os.stat, local_file)).st_size
    plan = plan_transfer(file_size, threshold_bytes, max_parallelism, destination_key=destination_key)
    coordinator = ParallelUploadCoordinator(store, bucket, **coordinator_kwargs)
    return await coordinator.execute(plan, local_file, destination_key)


def destination_key_for(source: Source, local_file: str) -> str:
    """Versioned files always go to their fixed key; pattern sources upload next to their matches."""
    if not source.is_pattern_mode:
        return source.versioned_file
    return prefix_hint(source.regexp) + os.path.basename(local_file)


async def publish(
    store: ObjectStoreClient,
    source: Source,
    params: UploadParams,
    local_file: str,
    *,
    config: Optional[Config] = None,
    progress: Optional[ProgressSink] = None,
) -> ResolvedObject:
    """Upload ``local_file`` for a source and report the resulting version.

    The threshold in ``params`` wins; when it is 0 the configured
    GCS_PARALLEL_UPLOAD_THRESHOLD_MB applies.
    """
    source.check_valid()
    params.check_valid()
    if source.is_pattern_mode:
        compile_pattern(source.regexp)
    if config is None:
        config = get_config()

    if params.parallel_upload_threshold:
        threshold_bytes = params.parallel_upload_threshold << 20
    else:
        threshold_bytes = config.parallel_upload_threshold_bytes

    destination_key = destination_key_for(source, local_file)
    generation = await upload_file(
        store,
        source.bucket,
        local_file,
        destination_key,
        threshold_bytes=threshold_bytes,
        max_parallelism=config.max_parallelism,
        content_type=params.content_type,
        predefined_acl=params.predefined_acl,
        progress=progress,
        max_concurrency=config.upload_max_concurrency,
        cleanup_parts_on_failure=config.cleanup_parts_on_failure,
        read_block_size=config.read_block_size,
    )

    version: Optional[str] = None
    if source.is_pattern_mode:
        token, ok = extract(destination_key, source.regexp)
        if ok and token is not None:
            version = token.raw
    return ResolvedObject(bucket=source.bucket, object_key=destination_key, generation=generation, version=version)
