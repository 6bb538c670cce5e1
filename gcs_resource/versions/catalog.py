"""Resolve which object in a bucket is the requested or latest version.

Two mutually exclusive modes, picked by the Source:

- pattern mode (``regexp``): every listed key matching the pattern is a
  candidate; the greatest extracted version wins.
- versioned-file mode (``versioned_file``): one fixed key whose generations
  are the versions. Requires bucket versioning.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from pathlib import Path
from typing import List
from typing import Optional

from opentelemetry import trace

from gcs_resource.adapters.object_store import ObjectStoreClient
from gcs_resource.adapters.object_store import ProgressSink
from gcs_resource.errors import BucketNotVersionedError
from gcs_resource.errors import NoCandidatesError
from gcs_resource.errors import PreconditionError
from gcs_resource.models import ResolvedObject
from gcs_resource.models import Source
from gcs_resource.models import Version
from gcs_resource.services.operation_id_service import operation_scope
from gcs_resource.utils import async_timing_context
from gcs_resource.versions.ordering import latest
from gcs_resource.versions.ordering import sort_extractions
from gcs_resource.versions.token import Extraction
from gcs_resource.versions.token import compile_pattern
from gcs_resource.versions.token import extract
from gcs_resource.versions.token import listing_prefix


logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class VersionCatalog:
    def __init__(self, store: ObjectStoreClient, *, require_unique_latest: bool = False) -> None:
        self.store = store
        self.require_unique_latest = require_unique_latest

    @staticmethod
    def _validate(source: Source, version: Optional[Version]) -> Optional[int]:
        """Reject bad configuration before any network call; return the requested generation."""
        source.check_valid()
        if source.is_pattern_mode:
            compile_pattern(source.regexp)
            return None
        return version.generation_value() if version is not None else None

    async def extractions(self, source: Source) -> List[Extraction]:
        """All candidate keys in ascending version order."""
        source.check_valid()
        compile_pattern(source.regexp)
        prefix = listing_prefix(source.regexp)

        async with async_timing_context("catalog.list", extra={"bucket": source.bucket, "prefix": prefix or "-"}):
            keys = await self.store.list_object_keys(source.bucket, prefix)

        found: List[Extraction] = []
        for key in keys:
            token, ok = extract(key, source.regexp)
            if ok and token is not None:
                found.append(Extraction(object_key=key, version=token))
        logger.debug(f"Matched {len(found)}/{len(keys)} keys in {source.bucket} against {source.regexp!r}")
        return sort_extractions(found)

    async def _require_versioning(self, bucket: str) -> None:
        if not await self.store.is_versioning_enabled(bucket):
            raise BucketNotVersionedError(bucket)

    async def generations(self, bucket: str, key: str) -> List[int]:
        """Retained generations of a key, in the order the store reports them."""
        await self._require_versioning(bucket)
        return list(await self.store.list_generations(bucket, key))

    async def resolve(self, source: Source, version: Optional[Version] = None) -> ResolvedObject:
        """Return the object (and generation) a fetch should read."""
        requested_generation = self._validate(source, version)

        with operation_scope(), tracer.start_as_current_span(
            "catalog.resolve", attributes={"gcs.bucket": source.bucket, "catalog.pattern_mode": source.is_pattern_mode}
        ):
            if source.is_pattern_mode:
                return await self._resolve_pattern(source, version)
            return await self._resolve_versioned(source, requested_generation)

    async def _resolve_pattern(self, source: Source, version: Optional[Version]) -> ResolvedObject:
        if version is not None and version.path:
            token, ok = extract(version.path, source.regexp)
            return ResolvedObject(
                bucket=source.bucket, object_key=version.path, version=token.raw if ok and token else None
            )

        chosen = latest(await self.extractions(source), require_unique=self.require_unique_latest)
        if chosen is None:
            raise NoCandidatesError(source.bucket, source.regexp)
        logger.info(f"Resolved latest {chosen.object_key} (version {chosen.version.raw}) in {source.bucket}")
        return ResolvedObject(bucket=source.bucket, object_key=chosen.object_key, version=chosen.version.raw)

    async def _resolve_versioned(self, source: Source, generation: Optional[int]) -> ResolvedObject:
        key = source.versioned_file
        if generation is not None:
            await self._require_versioning(source.bucket)
            return ResolvedObject(bucket=source.bucket, object_key=key, generation=generation)

        generations = await self.generations(source.bucket, key)
        if not generations:
            raise PreconditionError(f"no generations found for {source.bucket}/{key}")
        live = generations[-1]
        logger.info(f"Resolved live generation {live} of {source.bucket}/{key}")
        return ResolvedObject(bucket=source.bucket, object_key=key, generation=live)

    async def check(self, source: Source, current: Optional[Version] = None) -> List[Version]:
        """Versions at or after ``current``, oldest first; only the latest when there is no usable current."""
        requested_generation = self._validate(source, current)

        with operation_scope(), tracer.start_as_current_span("catalog.check", attributes={"gcs.bucket": source.bucket}):
            if source.is_pattern_mode:
                return await self._check_pattern(source, current)
            return await self._check_versioned(source, requested_generation)

    async def _check_pattern(self, source: Source, current: Optional[Version]) -> List[Version]:
        ordered = await self.extractions(source)
        if not ordered:
            return []

        current_path = current.path if current is not None else ""
        token, ok = extract(current_path, source.regexp) if current_path else (None, False)
        if not ok or token is None or not any(e.object_key == current_path for e in ordered):
            newest = latest(ordered, require_unique=self.require_unique_latest)
            return [Version(path=newest.object_key)] if newest else []

        floor = (token.sort_key, current_path)
        return [Version(path=e.object_key) for e in ordered if (e.version.sort_key, e.object_key) >= floor]

    async def _check_versioned(self, source: Source, current_generation: Optional[int]) -> List[Version]:
        generations = await self.generations(source.bucket, source.versioned_file)
        if not generations:
            return []
        if current_generation is None or current_generation not in generations:
            return [Version.for_generation(generations[-1])]
        start = generations.index(current_generation)
        return [Version.for_generation(g) for g in generations[start:]]

    async def fetch(
        self,
        source: Source,
        version: Optional[Version],
        local_path: str,
        *,
        progress: Optional[ProgressSink] = None,
    ) -> ResolvedObject:
        """Resolve, then stream the object into ``local_path``; a failed download leaves it untouched."""
        resolved = await self.resolve(source, version)

        target = Path(local_path)
        await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
        tmp_path = target.with_name(f".{target.name}.{uuid.uuid4().hex}.tmp")
        with operation_scope(), tracer.start_as_current_span(
            "catalog.fetch", attributes={"gcs.bucket": resolved.bucket, "gcs.object_key": resolved.object_key}
        ):
            async with async_timing_context("catalog.fetch", extra={"object_key": resolved.object_key}):
                try:
                    handle = await asyncio.to_thread(tmp_path.open, "wb")
                    try:
                        async for block in self.store.download_object(
                            resolved.bucket, resolved.object_key, resolved.generation
                        ):
                            await asyncio.to_thread(handle.write, block)
                            if progress is not None:
                                progress.add(len(block))
                    finally:
                        handle.close()
                    # Only a complete download replaces local_path
                    await asyncio.to_thread(tmp_path.replace, target)
                except BaseException:
                    with contextlib.suppress(FileNotFoundError):
                        tmp_path.unlink()
                    raise
        return resolved
