"""Configured entry point for the check, in and out commands."""

import logging
from typing import List
from typing import Optional

from gcs_resource.adapters.fs_object_store import FileSystemObjectStore
from gcs_resource.adapters.object_store import ObjectStoreClient
from gcs_resource.adapters.object_store import ProgressSink
from gcs_resource.config import Config
from gcs_resource.config import get_config
from gcs_resource.logging_config import setup_loki_logging
from gcs_resource.models import ResolvedObject
from gcs_resource.models import Source
from gcs_resource.models import UploadParams
from gcs_resource.models import Version
from gcs_resource.versions.catalog import VersionCatalog
from gcs_resource.writer.parallel_upload import publish


logger = logging.getLogger(__name__)


class GCSResource:
    def __init__(self, store: ObjectStoreClient, config: Config) -> None:
        self.store = store
        self.config = config
        self.catalog = VersionCatalog(store)

    @classmethod
    def from_env(cls, command: str, store: Optional[ObjectStoreClient] = None) -> "GCSResource":
        """Load config, set up logging and open the store.

        Without an explicit store, objects live under GCS_LOCAL_STORE_ROOT.
        """
        config = get_config()
        setup_loki_logging(config, command)
        if store is None:
            store = FileSystemObjectStore(config.local_store_root, config.read_block_size)
            logger.info(f"Using local object store at {config.local_store_root}")
        return cls(store, config)

    async def check(self, source: Source, current: Optional[Version] = None) -> List[Version]:
        return await self.catalog.check(source, current)

    async def fetch(
        self,
        source: Source,
        version: Optional[Version],
        local_path: str,
        *,
        progress: Optional[ProgressSink] = None,
    ) -> ResolvedObject:
        return await self.catalog.fetch(source, version, local_path, progress=progress)

    async def publish(
        self,
        source: Source,
        params: UploadParams,
        local_file: str,
        *,
        progress: Optional[ProgressSink] = None,
    ) -> ResolvedObject:
        return await publish(self.store, source, params, local_file, config=self.config, progress=progress)
