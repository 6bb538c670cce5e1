import dataclasses

import dotenv

from gcs_resource.errors import ConfigurationError
from gcs_resource.utils import as_bool
from gcs_resource.utils import env


dotenv.load_dotenv()


@dataclasses.dataclass
class Config:
    """Runtime settings for resolution and transfer."""

    # Logging
    log_level: str = env("LOG_LEVEL:INFO")
    loki_url: str = env("LOKI_URL:", convert=str)
    loki_enabled: bool = env("LOKI_ENABLED:false", convert=as_bool)
    environment: str = env("ENVIRONMENT:local")

    # Parallel upload
    # Threshold in MiB; 0 disables chunking
    parallel_upload_threshold_mb: int = env("GCS_PARALLEL_UPLOAD_THRESHOLD_MB:0", convert=int)
    max_parallelism: int = env("GCS_MAX_PARALLELISM:32", convert=int)
    upload_max_concurrency: int = env("GCS_UPLOAD_MAX_CONCURRENCY:32", convert=int)
    cleanup_parts_on_failure: bool = env("GCS_CLEANUP_PARTS_ON_FAILURE:false", convert=as_bool)
    read_block_size: int = env("GCS_READ_BLOCK_SIZE:1048576", convert=int)

    # Filesystem-backed store for local runs
    local_store_root: str = env("GCS_LOCAL_STORE_ROOT:/tmp/gcs_resource_store")

    @property
    def parallel_upload_threshold_bytes(self) -> int:
        return self.parallel_upload_threshold_mb << 20


def get_config() -> Config:
    """Get application configuration."""
    cfg = Config()

    if cfg.max_parallelism < 1:
        raise ConfigurationError("GCS_MAX_PARALLELISM must be at least 1")
    if cfg.upload_max_concurrency < 1:
        raise ConfigurationError("GCS_UPLOAD_MAX_CONCURRENCY must be at least 1")
    if cfg.read_block_size < 1:
        raise ConfigurationError("GCS_READ_BLOCK_SIZE must be at least 1")

    return cfg
