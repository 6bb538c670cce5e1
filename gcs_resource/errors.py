"""Error taxonomy for version resolution and parallel transfer.

Transport failures raised by an object-store client are never wrapped; they
reach the caller unchanged.
"""


class GCSResourceError(Exception):
    """Base class for errors raised by the core itself."""


class ConfigurationError(GCSResourceError, ValueError):
    """Invalid source, pattern or numeric override. Raised before any network call."""


class PreconditionError(GCSResourceError):
    """The bucket state does not allow the requested operation."""


class BucketNotVersionedError(PreconditionError):
    def __init__(self, bucket: str = ""):
        self.bucket = bucket
        super().__init__("bucket is not versioned")


class NoCandidatesError(PreconditionError):
    def __init__(self, bucket: str = "", pattern: str = ""):
        self.bucket = bucket
        self.pattern = pattern
        super().__init__("no extractions could be found - is your regexp correct?")


class AmbiguousVersionError(PreconditionError):
    """Two or more keys extract the same version token where a unique maximum is required."""

    def __init__(self, version: str, object_keys: list[str]):
        self.version = version
        self.object_keys = object_keys
        super().__init__(f"version {version!r} is extracted by more than one object: {', '.join(object_keys)}")
