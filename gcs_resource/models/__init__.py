from .resource import ResolvedObject
from .resource import Source
from .resource import UploadParams
from .resource import Version
from .resource import generation_from_wire
from .resource import generation_to_wire


__all__ = [
    "ResolvedObject",
    "Source",
    "UploadParams",
    "Version",
    "generation_from_wire",
    "generation_to_wire",
]
