"""Request and result models shared by the catalog and the upload path."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from gcs_resource.errors import ConfigurationError


INT64_MAX = 2**63 - 1
INT64_MIN = -(2**63)


def generation_from_wire(value: int) -> Optional[int]:
    """Map the external generation number to the internal optional form (0 means unspecified)."""
    return None if value == 0 else int(value)


def generation_to_wire(generation: Optional[int]) -> int:
    return 0 if generation is None else int(generation)


class Source(BaseModel):
    bucket: str = ""
    regexp: str = ""
    versioned_file: str = ""

    def check_valid(self) -> None:
        """Raise ConfigurationError unless exactly one resolution mode is configured."""
        if not self.bucket:
            raise ConfigurationError("please specify the bucket")
        if self.regexp and self.versioned_file:
            raise ConfigurationError("please specify either regexp or versioned_file")
        if not self.regexp and not self.versioned_file:
            raise ConfigurationError("please specify either regexp or versioned_file")

    @property
    def is_pattern_mode(self) -> bool:
        return bool(self.regexp)


class Version(BaseModel):
    path: str = ""
    generation: str = ""

    def generation_value(self) -> Optional[int]:
        """Parse the generation override; empty and "0" both mean the live generation."""
        raw = self.generation.strip()
        if not raw:
            return None
        try:
            value = int(raw, 10)
        except ValueError as e:
            raise ConfigurationError(f"invalid generation {self.generation!r}: must be an integer") from e
        if value < INT64_MIN or value > INT64_MAX:
            raise ConfigurationError(f"invalid generation {self.generation!r}: out of int64 range")
        return generation_from_wire(value)

    @classmethod
    def for_generation(cls, generation: Optional[int]) -> "Version":
        return cls(generation=str(generation_to_wire(generation)))


class UploadParams(BaseModel):
    file: str
    content_type: str = ""
    predefined_acl: str = ""
    # MiB; 0 disables parallel upload
    parallel_upload_threshold: int = 0

    def check_valid(self) -> None:
        if not self.file:
            raise ConfigurationError("please specify the file")


class ResolvedObject(BaseModel):
    bucket: str
    object_key: str
    generation: Optional[int] = None
    # Raw version token, set in pattern mode when the key matched the pattern
    version: Optional[str] = None

    @property
    def wire_generation(self) -> int:
        return generation_to_wire(self.generation)

    def url(self) -> str:
        if self.generation is not None:
            return f"gs://{self.bucket}/{self.object_key}#{self.generation}"
        return f"gs://{self.bucket}/{self.object_key}"
