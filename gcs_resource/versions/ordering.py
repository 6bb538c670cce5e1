"""Total order over version tokens and extractions."""

from __future__ import annotations

import logging
from typing import Iterable
from typing import List

from gcs_resource.errors import AmbiguousVersionError
from gcs_resource.versions.token import Extraction
from gcs_resource.versions.token import VersionToken


logger = logging.getLogger(__name__)


def compare(a: VersionToken, b: VersionToken) -> int:
    """Three-way comparison: digit runs numerically, other runs by code point, shorter first."""
    if a.sort_key < b.sort_key:
        return -1
    if a.sort_key > b.sort_key:
        return 1
    return 0


def _extraction_key(extraction: Extraction) -> tuple:
    # Equal tokens fall back to the object key so the order is deterministic
    return (extraction.version.sort_key, extraction.object_key)


def sort_extractions(extractions: Iterable[Extraction]) -> List[Extraction]:
    """Return extractions in ascending version order, independent of listing order."""
    return sorted(extractions, key=_extraction_key)


def latest(extractions: Iterable[Extraction], *, require_unique: bool = False) -> Extraction | None:
    """Pick the extraction with the greatest version.

    When several keys extract the maximal version, the greatest object key
    wins and a warning is logged; with ``require_unique`` this raises
    AmbiguousVersionError instead.
    """
    ordered = sort_extractions(extractions)
    if not ordered:
        return None

    top = ordered[-1]
    tied = [e.object_key for e in ordered if e.version == top.version]
    if len(tied) > 1:
        if require_unique:
            raise AmbiguousVersionError(top.version.raw, tied)
        logger.warning(f"Version {top.version.raw!r} extracted by {len(tied)} objects {tied}; picking {top.object_key}")
    return top
