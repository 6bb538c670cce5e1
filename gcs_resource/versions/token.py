"""Version tokens extracted from object keys.

A token is the substring captured by the source regexp. For ordering it is
split into maximal runs of digits and non-digits, so "1.5.6-build.10" becomes
[1, ".", 5, ".", 6, "-build.", 10].
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from dataclasses import field
from typing import Optional
from typing import Tuple
from typing import Union

from gcs_resource.errors import ConfigurationError


_RUN_RE = re.compile(r"\d+|\D+")
_REGEX_META = frozenset(".^$*+?{}[]\\|()")

VERSION_GROUP = "version"

Segment = Union[int, str]
# (0, int) for digit runs and (1, str) for the rest; digit runs sort first on a kind mismatch
SegmentKey = Tuple[int, Union[int, str]]


def split_segments(raw: str) -> list[Segment]:
    return [int(run) if run.isdigit() else run for run in _RUN_RE.findall(raw)]


@dataclass(frozen=True)
class VersionToken:
    raw: str
    sort_key: Tuple[Tuple[SegmentKey, ...], str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        keyed = tuple((0, run) if isinstance(run, int) else (1, run) for run in split_segments(self.raw))
        object.__setattr__(self, "sort_key", (keyed, self.raw))

    @property
    def segments(self) -> list[Segment]:
        return split_segments(self.raw)

    def __str__(self) -> str:
        return self.raw


@dataclass(frozen=True)
class Extraction:
    object_key: str
    version: VersionToken


@functools.lru_cache(maxsize=128)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a source regexp, rejecting patterns that capture nothing."""
    try:
        compiled = re.compile(pattern)
    except re.error as e:
        raise ConfigurationError(f"invalid regexp {pattern!r}: {e}") from e
    if compiled.groups == 0:
        raise ConfigurationError(f"regexp {pattern!r} must contain a capturing group for the version")
    return compiled


def extract(object_key: str, pattern: str) -> Tuple[Optional[VersionToken], bool]:
    """Extract the version token from an object key.

    With several groups, the one named ``version`` wins; otherwise the first
    group is used. A key that does not match is not a candidate.
    """
    compiled = compile_pattern(pattern)
    match = compiled.search(object_key)
    if match is None:
        return None, False

    if VERSION_GROUP in compiled.groupindex:
        captured = match.group(VERSION_GROUP)
    else:
        captured = match.group(1)
    if captured is None:
        return None, False
    return VersionToken(captured), True


def prefix_hint(pattern: str) -> str:
    """Literal leading directory components of a pattern.

    Only whole directory components without regex metacharacters are kept.
    Publishing uses this as the directory uploads land in.
    """
    if "|" in pattern:
        return ""
    if pattern.startswith("^"):
        pattern = pattern[1:]
    components = pattern.split("/")
    literal: list[str] = []
    for component in components[:-1]:
        if any(ch in _REGEX_META for ch in component):
            break
        literal.append(component)
    if not literal:
        return ""
    return "/".join(literal) + "/"


def listing_prefix(pattern: str) -> str:
    """Prefix a bucket listing may be narrowed to without losing candidates.

    Extraction searches anywhere in the key, so only a pattern anchored with
    ``^`` pins its literal directory components to the start of the key.
    """
    if not pattern.startswith("^"):
        return ""
    return prefix_hint(pattern)
