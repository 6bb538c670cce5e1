from .catalog import VersionCatalog
from .ordering import compare
from .ordering import latest
from .ordering import sort_extractions
from .token import Extraction
from .token import VersionToken
from .token import compile_pattern
from .token import extract
from .token import listing_prefix
from .token import prefix_hint


__all__ = [
    "VersionCatalog",
    "VersionToken",
    "Extraction",
    "compare",
    "compile_pattern",
    "extract",
    "latest",
    "listing_prefix",
    "prefix_hint",
    "sort_extractions",
]
