"""Utility functions for the gcs-resource core."""

import dataclasses
import logging
import os
import typing
from typing import Any
from typing import Callable
from typing import TypeVar

from gcs_resource.errors import ConfigurationError


T = TypeVar("T")

logger = logging.getLogger(__name__)


def env(key: str, convert: Callable[[str], T] = typing.cast(Callable[[str], T], str), **kwargs: Any) -> T:
    """Load a value from environment variables with optional default and type conversion."""
    key, partition, default = key.partition(":")

    def default_factory(
        key_val: str = key, default_val: str = default, convert_func: Callable[[str], T] = convert
    ) -> T:
        if key_val in os.environ:
            raw = os.environ[key_val]
        elif partition == ":":
            raw = default_val
        else:
            raise KeyError(key_val)

        try:
            return convert_func(raw)
        except ValueError as e:
            raise ConfigurationError(f"invalid value for {key_val}: {raw!r}") from e

    return typing.cast(T, dataclasses.field(default_factory=default_factory, **kwargs))


def as_bool(value: str) -> bool:
    return value.lower() == "true"


def format_mib(size_bytes: int) -> str:
    return f"{size_bytes / (1024 * 1024):.1f}MiB"
