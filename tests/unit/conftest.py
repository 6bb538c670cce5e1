import os
from pathlib import Path
from typing import Generator

import dotenv
import pytest


@pytest.fixture(scope="session", autouse=True)
def _load_test_env() -> Generator[None, None, None]:
    """Load test environment variables from base + local env files."""
    project_root = Path(__file__).parents[2]
    dotenv.load_dotenv(project_root / ".env.defaults", override=True)
    dotenv.load_dotenv(project_root / ".env.test-local", override=True)
    os.environ.setdefault("ENVIRONMENT", "test")
    yield


@pytest.fixture
def make_file(tmp_path: Path):
    """Write a file of ``size`` deterministic bytes and return its path."""

    def _make(size: int, name: str = "artifact.tgz") -> str:
        path = tmp_path / name
        path.write_bytes(bytes(i % 251 for i in range(size)))
        return str(path)

    return _make
