"""Pytest configuration and shared fixtures."""

import os
from pathlib import Path
from unittest.mock import Mock

import pytest

from audioshelf.library import LibraryStore
from audioshelf.organizer import ImportCoordinator


@pytest.fixture(scope="session", autouse=True)
def _isolate_library(tmp_path_factory):
    """Ensure tests never touch the user's real library or database."""
    base = tmp_path_factory.mktemp("shelf")
    os.environ["AUDIOSHELF_DB_PATH"] = str(base / "tests.sqlite")
    os.environ["AUDIOSHELF_LIBRARY_DIR"] = str(base / "library")
    yield


@pytest.fixture
def library_dir(tmp_path):
    path = tmp_path / "library"
    path.mkdir()
    return path


@pytest.fixture
def store(tmp_path):
    return LibraryStore(str(tmp_path / "library.db"))


@pytest.fixture
def coordinator(store, library_dir):
    return ImportCoordinator(store, library_dir, concurrency=2)


@pytest.fixture
def mock_audio():
    """A mutagen-like object with a two minute length and no tags."""
    mock = Mock()
    mock.info.length = 120.0
    mock.tags = None
    mock.pictures = []
    return mock


@pytest.fixture
def write_audio():
    """Write placeholder bytes at a path, creating parent directories."""

    def _write(path: Path, data: bytes = b"fake audio data") -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    return _write
