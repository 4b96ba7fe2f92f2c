"""Bracketed read access around every filesystem read.

Each read acquires its own scope; scopes are never inherited from a parent
directory. A refused grant is not fatal: callers proceed and handle any
subsequent read failure as an ordinary I/O error.
"""

from __future__ import annotations

import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


logger = logging.getLogger("shelf.scope")


class AccessProvider:
    """Platform hook that grants and revokes read permission for a path."""

    def start_access(self, path: Path) -> bool:
        raise NotImplementedError

    def stop_access(self, path: Path) -> None:
        raise NotImplementedError


class PosixAccessProvider(AccessProvider):
    """POSIX has no explicit grants; readability stands in for one."""

    def start_access(self, path: Path) -> bool:
        return os.access(path, os.R_OK)

    def stop_access(self, path: Path) -> None:
        return None


class ResourceScope:
    def __init__(self, provider: AccessProvider | None = None):
        self.provider = provider or PosixAccessProvider()
        self._lock = threading.Lock()
        self._active = 0

    @property
    def active(self) -> int:
        """Number of currently granted, unreleased scopes."""
        return self._active

    @contextmanager
    def acquire(self, path: Path) -> Iterator[bool]:
        """Yield whether access was granted; release on every exit path."""
        try:
            granted = bool(self.provider.start_access(path))
        except OSError as e:
            logger.warning(f"Could not acquire access to {path}: {e}")
            granted = False
        if not granted:
            logger.debug(f"Access not granted for {path}; continuing optimistically")
        else:
            with self._lock:
                self._active += 1
        try:
            yield granted
        finally:
            if granted:
                try:
                    self.provider.stop_access(path)
                finally:
                    with self._lock:
                        self._active -= 1
