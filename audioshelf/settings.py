"""Environment-driven settings for the library, importer and server."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


DEFAULT_LIBRARY_DIR = Path.home() / "Music" / "audioshelf"


@dataclass
class Settings:
    library_dir: Path
    db_path: Path
    import_concurrency: int = 4
    log_dir: Optional[Path] = None

    @property
    def media_dir(self) -> Path:
        return self.library_dir / "Media"

    @property
    def artwork_dir(self) -> Path:
        return self.library_dir / "Artwork"

    @classmethod
    def from_env(cls, library_dir: Optional[Path] = None) -> "Settings":
        """Build settings from AUDIOSHELF_* env vars; an explicit library_dir wins."""
        if library_dir is None:
            env_dir = os.getenv("AUDIOSHELF_LIBRARY_DIR")
            library_dir = Path(env_dir) if env_dir else DEFAULT_LIBRARY_DIR
        library_dir = Path(library_dir).expanduser()

        env_db = os.getenv("AUDIOSHELF_DB_PATH")
        db_path = Path(env_db) if env_db else library_dir / "library.db"

        try:
            concurrency = int(os.getenv("AUDIOSHELF_IMPORT_CONCURRENCY", "4"))
        except ValueError:
            concurrency = 4

        log_dir = os.getenv("AUDIOSHELF_LOG_DIR")
        return cls(
            library_dir=library_dir,
            db_path=db_path,
            import_concurrency=max(1, concurrency),
            log_dir=Path(log_dir) if log_dir else None,
        )

    def ensure_dirs(self) -> None:
        self.library_dir.mkdir(parents=True, exist_ok=True)
        self.media_dir.mkdir(parents=True, exist_ok=True)
        self.artwork_dir.mkdir(parents=True, exist_ok=True)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)


def configure_logging(settings: Settings, level: int = logging.INFO) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_dir:
        settings.log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(settings.log_dir / "audioshelf.log", encoding="utf-8"))
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=handlers,
    )
