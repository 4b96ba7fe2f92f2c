"""SQLite-backed library store for folders and audio entries.

Folders and entries live in flat tables keyed by id; relationships are id
references, and derived views ("entries of folder X") are index lookups.
Writes for a batch import are staged in a LibrarySession and applied in one
transaction. Safe across threads via a store lock and across processes via
SQLite locks.
"""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
import uuid
from contextlib import closing
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from ..analyzers.directory_walker import natural_key
from ..models import AudioEntry, Folder, StoreError
from .migrations import ensure_schema


logger = logging.getLogger("shelf.library")

DEFAULT_DB = os.getenv("AUDIOSHELF_DB_PATH", str(Path.cwd() / "audioshelf.db"))

FOLDER_COLUMNS = (
    "id, name, path, date_added, file_count, artwork_path, parent_id, "
    "last_played_entry_id, last_played_position, last_played_date"
)
ENTRY_COLUMNS = (
    "id, title, artist, album, genre, duration, file_path, file_name, file_size, "
    "date_added, last_played, play_count, current_position, artwork_path, folder_id"
)


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _folder_from_row(row: sqlite3.Row) -> Folder:
    return Folder(
        id=row["id"],
        name=row["name"],
        path=row["path"],
        date_added=_dt(row["date_added"]) or datetime.now(),
        file_count=int(row["file_count"]),
        artwork_path=row["artwork_path"],
        parent_id=row["parent_id"],
        last_played_entry_id=row["last_played_entry_id"],
        last_played_position=float(row["last_played_position"] or 0),
        last_played_date=_dt(row["last_played_date"]),
    )


def _entry_from_row(row: sqlite3.Row) -> AudioEntry:
    return AudioEntry(
        id=row["id"],
        title=row["title"],
        artist=row["artist"],
        album=row["album"],
        genre=row["genre"],
        duration=float(row["duration"]),
        file_path=row["file_path"],
        file_name=row["file_name"],
        file_size=int(row["file_size"]),
        date_added=_dt(row["date_added"]) or datetime.now(),
        last_played=_dt(row["last_played"]),
        play_count=int(row["play_count"]),
        current_position=float(row["current_position"]),
        artwork_path=row["artwork_path"],
        folder_id=row["folder_id"],
    )


class LibraryStore:
    def __init__(self, db_path: str = DEFAULT_DB) -> None:
        self.db_path = str(db_path)
        self._lock = threading.Lock()
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30, isolation_level=None, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.execute("PRAGMA foreign_keys=ON;")
        return conn

    def _ensure_schema(self) -> None:
        with closing(self._connect()) as conn:
            ensure_schema(conn)

    def session(self) -> "LibrarySession":
        """Start staging creations for one batch."""
        return LibrarySession(self)

    # Reads

    def fetch_folder(self, path_key: str) -> Optional[Folder]:
        with closing(self._connect()) as conn:
            row = conn.execute(
                f"SELECT {FOLDER_COLUMNS} FROM folders WHERE path=?", (path_key,)
            ).fetchone()
            return _folder_from_row(row) if row else None

    def get_folder(self, folder_id: str) -> Optional[Folder]:
        with closing(self._connect()) as conn:
            row = conn.execute(
                f"SELECT {FOLDER_COLUMNS} FROM folders WHERE id=?", (folder_id,)
            ).fetchone()
            return _folder_from_row(row) if row else None

    def get_entry(self, entry_id: str) -> Optional[AudioEntry]:
        with closing(self._connect()) as conn:
            row = conn.execute(
                f"SELECT {ENTRY_COLUMNS} FROM entries WHERE id=?", (entry_id,)
            ).fetchone()
            return _entry_from_row(row) if row else None

    def list_folders(self) -> List[Folder]:
        with closing(self._connect()) as conn:
            rows = conn.execute(f"SELECT {FOLDER_COLUMNS} FROM folders ORDER BY date_added, name").fetchall()
            return [_folder_from_row(r) for r in rows]

    def root_folders(self) -> List[Folder]:
        with closing(self._connect()) as conn:
            rows = conn.execute(f"SELECT {FOLDER_COLUMNS} FROM folders WHERE parent_id IS NULL").fetchall()
            return sorted((_folder_from_row(r) for r in rows), key=lambda f: natural_key(f.name))

    def list_entries(self, unfiled_only: bool = False) -> List[AudioEntry]:
        query = f"SELECT {ENTRY_COLUMNS} FROM entries"
        if unfiled_only:
            query += " WHERE folder_id IS NULL"
        with closing(self._connect()) as conn:
            rows = conn.execute(query + " ORDER BY date_added DESC").fetchall()
            return [_entry_from_row(r) for r in rows]

    def folder_entries(self, folder_id: str) -> List[AudioEntry]:
        """Direct entries of a folder in natural filename order."""
        with closing(self._connect()) as conn:
            rows = conn.execute(
                f"SELECT {ENTRY_COLUMNS} FROM entries WHERE folder_id=?", (folder_id,)
            ).fetchall()
        entries = [_entry_from_row(r) for r in rows]
        return sorted(entries, key=lambda e: natural_key(Path(e.file_name).stem))

    def child_folders(self, folder_id: str) -> List[Folder]:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                f"SELECT {FOLDER_COLUMNS} FROM folders WHERE parent_id=?", (folder_id,)
            ).fetchall()
        return sorted((_folder_from_row(r) for r in rows), key=lambda f: natural_key(f.name))

    def storage_keys(self) -> Set[str]:
        with closing(self._connect()) as conn:
            rows = conn.execute("SELECT file_path FROM entries").fetchall()
            return {r[0] for r in rows}

    def artwork_references(self) -> List[Dict[str, str]]:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT 'entry', id, artwork_path FROM entries WHERE artwork_path IS NOT NULL "
                "UNION ALL "
                "SELECT 'folder', id, artwork_path FROM folders WHERE artwork_path IS NOT NULL"
            ).fetchall()
            return [{"kind": r[0], "id": r[1], "artwork_path": r[2]} for r in rows]

    # Writes

    def apply(
        self,
        folders: List[Folder],
        entries: List[AudioEntry],
        reparents: Optional[List[Tuple[str, str]]] = None,
    ) -> List[str]:
        """Insert staged folders and entries in a single transaction.

        A staged folder whose path-key already exists (created by a concurrent
        batch) is merged into the existing row. Each (folder_id, parent_id) in
        reparents attaches a persisted root folder under its parent. Returns ids
        of folders that were created, reparented or received entries.
        """
        remap: Dict[str, str] = {}
        touched: List[str] = []
        with self._lock, closing(self._connect()) as conn:
            try:
                conn.execute("BEGIN IMMEDIATE;")
                for folder in folders:
                    parent_id = remap.get(folder.parent_id, folder.parent_id) if folder.parent_id else None
                    conn.execute(
                        """
                        INSERT INTO folders(id, name, path, date_added, file_count, artwork_path, parent_id)
                        VALUES (?, ?, ?, ?, 0, ?, ?)
                        ON CONFLICT(path) DO NOTHING
                        """,
                        (folder.id, folder.name, folder.path, _ts(folder.date_added), folder.artwork_path, parent_id),
                    )
                    row = conn.execute("SELECT id FROM folders WHERE path=?", (folder.path,)).fetchone()
                    if row[0] != folder.id:
                        remap[folder.id] = row[0]
                        folder.id = row[0]
                    folder.parent_id = parent_id
                    touched.append(folder.id)
                for folder_id, parent_id in reparents or []:
                    parent_id = remap.get(parent_id, parent_id)
                    conn.execute(
                        "UPDATE folders SET parent_id=? WHERE id=? AND parent_id IS NULL", (parent_id, folder_id)
                    )
                    touched.extend([folder_id, parent_id])
                for entry in entries:
                    if entry.folder_id:
                        entry.folder_id = remap.get(entry.folder_id, entry.folder_id)
                        touched.append(entry.folder_id)
                    conn.execute(
                        f"INSERT INTO entries({ENTRY_COLUMNS}) VALUES ({','.join(['?'] * 15)})",
                        (
                            entry.id, entry.title, entry.artist, entry.album, entry.genre,
                            max(0.0, entry.duration), entry.file_path, entry.file_name, entry.file_size,
                            _ts(entry.date_added), _ts(entry.last_played), entry.play_count,
                            entry.current_position, entry.artwork_path, entry.folder_id,
                        ),
                    )
                conn.execute("COMMIT;")
            except sqlite3.Error as e:
                if conn.in_transaction:
                    conn.execute("ROLLBACK;")
                raise StoreError(f"Commit failed: {e}") from e
        return list(dict.fromkeys(touched))

    def recompute_counts(self, folder_ids: Iterable[str]) -> Dict[str, int]:
        """Recompute cached entry counts for folders and all their ancestors.

        count(folder) = direct entries + sum(count(child)), evaluated
        bottom-up. Returns the new count per updated folder id.
        """
        wanted = set(folder_ids)
        if not wanted:
            return {}
        with self._lock, closing(self._connect()) as conn:
            try:
                conn.execute("BEGIN IMMEDIATE;")
                parents: Dict[str, Optional[str]] = {
                    r[0]: r[1] for r in conn.execute("SELECT id, parent_id FROM folders").fetchall()
                }
                direct: Dict[str, int] = {
                    r[0]: int(r[1])
                    for r in conn.execute(
                        "SELECT folder_id, COUNT(1) FROM entries WHERE folder_id IS NOT NULL GROUP BY folder_id"
                    ).fetchall()
                }
                children: Dict[str, List[str]] = {}
                for folder_id, parent_id in parents.items():
                    if parent_id:
                        children.setdefault(parent_id, []).append(folder_id)

                affected: Set[str] = set()
                for folder_id in wanted:
                    seen: Set[str] = set()
                    current: Optional[str] = folder_id
                    while current and current in parents and current not in seen:
                        seen.add(current)
                        affected.add(current)
                        current = parents[current]

                counts: Dict[str, int] = {}

                def count(folder_id: str, visiting: Set[str]) -> int:
                    if folder_id in counts:
                        return counts[folder_id]
                    if folder_id in visiting:
                        raise StoreError(f"Folder cycle detected at {folder_id}")
                    visiting.add(folder_id)
                    total = direct.get(folder_id, 0)
                    for child_id in children.get(folder_id, []):
                        total += count(child_id, visiting)
                    visiting.discard(folder_id)
                    counts[folder_id] = total
                    return total

                updated: Dict[str, int] = {}
                for folder_id in affected:
                    updated[folder_id] = count(folder_id, set())
                    conn.execute("UPDATE folders SET file_count=? WHERE id=?", (updated[folder_id], folder_id))
                conn.execute("COMMIT;")
                return updated
            except (sqlite3.Error, StoreError) as e:
                if conn.in_transaction:
                    conn.execute("ROLLBACK;")
                raise StoreError(f"Count update failed: {e}") from e

    def delete_entry(self, entry_id: str) -> Optional[AudioEntry]:
        """Remove an entry row and return it so its files can be released."""
        with self._lock, closing(self._connect()) as conn:
            row = conn.execute(f"SELECT {ENTRY_COLUMNS} FROM entries WHERE id=?", (entry_id,)).fetchone()
            if not row:
                return None
            conn.execute("DELETE FROM entries WHERE id=?", (entry_id,))
            conn.execute(
                "UPDATE folders SET last_played_entry_id=NULL, last_played_position=0 WHERE last_played_entry_id=?",
                (entry_id,),
            )
            return _entry_from_row(row)

    def delete_folder(self, folder_id: str) -> Tuple[List[AudioEntry], List[str]]:
        """Delete a folder with its subfolders and entries.

        Returns the removed entries and the artwork references of every
        removed folder.
        """
        with self._lock, closing(self._connect()) as conn:
            conn.execute("BEGIN IMMEDIATE;")
            subtree = [
                r[0]
                for r in conn.execute(
                    """
                    WITH RECURSIVE subtree(id) AS (
                      SELECT id FROM folders WHERE id=?
                      UNION ALL
                      SELECT f.id FROM folders f JOIN subtree s ON f.parent_id = s.id
                    )
                    SELECT id FROM subtree
                    """,
                    (folder_id,),
                ).fetchall()
            ]
            if not subtree:
                conn.execute("ROLLBACK;")
                return [], []
            q_marks = ",".join(["?"] * len(subtree))
            artwork = [
                r[0]
                for r in conn.execute(
                    f"SELECT artwork_path FROM folders WHERE id IN ({q_marks}) AND artwork_path IS NOT NULL", subtree
                ).fetchall()
            ]
            rows = conn.execute(
                f"SELECT {ENTRY_COLUMNS} FROM entries WHERE folder_id IN ({q_marks})", subtree
            ).fetchall()
            conn.execute(f"DELETE FROM entries WHERE folder_id IN ({q_marks})", subtree)
            conn.execute("DELETE FROM folders WHERE id=?", (folder_id,))
            conn.execute("COMMIT;")
            return [_entry_from_row(r) for r in rows], artwork

    def record_playback(self, entry_id: str, position: float, started: bool = False) -> Optional[AudioEntry]:
        """Store a playback offset, clamped to [0, duration].

        When started is set the play count is bumped. The owning folder's
        resume pointers follow the entry.
        """
        now = datetime.now()
        with self._lock, closing(self._connect()) as conn:
            row = conn.execute(f"SELECT {ENTRY_COLUMNS} FROM entries WHERE id=?", (entry_id,)).fetchone()
            if not row:
                return None
            entry = _entry_from_row(row)
            entry.current_position = min(max(0.0, float(position)), entry.duration)
            entry.last_played = now
            if started:
                entry.play_count += 1
            conn.execute("BEGIN IMMEDIATE;")
            conn.execute(
                "UPDATE entries SET current_position=?, last_played=?, play_count=? WHERE id=?",
                (entry.current_position, _ts(now), entry.play_count, entry_id),
            )
            if entry.folder_id:
                conn.execute(
                    """
                    UPDATE folders
                    SET last_played_entry_id=?, last_played_position=?, last_played_date=?
                    WHERE id=?
                    """,
                    (entry_id, entry.current_position, _ts(now), entry.folder_id),
                )
            conn.execute("COMMIT;")
            return entry

    def set_entry_artwork(self, entry_id: str, artwork_path: Optional[str]) -> Optional[str]:
        """Replace an entry's artwork reference; returns the previous one."""
        return self._swap_artwork("entries", entry_id, artwork_path)

    def set_folder_artwork(self, folder_id: str, artwork_path: Optional[str]) -> Optional[str]:
        return self._swap_artwork("folders", folder_id, artwork_path)

    def _swap_artwork(self, table: str, row_id: str, artwork_path: Optional[str]) -> Optional[str]:
        with self._lock, closing(self._connect()) as conn:
            row = conn.execute(f"SELECT artwork_path FROM {table} WHERE id=?", (row_id,)).fetchone()
            if row is None:
                raise KeyError(row_id)
            conn.execute(f"UPDATE {table} SET artwork_path=? WHERE id=?", (artwork_path, row_id))
            return row[0]


class LibrarySession:
    """Stages folder and entry creations for one batch until commit()."""

    def __init__(self, store: LibraryStore):
        self.store = store
        self.folders: List[Folder] = []
        self.entries: List[AudioEntry] = []
        self._folders_by_key: Dict[str, Folder] = {}
        self.reparents: List[Tuple[str, str]] = []
        self.touched_folder_ids: List[str] = []

    def fetch_folder(self, path_key: str) -> Optional[Folder]:
        staged = self._folders_by_key.get(path_key)
        if staged is not None:
            return staged
        return self.store.fetch_folder(path_key)

    def create_folder(self, name: str, path_key: str, parent_id: Optional[str] = None, artwork_path: Optional[str] = None) -> Folder:
        folder = Folder(
            id=uuid.uuid4().hex,
            name=name,
            path=path_key,
            parent_id=parent_id,
            artwork_path=artwork_path,
        )
        self.folders.append(folder)
        self._folders_by_key[path_key] = folder
        return folder

    def reparent(self, folder: Folder, parent_id: str) -> None:
        """Attach a root folder under parent_id when the batch commits."""
        if self.is_staged(folder):
            folder.parent_id = parent_id
        else:
            self.reparents.append((folder.id, parent_id))

    def is_staged(self, folder: Folder) -> bool:
        return self._folders_by_key.get(folder.path) is folder

    def create_entry(self, **fields: Any) -> AudioEntry:
        fields.setdefault("id", uuid.uuid4().hex)
        entry = AudioEntry(**fields)
        self.entries.append(entry)
        return entry

    def commit(self) -> List[str]:
        """Apply everything staged in one transaction; raises StoreError."""
        self.touched_folder_ids = self.store.apply(self.folders, self.entries, self.reparents)
        logger.info(f"Committed {len(self.entries)} entries and {len(self.folders)} new folders")
        return self.touched_folder_ids
