"""Batch import orchestration and library maintenance."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .analyzers import DirectoryWalker, FolderNode, FolderTree, PathClassifier, PathKind, PatternGrouper, SmartGroup
from .analyzers.directory_walker import common_file_prefix
from .analyzers.pattern_grouper import MIN_GROUP_SIZE
from .library import LibraryStore
from .metadata import MetadataExtractor
from .models import (
    FolderProcessingError,
    ImportBatch,
    ImportResult,
    InvalidFile,
    StoreError,
)
from .organizers import ArtworkStore, FileOrganizer
from .scope import ResourceScope
from .trackers import DuplicateGuard, ProgressTracker


logger = logging.getLogger("shelf.organizer")


@dataclass
class WorkItem:
    """One file to import with the folder node or smart group it belongs to."""

    path: Path
    node: Optional[FolderNode] = None
    group: Optional[SmartGroup] = None

    @property
    def folder_key(self) -> Optional[str]:
        if self.node is not None:
            return self.node.key
        if self.group is not None:
            return self.group.key
        return None


@dataclass
class EntryDraft:
    """Extraction-phase output waiting for the persist phase."""

    index: int
    folder_key: Optional[str]
    storage_key: str
    fields: Dict[str, Any] = field(default_factory=dict)
    artwork_path: Optional[str] = None


class ImportCoordinator:
    """Turns a list of filesystem paths into library folders and entries.

    Scan phase (classify, walk, group, validate, copy, extract) runs without
    touching the store; the persist phase applies the whole batch in one
    commit and then recomputes folder counts.
    """

    def __init__(
        self,
        store: LibraryStore,
        library_dir: Path,
        scope: Optional[ResourceScope] = None,
        concurrency: int = 4,
    ):
        """Initialize the import coordinator.

        Args:
            store: Library store receiving folders and entries
            library_dir: Root of the media and artwork areas
            scope: Resource scope shared by every component that reads input
            concurrency: Maximum files extracted at the same time
        """
        self.store = store
        self.library_dir = library_dir
        self.scope = scope or ResourceScope()
        self.concurrency = max(1, concurrency)
        self._initialize_components()

    def _initialize_components(self):
        self.classifier = PathClassifier()
        self.walker = DirectoryWalker(self.scope, self.classifier)
        self.grouper = PatternGrouper()
        self.duplicate_guard = DuplicateGuard()
        self.metadata_extractor = MetadataExtractor(self.scope)
        self.file_organizer = FileOrganizer(self.library_dir, self.scope)
        self.artwork_store = ArtworkStore(self.library_dir)
        self.progress_tracker = ProgressTracker()
        self._persist_lock = asyncio.Lock()

    # Batch import

    async def import_paths(self, paths: Sequence[Union[str, Path]]) -> ImportBatch:
        """Import files and directories as one batch.

        Per-file failures are recorded in the batch results and never abort
        the batch. A failed commit is reported as ImportBatch.commit_error.
        """
        progress = ProgressTracker()
        self.progress_tracker = progress
        results: List[Optional[ImportResult]] = []
        items: List[WorkItem] = []

        progress.set_stage("classifying")
        individual: List[Path] = []
        directories: List[Path] = []
        early_results: List[ImportResult] = []
        for raw in paths:
            path = Path(raw).expanduser()
            kind = await asyncio.to_thread(self._classify, path)
            if kind is PathKind.DIRECTORY:
                directories.append(path)
            elif kind is PathKind.FILE:
                individual.append(path)
            else:
                early_results.append(ImportResult.failed(path, InvalidFile("File not found")))

        progress.set_stage("walking")
        tree = FolderTree()
        for directory in directories:
            await asyncio.to_thread(self.walker.walk, directory, tree)
            if str(directory.absolute()) not in tree.nodes:
                early_results.append(
                    ImportResult.failed(directory, FolderProcessingError(f"Could not read {directory.name}"))
                )
        progress.add_folders(len(tree.nodes))

        progress.set_stage("grouping")
        candidates = [p for p in individual if self.classifier.is_supported(p)]
        groups = self.grouper.group(candidates)
        progress.add_smart_groups(len(groups))
        membership = {path: group for group in groups for path in group.files}

        items.extend(WorkItem(path=p, group=membership.get(p)) for p in individual)
        items.extend(WorkItem(path=p, node=node) for p, node in tree.file_pairs())
        logger.info(
            f"Importing {len(items)} files ({len(individual)} selected, "
            f"{tree.total_files} from {len(tree.nodes)} folders, {len(groups)} smart groups)"
        )

        progress.set_stage("validating")
        existing_keys = await asyncio.to_thread(self.store.storage_keys)
        folder_artwork = await asyncio.to_thread(self._prepare_folder_artwork, tree)

        progress.set_stage("extracting")
        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(index: int, item: WorkItem):
            async with semaphore:
                return await asyncio.to_thread(self._prepare_item, index, item, existing_keys)

        prepared = await asyncio.gather(*(bounded(i, item) for i, item in enumerate(items)))
        drafts: List[EntryDraft] = []
        for result, draft in prepared:
            results.append(result)
            if draft is not None:
                drafts.append(draft)

        progress.set_stage("persisting")
        async with self._persist_lock:
            commit_error, folder_failures = await asyncio.to_thread(
                self._persist, tree, groups, drafts, folder_artwork
            )

        for index, error in folder_failures.items():
            results[index] = ImportResult.failed(items[index].path, error)

        if commit_error:
            await asyncio.to_thread(self._discard, drafts, folder_artwork)

        batch = ImportBatch(results=[r for r in results if r is not None] + early_results, commit_error=commit_error)
        for result in batch.results:
            progress.record(result)
        progress.set_stage("done")
        logger.info(
            f"Import finished: {len(batch.succeeded)} succeeded, {len(batch.failed)} failed"
            + (f", commit failed: {commit_error}" if commit_error else "")
        )
        return batch

    def _classify(self, path: Path) -> PathKind:
        with self.scope.acquire(path):
            return self.classifier.classify(path)

    def _prepare_folder_artwork(self, tree: FolderTree) -> Dict[str, str]:
        """Store cover images for folders that have none yet."""
        refs: Dict[str, str] = {}
        for node in tree.ordered():
            if node.artwork_file is None:
                continue
            try:
                existing = self.store.fetch_folder(node.key)
            except sqlite3.Error as e:
                logger.warning(f"Could not look up folder {node.key}: {e}")
                continue
            if existing is not None and existing.artwork_path:
                continue
            data = self._read_image(node.artwork_file)
            if data is None:
                continue
            ref = self.artwork_store.save(data, node.name.replace("/", "_"))
            if ref:
                logger.info(f"Saved folder artwork for {node.name}")
                refs[node.key] = ref
        return refs

    def _read_image(self, image: Path) -> Optional[bytes]:
        with self.scope.acquire(image):
            try:
                return image.read_bytes()
            except OSError as e:
                logger.warning(f"Could not read artwork {image}: {e}")
                return None

    def _prepare_item(self, index: int, item: WorkItem, existing_keys: set) -> Tuple[ImportResult, Optional[EntryDraft]]:
        path = item.path
        try:
            with self.scope.acquire(path):
                self.classifier.validate_format(path)
                self.duplicate_guard.check(path, existing_keys)
                if not path.is_file():
                    raise InvalidFile("Not a regular file")
                if path.stat().st_size == 0:
                    raise InvalidFile("File is empty")
                storage_key = self.file_organizer.copy_into_library(path)

            local_copy = self.file_organizer.resolve(storage_key)
            try:
                metadata = self.metadata_extractor.extract(local_copy)
                artwork_path = self._entry_artwork(local_copy, path, item)
            except Exception:
                self.file_organizer.remove(storage_key)
                raise

            draft = EntryDraft(
                index=index,
                folder_key=item.folder_key,
                storage_key=storage_key,
                artwork_path=artwork_path,
                fields={
                    "title": metadata.title or path.stem,
                    "artist": metadata.artist,
                    "album": metadata.album,
                    "genre": metadata.genre,
                    "duration": metadata.duration,
                    "file_path": storage_key,
                    "file_name": path.name,
                    "file_size": metadata.file_size,
                    "artwork_path": artwork_path,
                },
            )
            return ImportResult.ok(path), draft
        except Exception as e:
            logger.warning(f"Failed to import {path.name}: {e}")
            return ImportResult.failed(path, e), None

    def _entry_artwork(self, local_copy: Path, source: Path, item: WorkItem) -> Optional[str]:
        """Embedded artwork first, then an image beside the source file."""
        data = self.metadata_extractor.extract_artwork(local_copy)
        if data is None:
            source_dir = item.node.source_dir if item.node is not None else source.parent
            with self.scope.acquire(source_dir):
                try:
                    siblings = [p for p in source_dir.iterdir() if not self.classifier.is_hidden(p)]
                except OSError:
                    siblings = []
            image = self.walker.detect_artwork(siblings, matching_name=common_file_prefix(source.name))
            if image is not None:
                data = self._read_image(image)
        if data is None:
            return None
        return self.artwork_store.save(data, source.stem)

    def _persist(
        self,
        tree: FolderTree,
        groups: List[SmartGroup],
        drafts: List[EntryDraft],
        folder_artwork: Dict[str, str],
    ) -> Tuple[Optional[str], Dict[int, Exception]]:
        session = self.store.session()
        folder_ids: Dict[str, str] = {}
        failed_keys: Dict[str, Exception] = {}
        artwork_updates: List[Tuple[str, str]] = []

        def resolve(node: FolderNode) -> Optional[str]:
            if node.key in folder_ids:
                return folder_ids[node.key]
            if node.key in failed_keys:
                return None
            parent_id = None
            if node.parent_key and node.parent_key in tree.nodes:
                parent_id = resolve(tree.nodes[node.parent_key])
            try:
                folder = session.fetch_folder(node.key)
                if folder is None:
                    folder = session.create_folder(
                        node.name, node.key, parent_id=parent_id, artwork_path=folder_artwork.get(node.key)
                    )
                else:
                    if folder.parent_id is None and parent_id is not None:
                        # Imported earlier as a root; now its parent directory is in the library
                        session.reparent(folder, parent_id)
                    ref = folder_artwork.get(node.key)
                    if ref and not folder.artwork_path:
                        artwork_updates.append((folder.id, ref))
                    elif ref and folder.artwork_path != ref:
                        self.artwork_store.remove(folder_artwork.pop(node.key))
            except (sqlite3.Error, StoreError) as e:
                failed_keys[node.key] = FolderProcessingError(str(e))
                self.artwork_store.remove(folder_artwork.pop(node.key, None))
                return None
            folder_ids[node.key] = folder.id
            return folder.id

        for node in tree.ordered():
            resolve(node)

        members: Dict[str, int] = {}
        for draft in drafts:
            if draft.folder_key is not None:
                members[draft.folder_key] = members.get(draft.folder_key, 0) + 1
        for group in groups:
            if members.get(group.key, 0) < MIN_GROUP_SIZE:
                logger.info(f"Smart group '{group.name}' left with too few files; importing them unfiled")
                continue
            folder = session.create_folder(group.name, group.key)
            folder_ids[group.key] = folder.id

        folder_failures: Dict[int, Exception] = {}
        for draft in drafts:
            folder_id = None
            if draft.folder_key is not None:
                if draft.folder_key in failed_keys:
                    folder_failures[draft.index] = failed_keys[draft.folder_key]
                    self.file_organizer.remove(draft.storage_key)
                    self.artwork_store.remove(draft.artwork_path)
                    continue
                folder_id = folder_ids.get(draft.folder_key)
            session.create_entry(folder_id=folder_id, **draft.fields)

        try:
            touched = session.commit()
        except StoreError as e:
            logger.error(f"Failed to commit import batch: {e}")
            return str(e), folder_failures

        for folder_id, ref in artwork_updates:
            try:
                self.store.set_folder_artwork(folder_id, ref)
            except (KeyError, sqlite3.Error) as e:
                logger.warning(f"Could not attach folder artwork: {e}")

        try:
            self.store.recompute_counts(touched)
        except StoreError as e:
            # Entries are durable; counts can be rebuilt with repair_counts()
            logger.error(f"Folder counts not updated: {e}")
        return None, folder_failures

    def _discard(self, drafts: List[EntryDraft], folder_artwork: Dict[str, str]) -> None:
        """Remove bytes copied by a batch whose commit failed."""
        for draft in drafts:
            self.file_organizer.remove(draft.storage_key)
            self.artwork_store.remove(draft.artwork_path)
        for ref in folder_artwork.values():
            self.artwork_store.remove(ref)
        logger.info(f"Discarded {len(drafts)} copied files after failed commit")

    # Maintenance

    def repair_counts(self) -> Dict[str, int]:
        return self.store.recompute_counts(f.id for f in self.store.list_folders())

    def delete_entry(self, entry_id: str) -> bool:
        """Delete an entry with its backing file and artwork."""
        entry = self.store.delete_entry(entry_id)
        if entry is None:
            return False
        self.file_organizer.remove(entry.file_path)
        self.artwork_store.remove(entry.artwork_path)
        if entry.folder_id:
            self.store.recompute_counts([entry.folder_id])
        logger.info(f"Deleted {entry.file_name}")
        return True

    def delete_folder(self, folder_id: str) -> int:
        """Delete a folder, its subfolders and their entries; returns entries removed."""
        folder = self.store.get_folder(folder_id)
        if folder is None:
            return 0
        entries, folder_artwork = self.store.delete_folder(folder_id)
        for entry in entries:
            self.file_organizer.remove(entry.file_path)
            self.artwork_store.remove(entry.artwork_path)
        for ref in folder_artwork:
            self.artwork_store.remove(ref)
        if folder.parent_id:
            self.store.recompute_counts([folder.parent_id])
        logger.info(f"Deleted folder {folder.name} with {len(entries)} entries")
        return len(entries)

    def record_playback(self, entry_id: str, position: float, started: bool = False):
        return self.store.record_playback(entry_id, position, started=started)

    def set_entry_artwork(self, entry_id: str, data: bytes) -> str:
        entry = self.store.get_entry(entry_id)
        if entry is None:
            raise KeyError(entry_id)
        ref = self.artwork_store.save_custom(data, Path(entry.file_name).stem)
        try:
            previous = self.store.set_entry_artwork(entry_id, ref)
        except Exception:
            self.artwork_store.remove(ref)
            raise
        self.artwork_store.remove(previous)
        return ref

    def remove_entry_artwork(self, entry_id: str) -> None:
        previous = self.store.set_entry_artwork(entry_id, None)
        self.artwork_store.remove(previous)

    def set_folder_artwork(self, folder_id: str, data: bytes) -> str:
        folder = self.store.get_folder(folder_id)
        if folder is None:
            raise KeyError(folder_id)
        ref = self.artwork_store.save_custom_folder(data, folder.name.replace("/", "_"))
        try:
            previous = self.store.set_folder_artwork(folder_id, ref)
        except Exception:
            self.artwork_store.remove(ref)
            raise
        self.artwork_store.remove(previous)
        return ref

    def remove_folder_artwork(self, folder_id: str) -> None:
        previous = self.store.set_folder_artwork(folder_id, None)
        self.artwork_store.remove(previous)

    def verify_artwork(self) -> Dict[str, Any]:
        references = self.store.artwork_references()
        missing = [ref for ref in references if not self.artwork_store.exists(ref["artwork_path"])]
        for ref in missing:
            logger.warning(f"Missing artwork for {ref['kind']} {ref['id']}: {ref['artwork_path']}")
        return {"checked": len(references), "present": len(references) - len(missing), "missing": missing}
