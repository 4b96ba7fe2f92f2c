"""HTTP API over the library and the import coordinator."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from .organizer import ImportCoordinator


def create_app(coordinator: ImportCoordinator) -> FastAPI:
    store = coordinator.store

    app = FastAPI(title="audioshelf API")
    # CORS for a local frontend dev server
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/status")
    def status():
        stats = coordinator.progress_tracker.get_stats()
        return {
            "library_dir": str(coordinator.library_dir),
            "folders": len(store.list_folders()),
            "entries": len(store.list_entries()),
            "last_import": stats,
        }

    @app.post("/api/import")
    async def import_paths(payload: Dict[str, Any]):
        paths = payload.get("paths") or []
        if not isinstance(paths, list) or not paths:
            raise HTTPException(400, "No paths provided")
        batch = await coordinator.import_paths([str(p) for p in paths])
        return batch.to_dict()

    @app.get("/api/folders")
    def list_folders():
        return [f.to_dict() for f in store.list_folders()]

    @app.get("/api/folders/{folder_id}")
    def get_folder(folder_id: str):
        folder = store.get_folder(folder_id)
        if folder is None:
            raise HTTPException(404, "Folder not found")
        out: Dict[str, Any] = folder.to_dict()
        out["folders"] = [f.to_dict() for f in store.child_folders(folder_id)]
        out["entries"] = [e.to_dict() for e in store.folder_entries(folder_id)]
        return out

    @app.delete("/api/folders/{folder_id}")
    def delete_folder(folder_id: str):
        if store.get_folder(folder_id) is None:
            raise HTTPException(404, "Folder not found")
        removed = coordinator.delete_folder(folder_id)
        return {"ok": True, "entries_removed": removed}

    @app.get("/api/entries")
    def list_entries(unfiled: bool = False):
        return [e.to_dict() for e in store.list_entries(unfiled_only=unfiled)]

    @app.get("/api/entries/{entry_id}")
    def get_entry(entry_id: str):
        entry = store.get_entry(entry_id)
        if entry is None:
            raise HTTPException(404, "Entry not found")
        return entry.to_dict()

    @app.delete("/api/entries/{entry_id}")
    def delete_entry(entry_id: str):
        if not coordinator.delete_entry(entry_id):
            raise HTTPException(404, "Entry not found")
        return {"ok": True}

    @app.post("/api/entries/{entry_id}/playback")
    def record_playback(entry_id: str, payload: Dict[str, Any]):
        try:
            position = float(payload.get("position", 0))
        except (TypeError, ValueError):
            raise HTTPException(400, "Invalid position")
        entry = coordinator.record_playback(entry_id, position, started=bool(payload.get("started", False)))
        if entry is None:
            raise HTTPException(404, "Entry not found")
        return entry.to_dict()

    @app.get("/api/artwork/verify")
    def verify_artwork():
        return coordinator.verify_artwork()

    return app
