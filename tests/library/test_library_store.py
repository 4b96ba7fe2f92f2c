import sqlite3
from pathlib import Path

import pytest

from audioshelf.library import LibraryStore
from audioshelf.models import StoreError


def add_entry(session, name, folder_id=None, duration=100.0):
    return session.create_entry(
        file_path=f"key_{name}",
        file_name=name,
        title=Path(name).stem,
        duration=duration,
        folder_id=folder_id,
    )


def test_session_commit_and_reads(store):
    session = store.session()
    music = session.create_folder("Music", "/src/Music")
    jazz = session.create_folder("Jazz", "/src/Music/Jazz", parent_id=music.id)
    add_entry(session, "a.mp3", music.id)
    add_entry(session, "b.mp3", jazz.id)
    add_entry(session, "loose.mp3")
    touched = session.commit()

    assert set(touched) == {music.id, jazz.id}
    assert store.fetch_folder("/src/Music").id == music.id
    assert [f.name for f in store.root_folders()] == ["Music"]
    assert [f.name for f in store.child_folders(music.id)] == ["Jazz"]
    assert [e.file_name for e in store.list_entries(unfiled_only=True)] == ["loose.mp3"]
    assert store.storage_keys() == {"key_a.mp3", "key_b.mp3", "key_loose.mp3"}


def test_recompute_counts_includes_descendants(store):
    session = store.session()
    music = session.create_folder("Music", "/src/Music")
    jazz = session.create_folder("Jazz", "/src/Music/Jazz", parent_id=music.id)
    add_entry(session, "a.mp3", music.id)
    add_entry(session, "b.mp3", jazz.id)
    session.commit()

    counts = store.recompute_counts([jazz.id])

    assert counts == {jazz.id: 1, music.id: 2}
    assert store.get_folder(music.id).file_count == 2
    assert store.get_folder(jazz.id).file_count == 1


def test_existing_path_key_is_merged(store):
    first = store.session()
    original = first.create_folder("Music", "/src/Music")
    first.commit()

    second = store.session()
    duplicate = second.create_folder("Music", "/src/Music")
    entry = add_entry(second, "a.mp3", duplicate.id)
    second.commit()

    assert len(store.list_folders()) == 1
    assert duplicate.id == original.id
    assert store.get_entry(entry.id).folder_id == original.id


def test_session_fetch_prefers_staged(store):
    session = store.session()
    staged = session.create_folder("Music", "/src/Music")
    assert session.fetch_folder("/src/Music") is staged
    assert session.is_staged(staged)
    assert store.fetch_folder("/src/Music") is None


def test_failed_commit_rolls_back(store):
    session = store.session()
    folder = session.create_folder("Music", "/src/Music")
    add_entry(session, "a.mp3", folder.id)
    # negative play counts violate the schema
    session.create_entry(file_path="bad", file_name="bad.mp3", play_count=-1, folder_id=folder.id)

    with pytest.raises(StoreError):
        session.commit()

    assert store.list_folders() == []
    assert store.list_entries() == []


def test_folder_entries_natural_order(store):
    session = store.session()
    folder = session.create_folder("Book", "/src/Book")
    for name in ("Part 10.mp3", "Part 2.mp3", "Part 1.mp3"):
        add_entry(session, name, folder.id)
    session.commit()
    assert [e.file_name for e in store.folder_entries(folder.id)] == ["Part 1.mp3", "Part 2.mp3", "Part 10.mp3"]


def test_record_playback_clamps_and_tracks_folder(store):
    session = store.session()
    folder = session.create_folder("Book", "/src/Book")
    entry = add_entry(session, "a.mp3", folder.id, duration=50.0)
    session.commit()

    updated = store.record_playback(entry.id, 75.0, started=True)
    assert updated.current_position == 50.0
    assert updated.play_count == 1

    updated = store.record_playback(entry.id, -3.0)
    assert updated.current_position == 0.0
    assert updated.play_count == 1

    stored_folder = store.get_folder(folder.id)
    assert stored_folder.last_played_entry_id == entry.id
    assert stored_folder.last_played_date is not None
    assert store.record_playback("missing", 1.0) is None


def test_delete_entry_clears_resume_pointer(store):
    session = store.session()
    folder = session.create_folder("Book", "/src/Book")
    entry = add_entry(session, "a.mp3", folder.id)
    session.commit()
    store.record_playback(entry.id, 10.0)

    removed = store.delete_entry(entry.id)

    assert removed.id == entry.id
    assert store.get_entry(entry.id) is None
    assert store.get_folder(folder.id).last_played_entry_id is None
    assert store.delete_entry(entry.id) is None


def test_delete_folder_removes_subtree(store):
    session = store.session()
    music = session.create_folder("Music", "/src/Music")
    jazz = session.create_folder("Jazz", "/src/Music/Jazz", parent_id=music.id, artwork_path="Artwork/jazz.jpg")
    add_entry(session, "a.mp3", music.id)
    add_entry(session, "b.mp3", jazz.id)
    add_entry(session, "loose.mp3")
    session.commit()

    removed, artwork = store.delete_folder(music.id)

    assert sorted(e.file_name for e in removed) == ["a.mp3", "b.mp3"]
    assert artwork == ["Artwork/jazz.jpg"]
    assert store.list_folders() == []
    assert [e.file_name for e in store.list_entries()] == ["loose.mp3"]
    assert store.delete_folder(music.id) == ([], [])


def test_artwork_swap(store):
    session = store.session()
    folder = session.create_folder("Book", "/src/Book", artwork_path="Artwork/old.jpg")
    entry = add_entry(session, "a.mp3", folder.id)
    session.commit()

    assert store.set_folder_artwork(folder.id, "Artwork/new.jpg") == "Artwork/old.jpg"
    assert store.set_entry_artwork(entry.id, "Artwork/e.jpg") is None
    refs = sorted((r["kind"], r["artwork_path"]) for r in store.artwork_references())
    assert refs == [("entry", "Artwork/e.jpg"), ("folder", "Artwork/new.jpg")]
    with pytest.raises(KeyError):
        store.set_entry_artwork("missing", None)


def test_recompute_detects_cycles(store):
    session = store.session()
    a = session.create_folder("A", "/a")
    b = session.create_folder("B", "/b", parent_id=a.id)
    session.commit()
    conn = sqlite3.connect(store.db_path)
    conn.execute("UPDATE folders SET parent_id=? WHERE id=?", (b.id, a.id))
    conn.commit()
    conn.close()

    with pytest.raises(StoreError):
        store.recompute_counts([a.id])


def test_reparent_attaches_existing_root(store):
    first = store.session()
    jazz = first.create_folder("Jazz", "/src/Music/Jazz")
    add_entry(first, "b.mp3", jazz.id)
    first.commit()

    second = store.session()
    music = second.create_folder("Music", "/src/Music")
    existing = second.fetch_folder("/src/Music/Jazz")
    second.reparent(existing, music.id)
    touched = second.commit()

    assert set(touched) == {music.id, jazz.id}
    assert store.get_folder(jazz.id).parent_id == music.id
    assert store.recompute_counts(touched)[music.id] == 1


def test_reparent_keeps_existing_parent(store):
    session = store.session()
    music = session.create_folder("Music", "/src/Music")
    other = session.create_folder("Other", "/src/Other")
    jazz = session.create_folder("Jazz", "/src/Music/Jazz", parent_id=music.id)
    session.commit()

    session = store.session()
    session.reparent(store.get_folder(jazz.id), other.id)
    session.commit()

    assert store.get_folder(jazz.id).parent_id == music.id
