"""Tests for directory expansion into folder trees."""
import pytest
from pathlib import Path

from audioshelf.analyzers import DirectoryWalker, FolderTree
from audioshelf.analyzers.directory_walker import common_file_prefix, natural_key
from audioshelf.scope import AccessProvider, ResourceScope


@pytest.fixture
def walker():
    return DirectoryWalker()


def touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"x")
    return path


class TestNaturalKey:

    def test_numbers_sort_numerically(self):
        names = ["Chapter 10", "chapter 2", "Chapter 1"]
        assert sorted(names, key=natural_key) == ["Chapter 1", "chapter 2", "Chapter 10"]


class TestCommonFilePrefix:

    def test_dash_marker(self):
        assert common_file_prefix("My Book - Chapter 01.mp3") == "My Book"

    def test_underscore_chapter(self):
        assert common_file_prefix("novel_chapter3.m4b") == "novel"

    def test_no_marker_keeps_stem(self):
        assert common_file_prefix("Standalone.mp3") == "Standalone"


class TestDirectoryWalker:

    def test_nested_tree(self, walker, tmp_path):
        music = tmp_path / "Music"
        touch(music / "a.mp3")
        touch(music / "Jazz" / "b.flac")
        touch(music / "notes.txt")

        tree = walker.walk(music)

        assert tree.root_key == str(music.absolute())
        assert len(tree.nodes) == 2
        root = tree.nodes[str(music.absolute())]
        jazz = tree.nodes[str((music / "Jazz").absolute())]
        assert root.parent_key is None
        assert jazz.parent_key == root.key
        assert [f.name for f in root.files] == ["a.mp3"]
        assert [f.name for f in jazz.files] == ["b.flac"]
        assert tree.total_files == 2

    def test_parents_precede_children(self, walker, tmp_path):
        touch(tmp_path / "A" / "B" / "C" / "x.mp3")
        tree = walker.walk(tmp_path / "A")
        names = [n.name for n in tree.ordered()]
        assert names == ["A", "B", "C"]

    def test_hidden_items_skipped(self, walker, tmp_path):
        root = tmp_path / "Album"
        touch(root / ".hidden.mp3")
        touch(root / ".secret" / "y.mp3")
        touch(root / "track.mp3")

        tree = walker.walk(root)

        assert len(tree.nodes) == 1
        assert [f.name for f in tree.nodes[str(root.absolute())].files] == ["track.mp3"]

    def test_files_in_natural_order(self, walker, tmp_path):
        root = tmp_path / "Book"
        for n in (10, 2, 1):
            touch(root / f"Part {n}.mp3")
        tree = walker.walk(root)
        assert [f.name for f in tree.nodes[str(root.absolute())].files] == ["Part 1.mp3", "Part 2.mp3", "Part 10.mp3"]

    def test_folder_artwork_detected(self, walker, tmp_path):
        root = tmp_path / "Album"
        touch(root / "01.mp3")
        touch(root / "Cover.JPG")
        tree = walker.walk(root)
        assert tree.nodes[str(root.absolute())].artwork_file.name == "Cover.JPG"

    def test_second_root_in_same_tree(self, walker, tmp_path):
        touch(tmp_path / "One" / "a.mp3")
        touch(tmp_path / "Two" / "b.mp3")
        tree = FolderTree()
        walker.walk(tmp_path / "One", tree)
        walker.walk(tmp_path / "Two", tree)
        assert len(tree.nodes) == 2
        assert all(n.parent_key is None for n in tree.nodes.values())

    def test_unreadable_subdirectory_dropped(self, walker, tmp_path, monkeypatch):
        root = tmp_path / "Album"
        touch(root / "01.mp3")
        touch(root / "Locked" / "Inner" / "02.mp3")
        touch(root / "Open" / "03.mp3")
        original = Path.iterdir

        def iterdir(self):
            if self.name == "Locked":
                raise PermissionError(13, "Permission denied", str(self))
            return original(self)

        monkeypatch.setattr(Path, "iterdir", iterdir)
        tree = walker.walk(root)

        assert sorted(n.name for n in tree.nodes.values()) == ["Album", "Open"]
        assert tree.total_files == 2

    def test_unreadable_root_gives_empty_tree(self, walker, tmp_path, monkeypatch):
        root = tmp_path / "Locked"
        touch(root / "01.mp3")
        original = Path.iterdir

        def iterdir(self):
            if self == root:
                raise OSError("I/O error")
            return original(self)

        monkeypatch.setattr(Path, "iterdir", iterdir)
        tree = walker.walk(root)

        assert tree.nodes == {}

    def test_empty_directory_has_node(self, walker, tmp_path):
        empty = tmp_path / "Empty"
        empty.mkdir()
        tree = walker.walk(empty)
        assert list(tree.nodes) == [str(empty.absolute())]
        assert tree.total_files == 0

    def test_refused_scope_still_walks(self, tmp_path):
        class Refusing(AccessProvider):
            def start_access(self, path):
                return False

            def stop_access(self, path):
                raise AssertionError("refused scopes must not be released")

        scope = ResourceScope(Refusing())
        touch(tmp_path / "Album" / "a.mp3")
        tree = DirectoryWalker(scope).walk(tmp_path / "Album")
        assert tree.total_files == 1
        assert scope.active == 0


class TestDetectArtwork:

    def test_matching_name_wins(self):
        items = [Path("cover.jpg"), Path("My Book.png")]
        assert DirectoryWalker.detect_artwork(items, matching_name="my book") == Path("My Book.png")

    def test_common_names(self):
        items = [Path("scan.png"), Path("folder.jpeg")]
        assert DirectoryWalker.detect_artwork(items) == Path("folder.jpeg")

    def test_non_image_ignored(self):
        assert DirectoryWalker.detect_artwork([Path("cover.txt")]) is None
