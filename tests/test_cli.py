"""Tests for the CLI module."""

import pytest
from click.testing import CliRunner
from unittest.mock import patch

from audioshelf.cli import main_cli
from audioshelf.library import LibraryStore
from audioshelf.models import StoreError


@pytest.fixture
def cli_env(tmp_path, monkeypatch, mock_audio):
    library = tmp_path / "library"
    monkeypatch.setenv("AUDIOSHELF_DB_PATH", str(tmp_path / "cli.db"))
    with patch("mutagen.File", return_value=mock_audio):
        yield library


class TestCLI:
    """Test cases for CLI commands."""

    def test_cli_help(self):
        runner = CliRunner()
        result = runner.invoke(main_cli, ["--help"])
        assert result.exit_code == 0
        assert "Organize audio files into a personal library" in result.output
        assert "import" in result.output
        assert "serve" in result.output

    def test_cli_short_help(self):
        runner = CliRunner()
        result = runner.invoke(main_cli, ["-h"])
        assert result.exit_code == 0

    def test_import_requires_paths(self, cli_env):
        runner = CliRunner()
        result = runner.invoke(main_cli, ["--library-dir", str(cli_env), "import"])
        assert result.exit_code != 0

    def test_import_and_list(self, cli_env, tmp_path, write_audio):
        album = tmp_path / "Album"
        write_audio(album / "01.mp3")
        write_audio(album / "02.mp3")

        runner = CliRunner()
        result = runner.invoke(main_cli, ["--library-dir", str(cli_env), "import", str(album)])

        assert result.exit_code == 0, result.output
        assert "Import summary" in result.output
        assert (cli_env / "Media").is_dir()

        result = runner.invoke(main_cli, ["--library-dir", str(cli_env), "library"])
        assert result.exit_code == 0
        assert "Album" in result.output
        assert "(2)" in result.output

    def test_import_reports_failures(self, cli_env, tmp_path, write_audio):
        notes = write_audio(tmp_path / "notes.txt")

        runner = CliRunner()
        result = runner.invoke(main_cli, ["--library-dir", str(cli_env), "import", str(notes)])

        assert result.exit_code == 0
        assert "Failures" in result.output
        assert "notes.txt" in result.output

    def test_commit_failure_exits_nonzero(self, cli_env, tmp_path, write_audio):
        song = write_audio(tmp_path / "song.mp3")

        runner = CliRunner()
        with patch.object(LibraryStore, "apply", side_effect=StoreError("disk full")):
            result = runner.invoke(main_cli, ["--library-dir", str(cli_env), "import", str(song)])

        assert result.exit_code == 1
        assert "Import batch could not be saved" in result.output

    @patch("audioshelf.cli.uvicorn.run")
    def test_serve(self, mock_run, cli_env):
        runner = CliRunner()
        result = runner.invoke(main_cli, ["--library-dir", str(cli_env), "serve", "--port", "9001"])

        assert result.exit_code == 0
        mock_run.assert_called_once()
        assert mock_run.call_args.kwargs["port"] == 9001
