"""Tests for ignore pattern matching."""

from pathlib import Path

from permasync.client.sync.ignore import DOWNLOAD_SUFFIX, IGNORE_FILE, IgnorePatterns


class TestIgnorePatterns:
    """Tests for ignore pattern matching."""

    def test_hidden_files_ignored(self, tmp_path: Path) -> None:
        """Should ignore dot files and dot directories."""
        ignore = IgnorePatterns()
        git_dir = tmp_path / ".git"
        git_dir.mkdir()
        (git_dir / "HEAD").touch()

        assert ignore.should_ignore(tmp_path / ".DS_Store", tmp_path) is True
        assert ignore.should_ignore(git_dir, tmp_path) is True
        assert ignore.should_ignore(git_dir / "HEAD", tmp_path) is True

    def test_download_temp_files_ignored(self, tmp_path: Path) -> None:
        """Should ignore in-progress download files."""
        ignore = IgnorePatterns()
        partial = tmp_path / f"report.pdf{DOWNLOAD_SUFFIX}"
        partial.touch()

        assert ignore.should_ignore(partial, tmp_path) is True

    def test_editor_files_ignored(self, tmp_path: Path) -> None:
        """Should ignore temp and swap files."""
        ignore = IgnorePatterns()

        for name in ("file.tmp", "~lock.docx", "notes.txt.swp", "Thumbs.db"):
            assert ignore.should_ignore(tmp_path / name, tmp_path) is True

    def test_normal_file_not_ignored(self, tmp_path: Path) -> None:
        """Should not ignore normal files."""
        ignore = IgnorePatterns()
        normal = tmp_path / "docs" / "document.txt"

        assert ignore.should_ignore(normal, tmp_path) is False

    def test_outside_base_not_ignored(self, tmp_path: Path) -> None:
        """Paths outside the base are not matched."""
        ignore = IgnorePatterns(["*.txt"])

        assert ignore.should_ignore(Path("/elsewhere/a.txt"), tmp_path / "Drive") is False

    def test_directory_pattern(self, tmp_path: Path) -> None:
        """Should ignore files below a directory pattern."""
        ignore = IgnorePatterns(["build/"])

        assert ignore.should_ignore(tmp_path / "build" / "out.bin", tmp_path) is True
        assert ignore.should_ignore(tmp_path / "src" / "build.py", tmp_path) is False

    def test_add_pattern(self, tmp_path: Path) -> None:
        """Should allow adding patterns dynamically."""
        ignore = IgnorePatterns()
        path = tmp_path / "test.xyz"

        assert ignore.should_ignore(path, tmp_path) is False
        ignore.add_pattern("*.xyz")
        assert ignore.should_ignore(path, tmp_path) is True

    def test_load_from_file(self, tmp_path: Path) -> None:
        """Should load patterns, skipping comments and blank lines."""
        (tmp_path / IGNORE_FILE).write_text("*.bak\n# comment\n\ntemp/\n")
        ignore = IgnorePatterns()

        ignore.load_from_file(tmp_path / IGNORE_FILE)

        assert "*.bak" in ignore.patterns
        assert "# comment" not in ignore.patterns
        assert ignore.should_ignore(tmp_path / "backup.bak", tmp_path) is True

    def test_load_missing_file(self, tmp_path: Path) -> None:
        """A missing ignore file leaves the defaults."""
        ignore = IgnorePatterns()
        before = ignore.patterns

        ignore.load_from_file(tmp_path / "nonexistent")

        assert ignore.patterns == before

    def test_symlinks_ignored(self, tmp_path: Path) -> None:
        """Symlinks are never synced."""
        target = tmp_path / "target.txt"
        target.write_text("x")
        link = tmp_path / "link.txt"
        link.symlink_to(target)

        assert IgnorePatterns().should_ignore(link, tmp_path) is True
