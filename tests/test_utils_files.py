"""Tests for file utility functions."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

import pytest

from notefinder.errors import ValidationError
from notefinder.utils.files import (
    document_id,
    expand_braces,
    iter_collection_files,
    modified_millis,
    validate_mask,
)


class TestExpandBraces:
    """Test expand_braces function."""

    def test_no_braces(self) -> None:
        assert expand_braces("**/*.md") == ["**/*.md"]

    def test_single_group(self) -> None:
        """Should expand the default mask into one pattern per extension."""
        assert expand_braces("**/*.{md,txt}") == ["**/*.md", "**/*.txt"]

    def test_nested_groups(self) -> None:
        """Should expand inner groups first and drop duplicates."""
        assert expand_braces("{a,{b,c}}.md") == ["a.md", "b.md", "c.md"]

    def test_unbalanced_braces(self) -> None:
        with pytest.raises(ValidationError):
            expand_braces("*.{md")


class TestValidateMask:
    """Test validate_mask function."""

    def test_valid_mask(self, tmp_path: Path) -> None:
        assert validate_mask(tmp_path, "**/*.{md,txt}") == ["**/*.md", "**/*.txt"]

    @pytest.mark.parametrize("mask", ["", "   "])
    def test_empty_mask(self, tmp_path: Path, mask: str) -> None:
        with pytest.raises(ValidationError, match="empty"):
            validate_mask(tmp_path, mask)

    def test_absolute_mask(self, tmp_path: Path) -> None:
        """Should reject masks that escape the collection root."""
        with pytest.raises(ValidationError, match="relative"):
            validate_mask(tmp_path, "/etc/*.md")


class TestIterCollectionFiles:
    """Test iter_collection_files function."""

    def test_matches_mask_recursively(self, tmp_path: Path) -> None:
        """Should find matching files at every depth, sorted."""
        (tmp_path / "b.txt").write_text("b")
        (tmp_path / "a.md").write_text("a")
        (tmp_path / "script.py").write_text("print()")
        sub = tmp_path / "sub"
        sub.mkdir()
        (sub / "d.md").write_text("d")

        paths = list(iter_collection_files(tmp_path, "**/*.{md,txt}"))

        assert paths == [tmp_path / "a.md", tmp_path / "b.txt", sub / "d.md"]

    def test_skips_hidden_and_vendor_directories(self, tmp_path: Path) -> None:
        """Should never index .git, dot-directories, dotfiles or node_modules."""
        (tmp_path / "keep.md").write_text("keep")
        (tmp_path / ".secret.md").write_text("hidden")
        for excluded in (".git", ".obsidian", "node_modules"):
            directory = tmp_path / excluded
            directory.mkdir()
            (directory / "note.md").write_text("excluded")

        paths = list(iter_collection_files(tmp_path, "**/*.md"))

        assert paths == [tmp_path / "keep.md"]

    def test_skips_directories_matching_mask(self, tmp_path: Path) -> None:
        (tmp_path / "folder.md").mkdir()
        (tmp_path / "real.md").write_text("x")

        paths = list(iter_collection_files(tmp_path, "*.md"))

        assert paths == [tmp_path / "real.md"]

    def test_empty_directory(self, tmp_path: Path) -> None:
        assert list(iter_collection_files(tmp_path, "**/*.md")) == []


class TestDocumentId:
    """Test document_id and modified_millis."""

    def test_id_is_eight_hex_chars(self) -> None:
        doc_id = document_id(Path("/notes/a.md"), 1_700_000_000_000)

        assert len(doc_id) == 8
        int(doc_id, 16)

    def test_id_matches_sha256_prefix(self) -> None:
        """Should hash the path followed by the millisecond mtime."""
        expected = hashlib.sha256(b"/notes/a.md1700000000000").hexdigest()[:8]

        assert document_id("/notes/a.md", 1_700_000_000_000) == expected

    def test_id_is_stable(self) -> None:
        assert document_id("/notes/a.md", 42) == document_id(Path("/notes/a.md"), 42)

    def test_id_changes_with_mtime(self) -> None:
        assert document_id("/notes/a.md", 1) != document_id("/notes/a.md", 2)

    def test_modified_millis(self, tmp_path: Path) -> None:
        """Should truncate the nanosecond mtime to milliseconds."""
        note = tmp_path / "a.md"
        note.write_text("x")
        os.utime(note, ns=(1_700_000_000_123_456_789, 1_700_000_000_123_456_789))

        assert modified_millis(note) == 1_700_000_000_123
