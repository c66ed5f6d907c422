"""Tests for markdown and plain-text loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from notefinder.ingestion.markdown_loader import (
    load_document,
    parse_document,
    title_from_filename,
)


class TestTitleFromFilename:
    """Test title_from_filename function."""

    def test_separators_become_spaces(self) -> None:
        assert title_from_filename(Path("api-key_rotation.md")) == "Api Key Rotation"

    def test_plain_name(self) -> None:
        assert title_from_filename(Path("/notes/readme.txt")) == "Readme"


class TestParseDocument:
    """Test parse_document function."""

    def test_atx_heading(self) -> None:
        """Should take the heading as title and drop it from the body."""
        parsed = parse_document(
            "# API Key Rotation\n\nRotate api keys every 90 days.\n", Path("x.md")
        )

        assert parsed.title == "API Key Rotation"
        assert parsed.content == "Rotate api keys every 90 days."

    def test_setext_heading(self) -> None:
        parsed = parse_document("Deployment Pipeline\n===\nBody text", Path("x.md"))

        assert parsed.title == "Deployment Pipeline"
        assert parsed.content == "Body text"

    def test_frontmatter_title(self) -> None:
        """Should read title: from frontmatter and strip the block from the body."""
        text = '---\ntitle: "Color Palette"\ntags: design\n---\nBody text'

        parsed = parse_document(text, Path("x.md"))

        assert parsed.title == "Color Palette"
        assert parsed.content == "Body text"

    def test_heading_beats_frontmatter(self) -> None:
        text = "---\ntitle: Front\n---\n# Heading\nBody"

        parsed = parse_document(text, Path("x.md"))

        assert parsed.title == "Heading"
        assert parsed.content == "Body"

    def test_heading_after_fifth_line_ignored(self) -> None:
        """Should only look for a title in the first five lines."""
        text = "one\ntwo\nthree\nfour\nfive\n# Late"

        parsed = parse_document(text, Path("late-title.md"))

        assert parsed.title == "Late Title"
        assert parsed.content.startswith("one\ntwo")

    def test_filename_fallback(self) -> None:
        parsed = parse_document("just some text", Path("meeting_notes.txt"))

        assert parsed.title == "Meeting Notes"
        assert parsed.content == "just some text"

    def test_body_is_normalized(self) -> None:
        parsed = parse_document("# T\r\nA   \r\n\r\n\r\n\r\nB\r\n", Path("x.md"))

        assert parsed.content == "A\n\nB"

    def test_hash_without_space_is_not_heading(self) -> None:
        parsed = parse_document("#tag line\nbody", Path("tagged.md"))

        assert parsed.title == "Tagged"


class TestLoadDocument:
    """Test load_document function."""

    def test_reads_utf8(self, tmp_path: Path) -> None:
        note = tmp_path / "note.md"
        note.write_text("# Café\n\nCrème brûlée", encoding="utf-8")

        parsed = load_document(note)

        assert parsed.title == "Café"
        assert parsed.content == "Crème brûlée"

    def test_binary_file_raises(self, tmp_path: Path) -> None:
        """Should surface undecodable content as a ValueError."""
        blob = tmp_path / "blob.md"
        blob.write_bytes(b"\xff\xfe\x00\x81binary")

        with pytest.raises(ValueError):
            load_document(blob)

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(OSError):
            load_document(tmp_path / "missing.md")
