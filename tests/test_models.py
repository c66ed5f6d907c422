"""Tests for core data models."""

from __future__ import annotations

from pathlib import Path

import pytest

from notefinder.errors import NoteFinderError, NotFoundError, SearchError, ValidationError
from notefinder.models import Collection, Document, DocumentView


class TestCollection:
    """Test Collection dataclass."""

    def test_create_collection_defaults(self) -> None:
        """Should default timestamps and file count to zero."""
        collection = Collection(name="notes", path=Path("/notes"), mask="**/*.md")

        assert collection.name == "notes"
        assert collection.path == Path("/notes")
        assert collection.created_at == 0
        assert collection.updated_at == 0
        assert collection.file_count == 0

    def test_collection_uses_slots(self) -> None:
        """Should reject attributes outside the declared fields."""
        collection = Collection(name="notes", path=Path("/notes"), mask="*.md")

        with pytest.raises(AttributeError):
            collection.extra = 1  # type: ignore[attr-defined]


class TestDocument:
    """Test Document dataclass."""

    def test_create_document(self) -> None:
        """Should create Document with all fields."""
        document = Document(
            id="abcd1234",
            path=Path("/notes/a.md"),
            title="A",
            content="Body",
            collection="notes",
            size=4,
            modified_at=1_700_000_000_000,
        )

        assert document.id == "abcd1234"
        assert document.indexed_at is None

    def test_document_equality(self) -> None:
        """Should compare documents by value."""
        kwargs = dict(
            id="abcd1234",
            path=Path("/notes/a.md"),
            title="A",
            content="Body",
            collection="notes",
            size=4,
            modified_at=1,
        )

        assert Document(**kwargs) == Document(**kwargs)

    def test_document_view(self) -> None:
        view = DocumentView(
            id="abcd1234", path=Path("/notes/a.md"), title="A", collection="notes", content="x"
        )

        assert view.content == "x"


class TestErrors:
    """Test the error hierarchy."""

    @pytest.mark.parametrize("error", [ValidationError, NotFoundError, SearchError])
    def test_errors_share_base_class(self, error: type) -> None:
        assert issubclass(error, NoteFinderError)
        with pytest.raises(NoteFinderError):
            raise error("boom")
