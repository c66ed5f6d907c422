"""Exception types raised by the NoteFinder core."""

from __future__ import annotations


class NoteFinderError(Exception):
    """Base class for all library errors."""


class ValidationError(NoteFinderError):
    """Invalid caller input: bad path, glob mask, name or paging argument."""


class NotFoundError(NoteFinderError):
    """A collection or document does not exist."""


class SearchError(NoteFinderError):
    """Malformed query or unsupported search mode."""
