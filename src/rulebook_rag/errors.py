"""Exception hierarchy for ingestion and retrieval failures.

Heuristic ambiguity in section detection is never an error. The classes here
cover the three failure families callers have to tell apart: a backend that
cannot answer (dense side, sparse side, or both), a document selection that
cannot be resolved, and an ingestion batch whose identifiers would not stay
contiguous.
"""
from __future__ import annotations


class RulebookRagError(Exception):
    """Base class for every error raised by the package."""


class BackendUnavailableError(RulebookRagError):
    """A retrieval collaborator (embedder, vector index, text index) failed."""


class DenseSearchUnavailable(BackendUnavailableError):
    """The embedder or the vector index could not serve the request."""


class SparseSearchUnavailable(BackendUnavailableError):
    """The full-text index could not serve the request."""


class LexicalQueryError(SparseSearchUnavailable):
    """The full-text index rejected a malformed boolean query expression."""


class SearchUnavailableError(BackendUnavailableError):
    """Both the dense and the sparse side failed for the same request."""

    def __init__(self, dense_error: Exception, sparse_error: Exception):
        super().__init__(f"dense search failed ({dense_error}); sparse search failed ({sparse_error})")
        self.dense_error = dense_error
        self.sparse_error = sparse_error


class DocumentSelectionError(RulebookRagError):
    """Documents are indexed but none could be resolved for the query."""


class DocumentNotFoundError(DocumentSelectionError):
    """An explicit document filter matched no indexed document."""


class IngestionIntegrityError(RulebookRagError):
    """An ingestion batch would leave duplicate or gapped chunk ids.

    The whole batch has been rolled back when this is raised; the caller is
    expected to retry the ingestion from scratch.
    """


class UnsupportedFileTypeError(RulebookRagError, ValueError):
    """The text extractor does not know how to read the given file."""
