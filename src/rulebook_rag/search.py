"""Query-time retrieval: dense and sparse search, fusion and document selection.

A query is answered from one document. When the caller does not name it,
the engine picks it: the only indexed document, else a document whose name
appears in the query, else the document whose best three chunks score
highest overall.
"""
from __future__ import annotations

import logging
import re
import threading
from concurrent.futures import Future, ThreadPoolExecutor

from .embeddings import Embedder
from .errors import (
    BackendUnavailableError,
    DenseSearchUnavailable,
    DocumentNotFoundError,
    DocumentSelectionError,
    LexicalQueryError,
    SearchUnavailableError,
    SparseSearchUnavailable,
)
from .intent import detect_intent, prioritize
from .retrieval import LexicalIndex, build_lexical_query, reciprocal_rank_fusion, weighted_score_fusion
from .schema import (
    DocumentSelection,
    IndexedDocument,
    RetrievalOutcome,
    RetrievalStatus,
    ScoredChunk,
    rank_scored,
)
from .settings import RetrievalSettings
from .text_utils import normalize, slugify
from .vector_store import ChunkStore

logger = logging.getLogger(__name__)

_NAME_WORD = re.compile(r"[^\W_]+")


def name_in_query(name: str, query: str, min_length: int = 5) -> bool:
    """True when a word of ``name`` of at least ``min_length`` characters occurs in ``query``."""
    normalized_query = normalize(query)
    words = [word for word in _NAME_WORD.findall(normalize(name)) if len(word) >= min_length]
    return any(word in normalized_query for word in words)


def aggregate_score(chunks: list[ScoredChunk], top: int = 3) -> float:
    return sum(scored.score for scored in rank_scored(chunks)[:top])


def _collect(future: Future) -> tuple[list[ScoredChunk], BackendUnavailableError | None]:
    try:
        return future.result(), None
    except BackendUnavailableError as exc:
        return [], exc


class RetrievalEngine:
    """Hybrid retrieval over a :class:`ChunkStore`.

    The lexical index is built in memory from the stored chunk records and
    rebuilt whenever the store has been written to since.
    """

    def __init__(
        self,
        store: ChunkStore,
        embedder: Embedder,
        settings: RetrievalSettings | None = None,
    ):
        self.store = store
        self.embedder = embedder
        self.settings = settings or RetrievalSettings()
        self._lexical: LexicalIndex | None = None
        self._lexical_revision = -1
        self._lexical_lock = threading.Lock()

    def lexical_index(self) -> LexicalIndex:
        with self._lexical_lock:
            if self._lexical is None or self._lexical_revision != self.store.revision:
                self._lexical = LexicalIndex(self.store.get_chunks())
                self._lexical_revision = self.store.revision
                logger.debug("rebuilt lexical index over %d chunks", len(self._lexical))
            return self._lexical

    def dense_search(
        self,
        query: str,
        document_id: str | None = None,
        top_n: int | None = None,
        min_score: float | None = None,
    ) -> list[ScoredChunk]:
        """Embed ``query`` and return the nearest chunks.

        Raises:
            DenseSearchUnavailable: when the embedder or the vector index fails.
        """
        try:
            vector = self.embedder.embed([query])[0]
            return self.store.dense_search(
                vector,
                top_n=top_n or self.settings.top_n,
                document_id=document_id,
                min_similarity=min_score,
            )
        except Exception as exc:  # noqa: BLE001
            raise DenseSearchUnavailable(f"dense search failed: {exc}") from exc

    def sparse_search(
        self,
        query: str,
        document_id: str | None = None,
        top_n: int | None = None,
    ) -> list[ScoredChunk]:
        """Full-text search; a query with no usable token returns nothing.

        Raises:
            SparseSearchUnavailable: when the text index fails or rejects the query.
        """
        expression = build_lexical_query(query)
        if not expression:
            return []
        try:
            return self.lexical_index().search(expression, document_id, top_n or self.settings.top_n)
        except LexicalQueryError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise SparseSearchUnavailable(f"sparse search failed: {exc}") from exc

    def fuse(self, dense: list[ScoredChunk], sparse: list[ScoredChunk]) -> list[ScoredChunk]:
        if self.settings.fusion == "weighted":
            return weighted_score_fusion(dense, sparse, self.settings.dense_weight, self.settings.sparse_weight)
        return reciprocal_rank_fusion(
            dense,
            sparse,
            dense_weight=self.settings.dense_weight,
            sparse_weight=self.settings.sparse_weight,
            k=self.settings.rrf_k,
        )

    def hybrid_search(
        self,
        query: str,
        document_id: str | None = None,
        top_k: int | None = None,
        min_score: float | None = None,
    ) -> list[ScoredChunk]:
        """Run dense and sparse search concurrently and fuse the two rankings.

        One failing side is logged and the other side is used alone.

        Raises:
            SearchUnavailableError: when both sides fail.
        """
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="rulebook-search") as pool:
            dense_future = pool.submit(self.dense_search, query, document_id, None, min_score)
            sparse_future = pool.submit(self.sparse_search, query, document_id, None)
            dense, dense_error = _collect(dense_future)
            sparse, sparse_error = _collect(sparse_future)

        if dense_error is not None and sparse_error is not None:
            raise SearchUnavailableError(dense_error, sparse_error)
        if sparse_error is not None:
            logger.warning("sparse search unavailable, using dense results only: %s", sparse_error)
        if dense_error is not None:
            logger.warning("dense search unavailable, using sparse results only: %s", dense_error)

        fused = self.fuse(dense, sparse)
        return fused[:top_k] if top_k is not None else fused

    def _ranked(
        self,
        query: str,
        document_id: str | None,
        use_hybrid: bool,
        min_score: float | None,
    ) -> list[ScoredChunk]:
        if use_hybrid:
            return self.hybrid_search(query, document_id=document_id, min_score=min_score)
        return self.dense_search(query, document_id=document_id, min_score=min_score)

    def documents(self) -> list[IndexedDocument]:
        try:
            return self.store.list_documents()
        except Exception as exc:  # noqa: BLE001
            raise DocumentSelectionError(f"cannot read the document catalogue: {exc}") from exc

    def resolve_document(self, document_filter: str, documents: list[IndexedDocument] | None = None) -> IndexedDocument:
        """Find the document named by an id, a slug or a part of its name.

        Raises:
            DocumentNotFoundError: when nothing matches.
        """
        documents = self.documents() if documents is None else documents
        wanted = normalize(document_filter.strip())
        slug = slugify(document_filter)
        for document in documents:
            if document.document_id in (document_filter, slug):
                return document
        for document in documents:
            if wanted and wanted in normalize(document.name):
                return document
        raise DocumentNotFoundError(f"no indexed document matches {document_filter!r}")

    def _select_document_chunks(
        self,
        query: str,
        document: IndexedDocument,
        top_k: int,
        use_hybrid: bool,
        matched_by_name: bool,
    ) -> DocumentSelection | None:
        # the document is already chosen, so no relevance threshold applies
        chunks = self._ranked(query, document.document_id, use_hybrid, min_score=None)
        if not chunks:
            return None
        return DocumentSelection(
            document_id=document.document_id,
            document_name=document.name,
            aggregate_score=aggregate_score(chunks, self.settings.aggregate_top),
            matched_by_name=matched_by_name,
            chunks=chunks[:top_k],
            metadata=document.metadata,
        )

    def select_document(
        self,
        query: str,
        top_k: int | None = None,
        use_hybrid: bool = True,
        candidates: list[IndexedDocument] | None = None,
        matched_by_name: bool = False,
    ) -> DocumentSelection | None:
        """Pick the document with the highest aggregate score for ``query``.

        The aggregate is the sum of a document's best three chunk scores.
        Ties go to the document that reached the score first in ranking order.

        Raises:
            DocumentSelectionError: when the winning chunks belong to no
                catalogued document.
        """
        top_k = top_k or self.settings.default_top_k
        catalogue = {document.document_id: document for document in self.documents()}
        allowed = {document.document_id for document in candidates} if candidates is not None else None
        results = self._ranked(query, None, use_hybrid, min_score=self.settings.min_score)

        grouped: dict[str, list[ScoredChunk]] = {}
        for scored in results:
            if allowed is not None and scored.document_id not in allowed:
                continue
            grouped.setdefault(scored.document_id, []).append(scored)
        if not grouped:
            return None

        best_id = ""
        best_score = float("-inf")
        for document_id, chunks in grouped.items():
            score = aggregate_score(chunks, self.settings.aggregate_top)
            if score > best_score:
                best_id, best_score = document_id, score

        document = catalogue.get(best_id)
        if document is None:
            raise DocumentSelectionError(f"chunks of {best_id!r} match no catalogued document")
        logger.debug("selected %s with aggregate %.4f among %d documents", best_id, best_score, len(grouped))
        return DocumentSelection(
            document_id=document.document_id,
            document_name=document.name,
            aggregate_score=best_score,
            matched_by_name=matched_by_name,
            chunks=grouped[best_id][:top_k],
            metadata=document.metadata,
        )

    def retrieve(
        self,
        query: str,
        document_filter: str | None = None,
        top_k: int | None = None,
        use_hybrid: bool = True,
    ) -> DocumentSelection | None:
        """Return the top-K chunks of the document that best answers ``query``.

        Args:
            query: User question.
            document_filter: Optional document id, slug or name fragment.
            top_k: Number of chunks to return.
            use_hybrid: Fuse dense and sparse search instead of dense only.

        Returns:
            The selection, or ``None`` when nothing relevant was found.

        Raises:
            DocumentNotFoundError: when ``document_filter`` matches nothing.
            DocumentSelectionError: when the catalogue cannot be resolved.
            SearchUnavailableError: when every search backend failed.
        """
        top_k = top_k or self.settings.default_top_k
        documents = self.documents()
        if not documents:
            return None

        if document_filter:
            document = self.resolve_document(document_filter, documents)
            return self._select_document_chunks(query, document, top_k, use_hybrid, matched_by_name=False)

        if len(documents) == 1:
            document = documents[0]
            matched = name_in_query(document.name, query, self.settings.name_min_length)
            return self._select_document_chunks(query, document, top_k, use_hybrid, matched_by_name=matched)

        named = [
            document
            for document in documents
            if name_in_query(document.name, query, self.settings.name_min_length)
        ]
        if len(named) == 1:
            return self._select_document_chunks(query, named[0], top_k, use_hybrid, matched_by_name=True)
        if named:
            return self.select_document(query, top_k, use_hybrid, candidates=named, matched_by_name=True)
        return self.select_document(query, top_k, use_hybrid)

    def search(
        self,
        query: str,
        document_filter: str | None = None,
        top_k: int | None = None,
        use_hybrid: bool = True,
    ) -> RetrievalOutcome:
        """Intent-aware retrieval that reports why nothing was found.

        Without an explicit ``top_k`` the intent decides how many chunks to
        return; overview questions also put key section types first.
        """
        intent = detect_intent(query)
        if not self.documents():
            return RetrievalOutcome(status=RetrievalStatus.NO_DOCUMENTS, intent=intent)

        selection = self.retrieve(query, document_filter, top_k or intent.recommended_k, use_hybrid)
        if selection is None:
            return RetrievalOutcome(status=RetrievalStatus.NO_RESULTS, intent=intent)
        if intent.priority_categories:
            selection.chunks = prioritize(selection.chunks, intent.priority_categories)
        return RetrievalOutcome(status=RetrievalStatus.OK, selection=selection, intent=intent)


__all__ = ["RetrievalEngine", "aggregate_score", "name_in_query"]
