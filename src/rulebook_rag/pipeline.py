from __future__ import annotations

import logging
from pathlib import Path

from opentelemetry import trace

from .chunking import chunk_sections, chunking_stats, enrich_chunk_content
from .context import selection_context
from .embeddings import Embedder
from .extraction import extract_text
from .metadata import extract_document_name, extract_metadata
from .nlp import detect_mechanics, extract_actions, extract_entities, extract_summary
from .qa import AnswerFn
from .schema import Answer, Chunk, ChunkAnnotations, DocumentSelection, RetrievalOutcome, RetrievalStatus
from .search import RetrievalEngine
from .sections import build_sections
from .settings import Settings
from .text_utils import slugify
from .tracing import (
    ATTR_INPUT_VALUE,
    ATTR_OUTPUT_VALUE,
    traced_generation,
    traced_ingestion,
    traced_retrieval,
)
from .vector_store import ChunkStore

logger = logging.getLogger(__name__)

NO_DOCUMENTS_MESSAGE = "Aucune règle n'est encore indexée."
NO_RESULTS_MESSAGE = "Je n'ai trouvé aucun passage des règles en rapport avec cette question."


def annotate(chunk: Chunk) -> ChunkAnnotations:
    return ChunkAnnotations(
        mechanics=detect_mechanics(chunk.content),
        entities=extract_entities(chunk.content),
        actions=extract_actions(chunk.content),
        summary=extract_summary(chunk.content),
    )


class RulebookPipeline:
    """Ingest rulebooks and answer questions about them.

    Args:
        store: Chunk persistence.
        embedder: Embeds chunk and query text.
        settings: Full configuration; defaults when omitted.
        answer_fn: ``(question, context) -> (answer, model, used_generation)``;
            without one, :meth:`ask` returns the retrieved context.
        tracer: OTel tracer; spans are no-ops when omitted.
    """

    def __init__(
        self,
        store: ChunkStore,
        embedder: Embedder,
        settings: Settings | None = None,
        answer_fn: AnswerFn | None = None,
        tracer: trace.Tracer | None = None,
    ):
        self.store = store
        self.embedder = embedder
        self.settings = settings or Settings()
        self.engine = RetrievalEngine(store, embedder, self.settings.retrieval)
        self.tracer = tracer or trace.get_tracer("rulebook_rag")
        self.answer_fn = answer_fn
        self._traced_ingest = traced_ingestion(self._ingest, self.tracer)
        self._traced_retrieve = traced_retrieval(self.engine.retrieve, self.tracer)

    def ingest(
        self,
        raw_text: str,
        document_name: str | None = None,
        merge: bool = False,
        source: str = "",
    ) -> list[Chunk]:
        """Structure, chunk, embed and store one document.

        Args:
            raw_text: Extracted text, optionally with page markers.
            document_name: Display name; read from the first line when omitted.
            merge: Append to an already indexed document of the same name.
            source: Origin recorded with the chunks.

        Returns:
            The stored chunks; empty when the text yields no sections.
        """
        return self._traced_ingest(raw_text, document_name=document_name, merge=merge, source=source)

    def _ingest(
        self,
        raw_text: str,
        document_name: str | None = None,
        merge: bool = False,
        source: str = "",
    ) -> list[Chunk]:
        if not raw_text or not raw_text.strip():
            logger.info("empty text for %s, nothing to ingest", document_name or source or "document")
            return []
        name = document_name or extract_document_name(raw_text)
        sections = build_sections(raw_text, name, self.settings.sections)
        chunks = chunk_sections(sections, self.settings.chunking)
        if not chunks:
            logger.info("no sections produced for %s", name)
            return []

        vectors = self.embedder.embed([enrich_chunk_content(chunk) for chunk in chunks])
        document_id = slugify(name) or "document"
        facts = extract_metadata(raw_text, name)
        logger.debug("game facts for %s: %s", name, facts)
        self.store.add_document(
            document_id,
            name,
            chunks,
            vectors,
            annotations=[annotate(chunk) for chunk in chunks],
            merge=merge,
            source=source,
            document_metadata=facts,
        )
        stats = chunking_stats(chunks)
        logger.info(
            "ingested %s: %d sections, %d chunks, %.1f words per chunk",
            name,
            len(sections),
            stats["total_chunks"],
            stats["avg_words"],
        )
        return chunks

    def ingest_file(self, path: str | Path, document_name: str | None = None, merge: bool = False) -> list[Chunk]:
        path = Path(path)
        return self.ingest(extract_text(path), document_name=document_name, merge=merge, source=path.name)

    def retrieve(
        self,
        query: str,
        document_filter: str | None = None,
        top_k: int | None = None,
        use_hybrid: bool = True,
    ) -> DocumentSelection | None:
        return self._traced_retrieve(query, document_filter=document_filter, top_k=top_k, use_hybrid=use_hybrid)

    def ask(
        self,
        question: str,
        document_filter: str | None = None,
        top_k: int | None = None,
        use_hybrid: bool = True,
    ) -> Answer:
        """Answer ``question`` from the best matching rulebook.

        Overview questions get more chunks, key sections first, summarised.
        Without an answer generator the formatted context is returned as the
        answer with ``used_generation`` false.
        """
        with self.tracer.start_as_current_span("rulebook-ask") as span:
            span.set_attribute(ATTR_INPUT_VALUE, question)
            outcome = self.engine.search(question, document_filter, top_k, use_hybrid)
            answer = self._answer(question, outcome)
            span.set_attribute(ATTR_OUTPUT_VALUE, answer.answer[:500])
            return answer

    def _answer(self, question: str, outcome: RetrievalOutcome) -> Answer:
        if outcome.status is RetrievalStatus.NO_DOCUMENTS:
            return Answer(answer=NO_DOCUMENTS_MESSAGE, model="none", used_generation=False)
        if outcome.status is RetrievalStatus.NO_RESULTS:
            return Answer(answer=NO_RESULTS_MESSAGE, model="none", used_generation=False)

        overview = outcome.intent is not None and outcome.intent.intent == "overview"
        context = selection_context(outcome.selection, use_summaries=overview)
        if self.answer_fn is None:
            return Answer(answer=context, model="none", used_generation=False, selection=outcome.selection)

        answer_fn = traced_generation(self.answer_fn, self.tracer)
        text, model, used_generation = answer_fn(question, context)
        return Answer(answer=text, model=model, used_generation=used_generation, selection=outcome.selection)
