"""OpenTelemetry spans around ingestion, retrieval and answer generation.

Usage with an OTLP collector (e.g. Arize Phoenix):

    from rulebook_rag.tracing import configure_tracing, get_tracer

    configure_tracing(endpoint="http://localhost:6006/v1/traces")
    pipeline = RulebookPipeline(store, embedder, tracer=get_tracer("rulebook-rag"))

Without ``configure_tracing`` the global no-op provider discards all spans.
"""
from __future__ import annotations

from typing import Callable

from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor, SpanExporter

from .schema import Chunk, DocumentSelection

# OpenInference semantic-convention attribute names
ATTR_INPUT_VALUE = "input.value"
ATTR_OUTPUT_VALUE = "output.value"
ATTR_LLM_MODEL_NAME = "llm.model_name"
ATTR_RETRIEVAL_DOCUMENTS = "retrieval.documents"

# Package-specific attributes
ATTR_DOCUMENT_ID = "rulebook.document_id"
ATTR_DOCUMENT_NAME = "rulebook.document_name"
ATTR_MATCHED_BY_NAME = "rulebook.matched_by_name"
ATTR_CHUNK_COUNT = "rulebook.chunk_count"
ATTR_USED_GENERATION = "rulebook.used_generation"

_provider: TracerProvider | None = None


def configure_tracing(
    endpoint: str | None = None,
    service_name: str = "rulebook-rag",
    exporter: SpanExporter | None = None,
) -> TracerProvider:
    """Create and register the global TracerProvider.

    Args:
        endpoint: OTLP HTTP endpoint; needs the ``otlp`` extra installed.
        service_name: Service label shown by the tracing backend.
        exporter: Explicit exporter (tests pass an ``InMemorySpanExporter``);
            takes precedence over ``endpoint``. Defaults to the console.

    Returns:
        The provider, also installed as the global OTel provider.
    """
    global _provider

    provider = TracerProvider(resource=Resource(attributes={SERVICE_NAME: service_name}))
    if exporter is not None:
        chosen: SpanExporter = exporter
    elif endpoint is not None:
        try:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        except ImportError as exc:  # pragma: no cover
            raise ImportError(
                "opentelemetry-exporter-otlp-proto-http is required to export traces; "
                "install the package with the 'otlp' extra"
            ) from exc
        chosen = OTLPSpanExporter(endpoint=endpoint)
    else:
        chosen = ConsoleSpanExporter()

    provider.add_span_processor(SimpleSpanProcessor(chosen))
    trace.set_tracer_provider(provider)
    _provider = provider
    return provider


def get_tracer(name: str) -> trace.Tracer:
    """Tracer from the provider set by :func:`configure_tracing`, else the global one."""
    if _provider is not None:
        return _provider.get_tracer(name)
    return trace.get_tracer(name)


def _fail(span: trace.Span, exc: Exception) -> None:
    span.set_status(trace.StatusCode.ERROR, str(exc))
    span.record_exception(exc)


def traced_retrieval(
    retriever: Callable[..., DocumentSelection | None],
    tracer: trace.Tracer,
) -> Callable[..., DocumentSelection | None]:
    """Wrap a ``(query, **kwargs) -> DocumentSelection | None`` callable in a ``retrieval`` span.

    Records the query, the number of chunks returned and, when a document
    was selected, its id, name and whether it was matched by name.
    """

    def _wrapped(query: str, **kwargs) -> DocumentSelection | None:
        with tracer.start_as_current_span("retrieval") as span:
            span.set_attribute(ATTR_INPUT_VALUE, query)
            try:
                selection = retriever(query, **kwargs)
            except Exception as exc:
                _fail(span, exc)
                raise
            span.set_attribute(ATTR_RETRIEVAL_DOCUMENTS, len(selection.chunks) if selection else 0)
            if selection is not None:
                span.set_attribute(ATTR_DOCUMENT_ID, selection.document_id)
                span.set_attribute(ATTR_DOCUMENT_NAME, selection.document_name)
                span.set_attribute(ATTR_MATCHED_BY_NAME, selection.matched_by_name)
            span.set_status(trace.StatusCode.OK)
            return selection

    return _wrapped


def traced_generation(
    answer_fn: Callable[[str, str], tuple[str, str, bool]],
    tracer: trace.Tracer,
) -> Callable[[str, str], tuple[str, str, bool]]:
    """Wrap an answer generator in a ``generation`` span.

    The span carries the question, the model that answered and the first
    500 characters of the answer.
    """

    def _wrapped(question: str, context: str) -> tuple[str, str, bool]:
        with tracer.start_as_current_span("generation") as span:
            span.set_attribute(ATTR_INPUT_VALUE, question)
            try:
                answer, model, used_generation = answer_fn(question, context)
            except Exception as exc:
                _fail(span, exc)
                raise
            span.set_attribute(ATTR_LLM_MODEL_NAME, model)
            span.set_attribute(ATTR_OUTPUT_VALUE, answer[:500])
            span.set_attribute(ATTR_USED_GENERATION, used_generation)
            span.set_status(trace.StatusCode.OK)
            return answer, model, used_generation

    return _wrapped


def traced_ingestion(
    ingest_fn: Callable[..., list[Chunk]],
    tracer: trace.Tracer,
) -> Callable[..., list[Chunk]]:
    """Wrap an ``(raw_text, document_name=..., **kwargs) -> list[Chunk]`` callable in an ``ingestion`` span."""

    def _wrapped(raw_text: str, document_name: str | None = None, **kwargs) -> list[Chunk]:
        with tracer.start_as_current_span("ingestion") as span:
            if document_name:
                span.set_attribute(ATTR_DOCUMENT_NAME, document_name)
            try:
                chunks = ingest_fn(raw_text, document_name=document_name, **kwargs)
            except Exception as exc:
                _fail(span, exc)
                raise
            span.set_attribute(ATTR_CHUNK_COUNT, len(chunks))
            span.set_status(trace.StatusCode.OK)
            return chunks

    return _wrapped
