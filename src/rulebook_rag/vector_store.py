from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import chromadb
import numpy as np

from .errors import IngestionIntegrityError
from .schema import (
    Chunk,
    ChunkAnnotations,
    DocumentMetadata,
    IndexedChunk,
    IndexedDocument,
    ScoredChunk,
    ScoreStage,
)

logger = logging.getLogger(__name__)

_LIST_SEPARATOR = "|"
_METADATA_FIELDS = ("min_players", "max_players", "min_age", "min_duration", "max_duration")


def chunk_id(document_id: str, offset: int) -> str:
    return f"{document_id}_{offset}"


def _encode_optional(value: int | None) -> int:
    return value if value is not None else -1


def _decode_optional(value) -> int | None:
    return None if value is None or int(value) < 0 else int(value)


def _split_list(value) -> list[str]:
    return [item for item in str(value or "").split(_LIST_SEPARATOR) if item]


def _to_metadata(
    document_id: str,
    document_name: str,
    chunk: Chunk,
    annotations: ChunkAnnotations,
    sequence: int,
    source: str,
    document_metadata: DocumentMetadata | None = None,
) -> dict:
    record = {
        "document_id": document_id,
        "document_name": document_name,
        "section_title": chunk.section_title,
        "hierarchy_path": chunk.hierarchy_path,
        "chunk_index": chunk.chunk_index,
        "chunk_count": chunk.chunk_count,
        "level": chunk.source_section.level,
        "section_type": chunk.section_type,
        "mechanics": _LIST_SEPARATOR.join(annotations.mechanics),
        "entities": _LIST_SEPARATOR.join(annotations.entities),
        "actions": _LIST_SEPARATOR.join(annotations.actions),
        "summary": annotations.summary,
        "page_start": _encode_optional(chunk.page_start),
        "page_end": _encode_optional(chunk.page_end),
        "source": source,
        "sequence": sequence,
    }
    for name in _METADATA_FIELDS:
        value = getattr(document_metadata, name) if document_metadata else None
        record[name] = _encode_optional(value)
    return record


def _from_record(record_id: str, content: str, metadata: dict) -> IndexedChunk:
    return IndexedChunk(
        id=record_id,
        document_id=metadata["document_id"],
        document_name=metadata["document_name"],
        content=content,
        section_title=metadata.get("section_title", ""),
        hierarchy_path=metadata.get("hierarchy_path", ""),
        chunk_index=int(metadata.get("chunk_index", 0)),
        chunk_count=int(metadata.get("chunk_count", 1)),
        level=int(metadata.get("level", 2)),
        section_type=metadata.get("section_type", "other"),
        mechanics=_split_list(metadata.get("mechanics")),
        entities=_split_list(metadata.get("entities")),
        actions=_split_list(metadata.get("actions")),
        summary=metadata.get("summary", ""),
        page_start=_decode_optional(metadata.get("page_start")),
        page_end=_decode_optional(metadata.get("page_end")),
        source=metadata.get("source", ""),
    )


def _fill_document_metadata(document: IndexedDocument, metadata: dict) -> None:
    if document.metadata is None:
        document.metadata = DocumentMetadata(name=document.name)
    for name in _METADATA_FIELDS:
        if getattr(document.metadata, name) is None:
            setattr(document.metadata, name, _decode_optional(metadata.get(name)))


class ChunkStore:
    """Persistent chunk records and vectors in one Chroma collection (cosine space).

    Writes for one document are serialised by a per-document lock and land in
    a single ``add`` call; when that call fails the batch is deleted again and
    the previous records of the document are restored.
    """

    def __init__(
        self,
        persist_dir: str = "artifacts/chroma",
        collection_name: str = "rulebook_chunks",
        client=None,
    ):
        if client is None:
            Path(persist_dir).mkdir(parents=True, exist_ok=True)
            client = chromadb.PersistentClient(path=persist_dir)
        self.client = client
        self.collection = client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": "cosine"},
        )
        self.revision = 0
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _document_lock(self, document_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.setdefault(document_id, threading.Lock())
        with lock:
            yield

    def _sequences(self, document_id: str) -> list[int]:
        response = self.collection.get(where={"document_id": document_id}, include=["metadatas"])
        return sorted(int(metadata["sequence"]) for metadata in response["metadatas"])

    def count_chunks(self, document_id: str) -> int:
        return len(self.collection.get(where={"document_id": document_id}, include=["metadatas"])["ids"])

    def add_document(
        self,
        document_id: str,
        document_name: str,
        chunks: list[Chunk],
        vectors: np.ndarray | list[list[float]],
        annotations: list[ChunkAnnotations] | None = None,
        merge: bool = False,
        source: str = "",
        document_metadata: DocumentMetadata | None = None,
    ) -> list[IndexedChunk]:
        """Persist one document's chunks as a single batch.

        Args:
            document_id: Slug of the document.
            document_name: Display name stored on every record.
            chunks: Chunks in reading order.
            vectors: Embedding rows aligned to ``chunks``.
            annotations: Optional enrichment aligned to ``chunks``.
            merge: Append after the existing chunks instead of replacing them.
            source: Origin of the text (file name), stored for listing.
            document_metadata: Game facts stored on every record of the batch.

        Returns:
            The records as stored, with their ids. An empty batch stores
            nothing; in replace mode it removes the document.

        Raises:
            IngestionIntegrityError: when the batch would leave duplicate or
                gapped ids, or the backend write failed and was rolled back.
        """
        vectors = np.asarray(vectors, dtype=np.float32)
        if len(vectors) != len(chunks):
            raise ValueError(f"got {len(vectors)} vectors for {len(chunks)} chunks")
        annotations = annotations or [ChunkAnnotations() for _ in chunks]
        if not chunks:
            if not merge:
                self.remove_document(document_id)
            return []

        with self._document_lock(document_id):
            snapshot = None
            if merge:
                sequences = self._sequences(document_id)
                if sequences != list(range(len(sequences))):
                    raise IngestionIntegrityError(f"existing chunk ids of {document_id!r} are not contiguous")
                offset = len(sequences)
            else:
                snapshot = self.collection.get(
                    where={"document_id": document_id},
                    include=["embeddings", "documents", "metadatas"],
                )
                if snapshot["ids"]:
                    self.collection.delete(ids=snapshot["ids"])
                offset = 0

            ids = [chunk_id(document_id, offset + position) for position in range(len(chunks))]
            duplicates = self.collection.get(ids=ids, include=["metadatas"])["ids"]
            if duplicates:
                self._restore(snapshot)
                raise IngestionIntegrityError(f"chunk ids already present: {sorted(duplicates)}")

            metadatas = [
                _to_metadata(
                    document_id, document_name, chunk, annotation, offset + position, source, document_metadata
                )
                for position, (chunk, annotation) in enumerate(zip(chunks, annotations, strict=True))
            ]
            documents = [chunk.content for chunk in chunks]
            try:
                self.collection.add(
                    ids=ids,
                    embeddings=vectors.tolist(),
                    documents=documents,
                    metadatas=metadatas,
                )
            except Exception as exc:  # noqa: BLE001
                logger.error("ingestion of %s failed, rolling back %d chunks", document_id, len(ids))
                self.collection.delete(ids=ids)
                self._restore(snapshot)
                raise IngestionIntegrityError(f"could not store chunks of {document_id!r}: {exc}") from exc
            self.revision += 1

        logger.info("stored %d chunks for %s (offset %d, merge=%s)", len(ids), document_id, offset, merge)
        return [
            _from_record(record_id, content, metadata)
            for record_id, content, metadata in zip(ids, documents, metadatas, strict=True)
        ]

    def _restore(self, snapshot) -> None:
        if not snapshot or not snapshot["ids"]:
            return
        self.collection.add(
            ids=snapshot["ids"],
            embeddings=[[float(value) for value in row] for row in snapshot["embeddings"]],
            documents=snapshot["documents"],
            metadatas=snapshot["metadatas"],
        )

    def remove_document(self, document_id: str) -> int:
        with self._document_lock(document_id):
            ids = self.collection.get(where={"document_id": document_id}, include=["metadatas"])["ids"]
            if ids:
                self.collection.delete(ids=ids)
                self.revision += 1
        return len(ids)

    def list_documents(self) -> list[IndexedDocument]:
        """Indexed documents sorted by name.

        Game facts come from the earliest record that carries each of them, so a
        merged batch only fills what the first ingestion left unknown.
        """
        response = self.collection.get(include=["metadatas"])
        documents: dict[str, IndexedDocument] = {}
        records = sorted(response["metadatas"], key=lambda metadata: int(metadata["sequence"]))
        for metadata in records:
            document_id = metadata["document_id"]
            document = documents.setdefault(
                document_id,
                IndexedDocument(document_id=document_id, name=metadata["document_name"]),
            )
            document.chunk_count += 1
            source = metadata.get("source", "")
            if source and source not in document.sources:
                document.sources.append(source)
            _fill_document_metadata(document, metadata)
        return sorted(documents.values(), key=lambda document: (document.name.lower(), document.document_id))

    def get_chunks(self, document_id: str | None = None) -> list[IndexedChunk]:
        """All stored chunks in ingestion order, optionally for one document."""
        where = {"document_id": document_id} if document_id else None
        response = self.collection.get(where=where, include=["documents", "metadatas"])
        records = sorted(
            zip(response["ids"], response["documents"], response["metadatas"], strict=True),
            key=lambda record: (record[2]["document_id"], int(record[2]["sequence"])),
        )
        return [_from_record(record_id, content, metadata) for record_id, content, metadata in records]

    def dense_search(
        self,
        vector: np.ndarray | list[float],
        top_n: int = 20,
        document_id: str | None = None,
        min_similarity: float | None = None,
    ) -> list[ScoredChunk]:
        """Nearest chunks by cosine similarity (``1 - distance``)."""
        where = {"document_id": document_id} if document_id else None
        if where is None:
            available = self.collection.count()
        else:
            available = len(self.collection.get(where=where, include=["metadatas"])["ids"])
        if available == 0 or top_n <= 0:
            return []

        query = np.asarray(vector, dtype=np.float32).reshape(-1).tolist()
        response = self.collection.query(
            query_embeddings=[query],
            n_results=min(top_n, available),
            where=where,
            include=["documents", "metadatas", "distances"],
        )
        results: list[ScoredChunk] = []
        for record_id, content, metadata, distance in zip(
            response["ids"][0],
            response["documents"][0],
            response["metadatas"][0],
            response["distances"][0],
            strict=True,
        ):
            score = float(1.0 - distance)
            if min_similarity is not None and score < min_similarity:
                continue
            chunk = _from_record(record_id, content, metadata)
            results.append(ScoredChunk(chunk=chunk, score=score, stage=ScoreStage.DENSE))
        return results


__all__ = ["ChunkStore", "chunk_id"]
