from __future__ import annotations

from dataclasses import asdict
import json
from pathlib import Path

from .schema import Chunk, Section


def _load_jsonl(path: str | Path) -> list[dict]:
    records: list[dict] = []
    with Path(path).open("r", encoding="utf-8") as file_handle:
        for line in file_handle:
            if line.strip():
                records.append(json.loads(line))
    return records


def _write_jsonl(records: list[dict], path: str | Path) -> None:
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)

    with destination.open("w", encoding="utf-8") as file_handle:
        for record in records:
            file_handle.write(json.dumps(record, ensure_ascii=False) + "\n")


def save_sections(sections: list[Section], path: str | Path) -> None:
    _write_jsonl([asdict(section) for section in sections], path)


def load_sections(path: str | Path) -> list[Section]:
    return [Section(**record) for record in _load_jsonl(path)]


def save_chunks(chunks: list[Chunk], path: str | Path) -> None:
    _write_jsonl([asdict(chunk) for chunk in chunks], path)


def load_chunks(path: str | Path) -> list[Chunk]:
    chunks: list[Chunk] = []
    for record in _load_jsonl(path):
        section = Section(**record.pop("source_section"))
        chunks.append(Chunk(source_section=section, **record))
    return chunks
