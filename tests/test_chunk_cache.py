from __future__ import annotations

from pathlib import Path

import pytest

from rto_validator.extraction_client.types import ExtractedDocument, ExtractedParagraph
from rto_validator.storage.blob_storage import LocalBlobStorage
from rto_validator.storage.chunk_cache import DocumentContentCache, build_chunks
from rto_validator.storage.models import SessionDocument
from rto_validator.utils.error_taxonomy import ExtractionError


class FakeBlobStorage:
    def __init__(self) -> None:
        self.downloads: list[str] = []

    def download(self, storage_path: str) -> bytes:
        self.downloads.append(storage_path)
        return b"%PDF-1.7 fake"


class FakeExtractor:
    def __init__(self, document: ExtractedDocument) -> None:
        self.document = document
        self.calls = 0

    def extract(self, content: bytes, *, filename: str) -> ExtractedDocument:
        del content, filename
        self.calls += 1
        return self.document


def _document(storage_path: str = "rto/unit/assessment.pdf") -> SessionDocument:
    return SessionDocument(
        id=1,
        validation_detail_id=10,
        file_name="assessment.pdf",
        storage_path=storage_path,
    )


def _extracted() -> ExtractedDocument:
    return ExtractedDocument(
        content="Heading\n\nBody",
        pages_count=2,
        paragraphs=[
            ExtractedParagraph(content="Heading", page_number=1, role="title"),
            ExtractedParagraph(content="   ", page_number=1),
            ExtractedParagraph(content="Body text", page_number=2),
        ],
    )


def test_miss_extracts_then_hit_reads_cache(tmp_path: Path) -> None:
    blob = FakeBlobStorage()
    extractor = FakeExtractor(_extracted())
    cache = DocumentContentCache(
        tmp_path / "db.sqlite3", blob_storage=blob, extractor=extractor
    )

    first = cache.get_or_extract(_document())
    cache.flush()
    second = cache.get_or_extract(_document())
    cache.close()

    assert [chunk.text for chunk in first] == ["Heading", "Body text"]
    assert [chunk.kind for chunk in first] == ["title", "paragraph"]
    assert [chunk.page_number for chunk in first] == [1, 2]
    assert first[0].document_url == "s3://smartrtobucket/rto/unit/assessment.pdf"
    assert [chunk.text for chunk in second] == ["Heading", "Body text"]
    assert all(chunk.id is not None for chunk in second)
    assert extractor.calls == 1
    assert blob.downloads == ["rto/unit/assessment.pdf"]


def test_cache_is_shared_across_sessions_by_url(tmp_path: Path) -> None:
    db_path = tmp_path / "db.sqlite3"
    extractor = FakeExtractor(_extracted())
    first_cache = DocumentContentCache(
        db_path, blob_storage=FakeBlobStorage(), extractor=extractor
    )
    first_cache.get_or_extract(_document())
    first_cache.close()

    second_cache = DocumentContentCache(
        db_path, blob_storage=FakeBlobStorage(), extractor=extractor
    )
    other_session_doc = SessionDocument(
        id=99,
        validation_detail_id=77,
        file_name="assessment.pdf",
        storage_path="/rto/unit/assessment.pdf",
    )
    chunks = second_cache.get_or_extract(other_session_doc)
    second_cache.close()

    assert len(chunks) == 2
    assert extractor.calls == 1


def test_concurrent_write_back_does_not_duplicate_rows(tmp_path: Path) -> None:
    db_path = tmp_path / "db.sqlite3"
    caches = [
        DocumentContentCache(
            db_path,
            blob_storage=FakeBlobStorage(),
            extractor=FakeExtractor(_extracted()),
        )
        for _ in range(2)
    ]

    for cache in caches:
        cache.get_or_extract(_document())
    for cache in caches:
        cache.close()

    stored = caches[0].load("s3://smartrtobucket/rto/unit/assessment.pdf")
    assert [chunk.ordinal for chunk in stored] == [0, 1]


def test_document_without_paragraphs_becomes_single_chunk() -> None:
    chunks = build_chunks(
        ExtractedDocument(content="Whole document text", pages_count=1),
        document_url="s3://bucket/a.pdf",
        filename="a.pdf",
    )

    assert len(chunks) == 1
    assert chunks[0].kind == "document"
    assert chunks[0].page_number == 1


def test_empty_extraction_raises_and_is_not_cached(tmp_path: Path) -> None:
    cache = DocumentContentCache(
        tmp_path / "db.sqlite3",
        blob_storage=FakeBlobStorage(),
        extractor=FakeExtractor(ExtractedDocument(content="   ")),
    )

    with pytest.raises(ExtractionError):
        cache.get_or_extract(_document())
    cache.close()

    assert cache.load("s3://smartrtobucket/rto/unit/assessment.pdf") == []


def test_local_blob_storage_rejects_traversal(tmp_path: Path) -> None:
    storage = LocalBlobStorage(tmp_path / "blobs")
    (tmp_path / "blobs" / "rto").mkdir(parents=True)
    (tmp_path / "blobs" / "rto" / "doc.pdf").write_bytes(b"data")

    assert storage.download("rto/doc.pdf") == b"data"
    with pytest.raises(ValueError):
        storage.download("../secret.txt")
    with pytest.raises(FileNotFoundError):
        storage.download("rto/missing.pdf")
