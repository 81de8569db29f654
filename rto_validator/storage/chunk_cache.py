from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path

from rto_validator.extraction_client.types import DocumentExtractor, ExtractedDocument
from rto_validator.storage.blob_storage import BlobStorage
from rto_validator.storage.db import connection, init_db
from rto_validator.storage.models import DocumentContentChunk, SessionDocument
from rto_validator.utils.error_taxonomy import ExtractionError, build_error_details
from rto_validator.utils.logging import get_logger

logger = get_logger(__name__)


class DocumentContentCache:
    """Extracted document content keyed by canonical document URL.

    Chunks are shared by every session that references the same URL. A miss
    extracts the document and returns its chunks right away; the write-back
    runs on a single background worker and never fails the caller.
    """

    def __init__(
        self,
        db_path: Path | str,
        *,
        blob_storage: BlobStorage,
        extractor: DocumentExtractor,
        document_url_prefix: str = "s3://smartrtobucket",
    ) -> None:
        self.db_path = Path(db_path)
        self.blob_storage = blob_storage
        self.extractor = extractor
        self.document_url_prefix = document_url_prefix.rstrip("/")
        self.write_failures = 0
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="chunk-cache-writer"
        )
        self._pending: list[Future[int]] = []
        self._lock = threading.Lock()
        init_db(self.db_path)

    def document_url(self, storage_path: str) -> str:
        return f"{self.document_url_prefix}/{storage_path.lstrip('/')}"

    def get_or_extract(self, document: SessionDocument) -> list[DocumentContentChunk]:
        url = self.document_url(document.storage_path)
        cached = self.load(url)
        if cached:
            logger.info("Chunk cache hit for %s (%d chunks)", url, len(cached))
            return cached

        logger.info("Chunk cache miss for %s, extracting", url)
        content = self.blob_storage.download(document.storage_path)
        extracted = self.extractor.extract(content, filename=document.file_name)
        chunks = build_chunks(
            extracted, document_url=url, filename=document.file_name
        )
        if not chunks:
            raise ExtractionError(f"No text extracted from {document.file_name}")

        self._schedule_write(chunks)
        return chunks

    def load(self, document_url: str) -> list[DocumentContentChunk]:
        with connection(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT id, document_url, ordinal, filename, page_number, text, kind
                FROM document_chunks
                WHERE document_url = ?
                ORDER BY ordinal ASC
                """,
                (document_url,),
            ).fetchall()

        return [
            DocumentContentChunk(
                id=int(row["id"]),
                document_url=str(row["document_url"]),
                filename=str(row["filename"]),
                page_number=int(row["page_number"]),
                text=str(row["text"]),
                kind=str(row["kind"]),
                ordinal=int(row["ordinal"]),
            )
            for row in rows
        ]

    def flush(self) -> None:
        with self._lock:
            pending = list(self._pending)
            self._pending.clear()
        for future in pending:
            future.exception()

    def close(self) -> None:
        self.flush()
        self._executor.shutdown(wait=True)

    def _schedule_write(self, chunks: list[DocumentContentChunk]) -> None:
        future = self._executor.submit(self._write_chunks, chunks)
        with self._lock:
            self._pending.append(future)

    def _write_chunks(self, chunks: list[DocumentContentChunk]) -> int:
        created_at = _utc_now()
        try:
            with connection(self.db_path) as conn:
                cursor = conn.executemany(
                    """
                    INSERT INTO document_chunks (
                        document_url,
                        ordinal,
                        filename,
                        page_number,
                        text,
                        kind,
                        created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT (document_url, ordinal) DO NOTHING
                    """,
                    [
                        (
                            chunk.document_url,
                            chunk.ordinal,
                            chunk.filename,
                            chunk.page_number,
                            chunk.text,
                            chunk.kind,
                            created_at,
                        )
                        for chunk in chunks
                    ],
                )
                written = max(cursor.rowcount, 0)
        except Exception as error:  # noqa: BLE001
            self.write_failures += 1
            logger.warning(
                "Chunk cache write-back failed for %s: %s",
                chunks[0].document_url,
                build_error_details(error),
            )
            return 0

        logger.debug(
            "Cached %d/%d chunks for %s", written, len(chunks), chunks[0].document_url
        )
        return written


def build_chunks(
    extracted: ExtractedDocument, *, document_url: str, filename: str
) -> list[DocumentContentChunk]:
    chunks = [
        DocumentContentChunk(
            document_url=document_url,
            filename=filename,
            page_number=paragraph.page_number or 1,
            text=paragraph.content,
            kind=paragraph.role or "paragraph",
            ordinal=ordinal,
        )
        for ordinal, paragraph in enumerate(
            item for item in extracted.paragraphs if item.content.strip()
        )
    ]
    if chunks:
        return chunks

    if extracted.content.strip():
        return [
            DocumentContentChunk(
                document_url=document_url,
                filename=filename,
                page_number=1,
                text=extracted.content,
                kind="document",
                ordinal=0,
            )
        ]
    return []


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()
