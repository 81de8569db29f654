from __future__ import annotations

from typing import Sequence

from rto_validator.storage.models import DocumentContentChunk


def pack_chunks(chunks: Sequence[DocumentContentChunk]) -> str:
    """Render selected chunks grouped by document, preserving input order."""
    lines: list[str] = ["<BEGIN_DOCUMENTS>"]

    current_document: str | None = None
    for chunk in chunks:
        if chunk.document_url != current_document:
            if current_document is not None:
                lines.append("<DOC_END>")
            lines.append(f'<DOC_START name="{chunk.filename}">')
            current_document = chunk.document_url
        lines.append(f"[page {chunk.page_number}] {chunk.text}")

    if current_document is not None:
        lines.append("<DOC_END>")
    lines.append("<END_DOCUMENTS>")
    return "\n".join(lines)
