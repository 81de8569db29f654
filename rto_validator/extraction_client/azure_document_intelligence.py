from __future__ import annotations

import mimetypes
import time
from typing import Any, Callable

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from rto_validator.extraction_client.types import ExtractedDocument, ExtractedParagraph
from rto_validator.utils.error_taxonomy import ExtractionError, is_retryable_status_code
from rto_validator.utils.logging import get_logger

logger = get_logger(__name__)

ANALYZE_PATH = "/documentintelligence/documentModels/{model}:analyze"


def _should_retry_request(error: BaseException) -> bool:
    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return is_retryable_status_code(error.response.status_code)
    return False


class AzureDocumentIntelligenceClient:
    """Layout extraction through the Azure Document Intelligence REST API.

    A document is submitted to ``<model>:analyze``; the service answers with an
    ``Operation-Location`` header which is polled until the analysis succeeds,
    fails, or ``max_wait_seconds`` elapses.
    """

    def __init__(
        self,
        *,
        endpoint: str | None,
        api_key: str | None,
        model: str = "prebuilt-layout",
        api_version: str = "2024-11-30",
        poll_interval_seconds: float = 2.0,
        max_wait_seconds: float = 120.0,
        max_attempts: int = 3,
        transport: httpx.BaseTransport | None = None,
        sleep_fn: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._endpoint = (endpoint or "").rstrip("/")
        self._api_key = api_key
        self._model = model
        self._api_version = api_version
        self._poll_interval_seconds = poll_interval_seconds
        self._max_wait_seconds = max_wait_seconds
        self._max_attempts = max_attempts
        self._transport = transport
        self._sleep_fn = sleep_fn
        self._clock = clock

    def extract(self, content: bytes, *, filename: str) -> ExtractedDocument:
        if not self._endpoint or not self._api_key:
            raise ValueError(
                "Azure Document Intelligence endpoint and key are required"
            )
        if not content:
            raise ExtractionError(f"Document is empty: {filename}")

        with self._build_client() as client:
            operation_url = self._submit(client, content=content, filename=filename)
            result = self._poll(client, operation_url=operation_url, filename=filename)

        document = parse_analyze_result(result)
        logger.info(
            "Extracted %s: %d pages, %d paragraphs",
            filename,
            document.pages_count,
            len(document.paragraphs),
        )
        return document

    def _build_client(self) -> httpx.Client:
        return httpx.Client(
            headers={"Ocp-Apim-Subscription-Key": str(self._api_key)},
            timeout=60.0,
            transport=self._transport,
        )

    def _submit(self, client: httpx.Client, *, content: bytes, filename: str) -> str:
        url = self._endpoint + ANALYZE_PATH.format(model=self._model)
        content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"

        @retry(
            wait=wait_exponential(multiplier=self._poll_interval_seconds),
            stop=stop_after_attempt(self._max_attempts),
            retry=retry_if_exception(_should_retry_request),
            sleep=self._sleep_fn,
            reraise=True,
        )
        def _do_submit() -> httpx.Response:
            resp = client.post(
                url,
                params={"api-version": self._api_version},
                headers={"Content-Type": content_type},
                content=content,
            )
            resp.raise_for_status()
            return resp

        response = _do_submit()
        operation_url = response.headers.get("Operation-Location")
        if not operation_url:
            raise ExtractionError(
                f"Analyze response for {filename} has no Operation-Location header"
            )
        return operation_url

    def _poll(
        self, client: httpx.Client, *, operation_url: str, filename: str
    ) -> dict[str, Any]:
        deadline = self._clock() + self._max_wait_seconds
        while True:
            resp = client.get(operation_url)
            resp.raise_for_status()
            payload = resp.json()
            status = str(payload.get("status") or "").lower()

            if status == "succeeded":
                result = payload.get("analyzeResult")
                if not isinstance(result, dict):
                    raise ExtractionError(
                        f"Analyze result for {filename} is missing analyzeResult"
                    )
                return result
            if status == "failed":
                raise ExtractionError(
                    f"Analyze failed for {filename}: {payload.get('error')}"
                )
            if self._clock() >= deadline:
                raise TimeoutError(
                    f"Analyze for {filename} did not finish within "
                    f"{self._max_wait_seconds:.0f}s"
                )
            self._sleep_fn(self._poll_interval_seconds)


def parse_analyze_result(result: dict[str, Any]) -> ExtractedDocument:
    pages = result.get("pages")
    pages_count = len(pages) if isinstance(pages, list) else 0

    paragraphs: list[ExtractedParagraph] = []
    raw_paragraphs = result.get("paragraphs")
    if isinstance(raw_paragraphs, list):
        for item in raw_paragraphs:
            if not isinstance(item, dict):
                continue
            text = str(item.get("content") or "")
            if not text.strip():
                continue
            paragraphs.append(
                ExtractedParagraph(
                    content=text,
                    page_number=_first_page_number(item),
                    role=item.get("role") or None,
                )
            )

    return ExtractedDocument(
        content=str(result.get("content") or ""),
        pages_count=pages_count,
        paragraphs=paragraphs,
    )


def _first_page_number(paragraph: dict[str, Any]) -> int:
    regions = paragraph.get("boundingRegions")
    if isinstance(regions, list) and regions and isinstance(regions[0], dict):
        try:
            return int(regions[0].get("pageNumber") or 1)
        except (TypeError, ValueError):
            return 1
    return 1
