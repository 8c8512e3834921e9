"""
Extraction orchestration service.
Drives the extraction capability chunk by chunk under pacing, retry and
rate-limit backoff, streaming progress and transactions as they arrive.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, List, Literal, Optional

from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_fixed

from core.chunking import Chunk, PdfDocument
from core.config import Settings
from core.exceptions import RateLimitError, is_rate_limit_message
from core.logger import setup_logger
from core.normalize import normalize_candidates
from core.recovery import recover_extraction
from core.schema import (
    DEFAULT_CURRENCY,
    ChunkPayload,
    CompleteEvent,
    ErrorEvent,
    ParseResult,
    ProgressEvent,
    StreamEvent,
    TransactionsEvent,
)
from llm.client import ExtractionCapability

logger = setup_logger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


def _is_rate_limited(error: BaseException) -> bool:
    """Typed rate limits, or any failure whose message carries a rate-limit signature."""
    return isinstance(error, RateLimitError) or is_rate_limit_message(str(error))


def _is_retryable(error: BaseException) -> bool:
    """Generic failures are retried; rate limits and cancellation are not."""
    return isinstance(error, Exception) and not _is_rate_limited(error)


def _seconds(value: float) -> str:
    return f"{value:g}"


@dataclass(frozen=True)
class OrchestratorConfig:
    """Explicit knobs for one orchestrator instance."""
    pages_per_chunk: int = 2
    mode: Literal["document", "text"] = "document"
    pacing_delay: float = 2.0
    rate_limit_backoff: float = 32.0
    max_retries: int = 2
    retry_delay: float = 1.0
    min_text_chars: int = 20
    currency: str = DEFAULT_CURRENCY
    default_to_credit: bool = True
    model_label: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Settings, mode: Optional[str] = None, model: Optional[str] = None) -> "OrchestratorConfig":
        effective_mode = mode or settings.extraction_mode
        pacing = settings.pacing_delay_text if effective_mode == "text" else settings.pacing_delay_document
        return cls(
            pages_per_chunk=settings.pages_per_chunk,
            mode=effective_mode,
            pacing_delay=pacing,
            rate_limit_backoff=settings.rate_limit_backoff,
            max_retries=settings.max_chunk_retries,
            retry_delay=settings.retry_delay,
            min_text_chars=settings.min_chunk_text_chars,
            currency=settings.default_currency,
            default_to_credit=settings.default_to_credit,
            model_label=model or settings.openai_model,
        )


class ExtractionOrchestrator:
    """Sequential chunked extraction over a single extraction capability."""

    def __init__(
        self,
        capability: ExtractionCapability,
        config: Optional[OrchestratorConfig] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.capability = capability
        self.config = config or OrchestratorConfig()
        self._sleep = sleep

    def _build_payload(self, doc: PdfDocument, chunk: Chunk) -> Optional[ChunkPayload]:
        """Payload for one chunk, or None for a text chunk too short to bother with."""
        if self.config.mode == "text":
            text = doc.extract_text(chunk)
            if len(text.strip()) < self.config.min_text_chars:
                return None
            return ChunkPayload(mime_type="text/plain", text=text)

        return ChunkPayload(
            mime_type="application/pdf",
            data=doc.materialize(chunk),
            filename=f"{doc.name}#pages-{chunk.label}",
        )

    async def _call_capability(self, payload: ChunkPayload, chunk_index: int, total_chunks: int) -> str:
        # The capability is synchronous, run it in the thread pool
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self.capability.extract, payload, chunk_index, total_chunks)

    async def _extract_chunk(self, doc: PdfDocument, chunk: Chunk, total_chunks: int) -> Optional[str]:
        """
        Dispatch one chunk with the generic retry budget.

        Returns:
            Raw reply text, or None when the chunk had nothing to send

        Raises:
            RateLimitError: Or any rate-limit message, immediately and without
                consuming the retry budget
            Exception: The last generic failure once the budget is exhausted
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.max_retries + 1),
            wait=wait_fixed(self.config.retry_delay),
            retry=retry_if_exception(_is_retryable),
            sleep=self._sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                payload = self._build_payload(doc, chunk)
                if payload is None:
                    logger.info(f"Chunk {chunk.index} has no extractable text; skipping call")
                    return None
                return await self._call_capability(payload, chunk.index, total_chunks)
        return None

    async def stream_events(self, content: bytes, filename: str = "statement.pdf") -> AsyncIterator[StreamEvent]:
        """
        Process a PDF and yield stream events in emission order.

        The stream always ends with exactly one CompleteEvent or ErrorEvent.

        Args:
            content: PDF bytes
            filename: Original file name (diagnostics only)

        Yields:
            ProgressEvent, TransactionsEvent, CompleteEvent or ErrorEvent
        """
        warnings: List[str] = []
        bank_name: Optional[str] = None
        doc: Optional[PdfDocument] = None

        try:
            yield ProgressEvent(message="Analyzing PDF structure and splitting pages...")

            doc = PdfDocument.open(content, name=filename)
            chunks = doc.chunks(self.config.pages_per_chunk)
            total = len(chunks)
            logger.info(f"Processing {filename}: {doc.page_count} pages in {total} chunks ({self.config.mode} mode)")

            yield ProgressEvent(
                message=f"Split PDF into {total} chunks. Starting processing...",
                chunk=0,
                total_chunks=total,
            )

            for chunk in chunks:
                yield ProgressEvent(
                    message=f"Processing chunk {chunk.index}/{total} (pages {chunk.label})...",
                    chunk=chunk.index,
                    total_chunks=total,
                )

                succeeded = False
                raw_text: Optional[str] = None
                while True:
                    try:
                        raw_text = await self._extract_chunk(doc, chunk, total)
                        succeeded = True
                        break
                    except Exception as e:
                        message = getattr(e, "message", None) or str(e)
                        if _is_rate_limited(e):
                            wait = self.config.rate_limit_backoff
                            logger.warning(f"Chunk {chunk.index} rate limited, backing off {_seconds(wait)}s: {message}")
                            yield ProgressEvent(
                                message=f"Rate limited. Waiting {_seconds(wait)}s...",
                                chunk=chunk.index,
                                total_chunks=total,
                            )
                            await self._sleep(wait)
                            continue
                        logger.error(f"Chunk {chunk.index} failed after {self.config.max_retries + 1} attempts: {message}")
                        warnings.append(f"Skipped chunk {chunk.index} (pages {chunk.label}) due to errors: {message}")
                        break

                if not succeeded:
                    continue

                recovered = recover_extraction(raw_text)
                if not bank_name and recovered.bank_name:
                    bank_name = recovered.bank_name

                normalized = normalize_candidates(
                    recovered.transactions,
                    bank_name=bank_name,
                    currency=self.config.currency,
                    default_to_credit=self.config.default_to_credit,
                )
                logger.info(f"Chunk {chunk.index}/{total}: {len(normalized.transactions)} transactions")

                if normalized.transactions:
                    yield TransactionsEvent(chunk=chunk.index, data=normalized.transactions)
                if normalized.unrecognized_dates:
                    warnings.append(
                        f"Chunk {chunk.index}: {normalized.unrecognized_dates} transaction(s) with unrecognized dates"
                    )

                if chunk.index < total:
                    delay = self.config.pacing_delay
                    yield ProgressEvent(
                        message=f"Waiting {_seconds(delay)}s before next chunk...",
                        chunk=chunk.index,
                        total_chunks=total,
                    )
                    await self._sleep(delay)

            yield CompleteEvent(warnings=warnings, bank_name=bank_name)

        except Exception as e:
            message = getattr(e, "message", None) or str(e) or "Unknown error"
            logger.error(f"PDF extraction failed for {filename}: {message}")
            yield ErrorEvent(message=message)

        finally:
            if doc is not None:
                doc.close()

    async def extract_image(self, content: bytes, mime_type: str) -> ParseResult:
        """
        Single-shot extraction of one statement image.

        Raises:
            RateLimitError: If the service reports a rate limit
            ExtractionError: On any other capability failure
        """
        payload = ChunkPayload(mime_type=mime_type, data=content, filename="statement-image")
        raw_text = await self._call_capability(payload, 1, 1)

        recovered = recover_extraction(raw_text)
        normalized = normalize_candidates(
            recovered.transactions,
            bank_name=recovered.bank_name,
            currency=self.config.currency,
            default_to_credit=self.config.default_to_credit,
        )

        warnings: List[str] = []
        if not normalized.transactions:
            warnings.append("No transactions found in the image")
        if normalized.unrecognized_dates:
            warnings.append(f"{normalized.unrecognized_dates} transaction(s) with unrecognized dates")
        if self.config.model_label:
            warnings.append(f"Processed with: {self.config.model_label}")

        logger.info(f"Image extraction produced {len(normalized.transactions)} transactions")
        return ParseResult(
            transactions=normalized.transactions,
            warnings=warnings,
            bank_name=recovered.bank_name,
            account_number=recovered.payload.account_number,
            confidence=recovered.payload.confidence,
        )
