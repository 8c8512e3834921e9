"""
Newline-delimited JSON progress stream: encoding on the server side,
incremental decoding and accumulation on the consumer side.
"""
import codecs
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from core.logger import setup_logger
from core.schema import (
    STREAM_EVENT_ADAPTER,
    CompleteEvent,
    ErrorEvent,
    ProgressEvent,
    StreamEvent,
    Transaction,
    TransactionsEvent,
)

logger = setup_logger(__name__)

NDJSON_MEDIA_TYPE = "application/x-ndjson"


def encode_event(event: StreamEvent) -> bytes:
    """Serialize one event as a single NDJSON line."""
    return (event.model_dump_json(by_alias=True) + "\n").encode("utf-8")


class NDJSONDecoder:
    """
    Incremental NDJSON decoder.

    Transport reads may split lines (and multi-byte characters) anywhere;
    partial lines are buffered until their newline arrives. Lines that are
    not valid events are logged and skipped.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.skipped_lines = 0

    def feed(self, data: Union[bytes, str]) -> List[StreamEvent]:
        """Consume one transport read and return the events it completed."""
        if isinstance(data, bytes):
            data = self._decoder.decode(data)
        self._buffer += data

        *lines, self._buffer = self._buffer.split("\n")
        return [event for event in (self._parse_line(line) for line in lines) if event is not None]

    def flush(self) -> List[StreamEvent]:
        """Parse whatever remains once the transport is closed."""
        remainder = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        event = self._parse_line(remainder)
        return [event] if event is not None else []

    def _parse_line(self, line: str) -> Optional[StreamEvent]:
        line = line.strip()
        if not line:
            return None
        try:
            return STREAM_EVENT_ADAPTER.validate_json(line)
        except PydanticValidationError as e:
            self.skipped_lines += 1
            logger.warning(f"Skipping unparseable stream line ({e.error_count()} error(s)): {line[:200]}")
            return None


@dataclass
class StreamAccumulator:
    """Consumer-side view of a document's progress, keyed by chunk index."""
    transactions_by_chunk: Dict[int, List[Transaction]] = field(default_factory=dict)
    current_chunk: int = 0
    total_chunks: int = 0
    message: str = ""
    warnings: List[str] = field(default_factory=list)
    bank_name: Optional[str] = None
    error: Optional[str] = None
    done: bool = False

    def apply(self, event: StreamEvent) -> None:
        if isinstance(event, ProgressEvent):
            self.message = event.message
            self.current_chunk = event.chunk
            self.total_chunks = event.total_chunks
        elif isinstance(event, TransactionsEvent):
            if event.chunk in self.transactions_by_chunk:
                logger.warning(f"Chunk {event.chunk} reported transactions more than once")
            self.transactions_by_chunk.setdefault(event.chunk, []).extend(event.data)
        elif isinstance(event, CompleteEvent):
            self.warnings = list(event.warnings)
            self.bank_name = event.bank_name
            self.done = True
        elif isinstance(event, ErrorEvent):
            self.error = event.message
            self.done = True
        else:
            raise TypeError(f"Unhandled stream event: {type(event).__name__}")

    @property
    def transactions(self) -> List[Transaction]:
        """All transactions in chunk order."""
        return [txn for chunk in sorted(self.transactions_by_chunk) for txn in self.transactions_by_chunk[chunk]]

    @property
    def transaction_count(self) -> int:
        return sum(len(items) for items in self.transactions_by_chunk.values())
