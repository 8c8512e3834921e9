"""
Page-range chunking of paginated documents.

A document of N pages is split into ceil(N / k) non-overlapping chunks of
at most k pages. Each chunk can be materialized as a self-contained PDF
(pages renumbered from 1) or reduced to its plain text.
"""
from dataclasses import dataclass
from typing import List

import fitz  # PyMuPDF

from core.exceptions import DocumentError
from core.logger import setup_logger

logger = setup_logger(__name__)


@dataclass(frozen=True)
class Chunk:
    """Ordered slice of a document: 1-based index and inclusive 1-based page range."""
    index: int
    first_page: int
    last_page: int

    @property
    def page_indices(self) -> range:
        """Zero-based page indices in the source document."""
        return range(self.first_page - 1, self.last_page)

    @property
    def page_count(self) -> int:
        return self.last_page - self.first_page + 1

    @property
    def label(self) -> str:
        if self.first_page == self.last_page:
            return str(self.first_page)
        return f"{self.first_page}-{self.last_page}"


def plan_chunks(page_count: int, pages_per_chunk: int) -> List[Chunk]:
    """
    Partition pages [0, page_count) into consecutive chunks.

    Args:
        page_count: Number of pages in the document
        pages_per_chunk: Maximum pages per chunk (>= 1)

    Returns:
        Chunks in page order; the last one may be shorter. Empty for 0 pages.
    """
    if pages_per_chunk < 1:
        raise ValueError("pages_per_chunk must be at least 1")
    if page_count < 0:
        raise ValueError("page_count cannot be negative")

    return [
        Chunk(
            index=number + 1,
            first_page=start + 1,
            last_page=min(start + pages_per_chunk, page_count),
        )
        for number, start in enumerate(range(0, page_count, pages_per_chunk))
    ]


class PdfDocument:
    """PyMuPDF-backed document that can be split into chunk sub-documents."""

    def __init__(self, doc: fitz.Document, name: str = "document.pdf"):
        self._doc = doc
        self.name = name

    @classmethod
    def open(cls, content: bytes, name: str = "document.pdf") -> "PdfDocument":
        """
        Open a PDF from bytes.

        Raises:
            DocumentError: If the bytes are not a readable, unencrypted PDF
        """
        try:
            doc = fitz.open(stream=content, filetype="pdf")
        except fitz.FileDataError as e:
            logger.error(f"Corrupted PDF: {name}")
            raise DocumentError(f"PDF file is corrupted: {e}", details={"file": name})
        except Exception as e:
            logger.error(f"Failed to open PDF {name}: {e}")
            raise DocumentError(f"Failed to open PDF: {e}", details={"file": name})

        if doc.needs_pass:
            doc.close()
            raise DocumentError("PDF is password protected", details={"file": name})

        return cls(doc, name=name)

    @property
    def page_count(self) -> int:
        return self._doc.page_count

    def chunks(self, pages_per_chunk: int) -> List[Chunk]:
        return plan_chunks(self.page_count, pages_per_chunk)

    def materialize(self, chunk: Chunk) -> bytes:
        """Build a standalone PDF holding only the chunk's pages."""
        sub_doc = fitz.open()
        try:
            sub_doc.insert_pdf(self._doc, from_page=chunk.first_page - 1, to_page=chunk.last_page - 1)
            sub_doc.set_metadata({
                "title": self.name,
                "subject": f"pages {chunk.label} of {self.page_count}",
            })
            return sub_doc.tobytes()
        finally:
            sub_doc.close()

    def extract_text(self, chunk: Chunk) -> str:
        """Plain text of the chunk's pages, one page per block."""
        return "\n".join(self._doc[idx].get_text() for idx in chunk.page_indices)

    def close(self) -> None:
        self._doc.close()

    def __enter__(self) -> "PdfDocument":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
