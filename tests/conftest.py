"""
Shared test fixtures.
"""
from typing import List, Optional

import fitz  # PyMuPDF
import pytest

from core.config import reset_settings

SETTINGS_ENV_VARS = [
    "APP_NAME", "HOST", "PORT", "LOG_LEVEL", "MAX_UPLOAD_MB",
    "OPENAI_API_KEY", "OPENAI_GATEWAY_URL", "OPENAI_MODEL", "OPENAI_TIMEOUT", "OPENAI_VERIFY_SSL",
    "EXTRACTION_MODE", "PAGES_PER_CHUNK", "PACING_DELAY_DOCUMENT", "PACING_DELAY_TEXT",
    "RATE_LIMIT_BACKOFF", "MAX_CHUNK_RETRIES", "RETRY_DELAY", "MIN_CHUNK_TEXT_CHARS",
    "DEFAULT_CURRENCY", "DEFAULT_TO_CREDIT",
]


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch, tmp_path):
    """Isolate every test from the host environment and any .env file."""
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    reset_settings()
    yield
    reset_settings()


def build_pdf(page_texts: List[Optional[str]]) -> bytes:
    """Build a PDF with one page per entry; None leaves the page blank."""
    doc = fitz.open()
    for text in page_texts:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    content = doc.tobytes()
    doc.close()
    return content


@pytest.fixture
def make_pdf():
    return build_pdf
