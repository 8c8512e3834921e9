"""
FastAPI routes for statement ingestion, duplicate detection and exports.
"""
from pathlib import Path
from typing import List, Optional

from fastapi import Body, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import Response, StreamingResponse

from core.config import get_settings
from core.dedupe import build_duplicate_report
from core.exceptions import (
    ConfigurationError,
    ExportError,
    ExtractionError,
    ParsingError,
    RateLimitError,
    ValidationError,
)
from core.exporters import (
    create_output_filename,
    export_to_excel,
    require_transactions,
    transactions_to_csv,
    transactions_to_json,
)
from core.logger import setup_logger
from core.parsing import TABULAR_EXTENSIONS, parse_tabular
from core.schema import ExportRequest, Transaction
from core.stream import NDJSON_MEDIA_TYPE, encode_event
from core.voucher import generate_tally_xml
from llm.client import GatewayExtractionClient
from services.extraction_service import ExtractionOrchestrator, OrchestratorConfig

logger = setup_logger(__name__)

app = FastAPI(
    title="Bank Statement Converter",
    description="Convert bank statements into normalized transactions and Tally vouchers",
    version="1.0.0"
)

IMAGE_MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
}
EXTRACTION_MODES = ("document", "text")
EXPORT_FORMATS = ("csv", "json", "xlsx")
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def create_orchestrator(
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    mode: Optional[str] = None,
) -> ExtractionOrchestrator:
    """
    Build an orchestrator for one request.

    Raises:
        ConfigurationError: If no API key is configured or supplied
    """
    settings = get_settings()
    client = GatewayExtractionClient.from_settings(settings, api_key=api_key or None, model=model or None)
    config = OrchestratorConfig.from_settings(settings, mode=mode, model=client.model)
    return ExtractionOrchestrator(client, config)


def file_extension(filename: Optional[str]) -> str:
    return Path(filename or "").suffix.lower()


async def read_upload(upload: UploadFile) -> bytes:
    """
    Read an uploaded file, enforcing the configured size limit.

    Raises:
        HTTPException: 400 for an empty file, 413 when over the limit
    """
    content = await upload.read()
    limit = get_settings().max_upload_bytes
    if len(content) > limit:
        raise HTTPException(
            status_code=413,
            detail=f"File too large: {len(content)} bytes (limit {limit} bytes)"
        )
    if not content:
        raise HTTPException(status_code=400, detail=f"Empty file: {upload.filename}")
    return content


def attachment(content, media_type: str, kind: str, extension: str) -> Response:
    filename = create_output_filename(kind, extension)
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "statement_converter",
        "version": "1.0.0"
    }


@app.post("/parse/pdf")
async def parse_pdf(
    file: UploadFile = File(...),
    api_key: Optional[str] = Form(None),
    model: Optional[str] = Form(None),
    mode: Optional[str] = Form(None),
):
    """
    Stream extraction of a PDF statement as newline-delimited JSON events.

    Configuration problems are reported as HTTP errors before the stream
    starts; everything after that is reported through stream events.
    """
    if file_extension(file.filename) != ".pdf":
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file type: {file.filename}. Only .pdf is supported."
        )
    if mode and mode not in EXTRACTION_MODES:
        raise HTTPException(status_code=400, detail=f"Invalid mode: {mode}. Use one of {', '.join(EXTRACTION_MODES)}.")

    content = await read_upload(file)

    try:
        orchestrator = create_orchestrator(api_key=api_key, model=model, mode=mode)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e.message}")
        raise HTTPException(status_code=400, detail=e.message)

    logger.info(f"Streaming extraction for {file.filename} ({len(content)} bytes)")

    async def event_stream():
        async for event in orchestrator.stream_events(content, filename=file.filename or "statement.pdf"):
            yield encode_event(event)

    return StreamingResponse(
        event_stream(),
        media_type=NDJSON_MEDIA_TYPE,
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"}
    )


@app.post("/parse/image")
async def parse_image(
    file: UploadFile = File(...),
    api_key: Optional[str] = Form(None),
    model: Optional[str] = Form(None),
):
    """Single-shot extraction of a statement image."""
    mime_type = IMAGE_MIME_TYPES.get(file_extension(file.filename))
    if mime_type is None:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file type: {file.filename}. Supported images: {', '.join(sorted(IMAGE_MIME_TYPES))}."
        )

    content = await read_upload(file)

    try:
        orchestrator = create_orchestrator(api_key=api_key, model=model)
        result = await orchestrator.extract_image(content, mime_type)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e.message}")
        raise HTTPException(status_code=400, detail=e.message)
    except RateLimitError as e:
        logger.warning(f"Image extraction rate limited: {e.message}")
        raise HTTPException(status_code=429, detail=e.message)
    except ExtractionError as e:
        logger.error(f"Image extraction failed: {e.message}")
        raise HTTPException(status_code=502, detail=e.message)

    return result.to_wire()


@app.post("/parse/tabular")
async def parse_tabular_file(file: UploadFile = File(...)):
    """Parse a CSV / XLS / XLSX statement."""
    if file_extension(file.filename) not in TABULAR_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file type: {file.filename}. Only .csv, .xls and .xlsx are supported."
        )

    content = await read_upload(file)
    settings = get_settings()

    try:
        result = parse_tabular(
            content,
            file.filename,
            currency=settings.default_currency,
            default_to_credit=settings.default_to_credit,
        )
    except ParsingError as e:
        logger.error(f"Failed to parse {file.filename}: {e.message}")
        raise HTTPException(status_code=422, detail=e.message)

    return result.to_wire()


@app.post("/transactions/duplicates")
async def detect_duplicates(transactions: List[Transaction] = Body(...)):
    """Flag every member of each group of structurally identical transactions."""
    report = build_duplicate_report(transactions)
    logger.info(f"Duplicate check: {len(report.duplicate_ids)} of {len(transactions)} flagged")
    return report.to_wire()


@app.post("/export/tally")
async def export_tally(request: ExportRequest):
    """Render transactions as a Tally voucher import document."""
    try:
        require_transactions(request.transactions)
        xml = generate_tally_xml(request.transactions, request.options)
    except (ExportError, ValidationError) as e:
        raise HTTPException(status_code=422, detail=e.message)
    return attachment(xml, "application/xml", "tally_vouchers", "xml")


@app.post("/export/{fmt}")
async def export_transactions(fmt: str, request: ExportRequest):
    """Export transactions as csv, json or xlsx."""
    if fmt not in EXPORT_FORMATS:
        raise HTTPException(status_code=404, detail=f"Unsupported export format: {fmt}")

    try:
        require_transactions(request.transactions)
        if fmt == "csv":
            return attachment(transactions_to_csv(request.transactions), "text/csv", "transactions", "csv")
        if fmt == "json":
            return attachment(transactions_to_json(request.transactions), "application/json", "transactions", "json")
        return attachment(export_to_excel(request.transactions), XLSX_MEDIA_TYPE, "transactions", "xlsx")
    except (ExportError, ValidationError) as e:
        raise HTTPException(status_code=422, detail=e.message)


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
