"""
API server module.

This module provides the FastAPI server for the application: table
detection and single-table extraction over posted page markup.
"""

import asyncio
import logging
from typing import Dict, List, Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from config.settings import Settings
from controller.batch import BatchGrouper
from controller.registry import DetectionRegistry
from extraction.detector import extract_table_data
from extraction.dom import HostDocument
from extraction.models import TableData
from extraction.titles import extract_chat_title, sanitize_chat_title
from utils.errors import TableWatchError, ExtractionError, ValidationError
from utils.logging import RequestLogger
from utils.validation import require_html, require_url, require_selector

# Set up logger
logger = logging.getLogger(__name__)
request_logger = RequestLogger(logger)

API_VERSION = "1.0.0"


# Models
class DetectRequest(BaseModel):
    """Detection request model."""
    html: str = Field(..., description="Full page markup")
    url: str = Field("", description="Address the markup was taken from")
    min_batch: Optional[int] = Field(None, ge=1, description="Batch threshold override")


class ExtractRequest(BaseModel):
    """Single table extraction request model."""
    html: str = Field(..., description="Full page markup")
    url: str = Field("", description="Address the markup was taken from")
    selector: str = Field(..., description="CSS selector of the table element")
    index: int = Field(0, ge=0, description="Which match of the selector to extract")


class TableModel(BaseModel):
    """Extracted table model."""
    id: str = Field(..., description="Table ID")
    headers: List[str] = Field(..., description="Column headers")
    rows: List[List[str]] = Field(..., description="Data rows")
    source: str = Field(..., description="Chat platform")
    timestamp: int = Field(..., description="Extraction time in milliseconds")
    url: str = Field(..., description="Page address")
    chat_title: Optional[str] = Field(None, description="Conversation title")

    @classmethod
    def from_table(cls, table: TableData) -> "TableModel":
        return cls(
            id=table.id,
            headers=table.headers,
            rows=table.rows,
            source=table.source,
            timestamp=table.timestamp,
            url=table.url,
            chat_title=table.chat_title,
        )


class DetectResponse(BaseModel):
    """Detection response model."""
    tables: List[TableModel] = Field(..., description="Detected tables in page order")
    count: int = Field(..., description="Number of tables")
    source: str = Field(..., description="Chat platform")
    chat_title: str = Field(..., description="Conversation title, file name safe")
    batch_available: bool = Field(..., description="Whether the batch threshold is reached")
    timestamp: int = Field(..., description="Detection time in milliseconds")


class ErrorResponse(BaseModel):
    """Error response model."""
    status: str = Field("error", description="Response status")
    code: str = Field(..., description="Error code")
    message: str = Field(..., description="Error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Error details")


def error_status(exc: TableWatchError) -> int:
    """HTTP status for an application error."""
    if isinstance(exc, ExtractionError):
        return 404
    if isinstance(exc, ValidationError):
        return 422
    return 400


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Application settings

    Returns:
        Configured FastAPI application
    """
    settings = settings or Settings()

    app = FastAPI(
        title="Chat Table Watch API",
        description="Detect and extract tables from AI chat pages",
        version=API_VERSION
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(TableWatchError)
    async def table_watch_exception_handler(request: Request, exc: TableWatchError):
        """Handle application errors."""
        return JSONResponse(
            status_code=error_status(exc),
            content=ErrorResponse(
                code=exc.__class__.__name__,
                message=str(exc),
                details=exc.details or None
            ).model_dump()
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected errors."""
        logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                code="InternalServerError",
                message="An unexpected error occurred",
                details={"error": str(exc)}
            ).model_dump()
        )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log requests and responses."""
        request_id = request_logger.log_request(method=request.method, url=str(request.url))
        start_time = asyncio.get_running_loop().time()

        response = await call_next(request)

        elapsed_ms = int((asyncio.get_running_loop().time() - start_time) * 1000)
        request_logger.log_response(
            status_code=response.status_code,
            request_id=request_id,
            elapsed_ms=elapsed_ms
        )
        return response

    @app.get("/", response_model=Dict[str, Any])
    async def root():
        """Root endpoint."""
        return {
            "name": "Chat Table Watch API",
            "version": API_VERSION,
            "status": "running"
        }

    @app.get("/health", response_model=Dict[str, Any])
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.post("/detect", response_model=DetectResponse)
    async def detect_tables(detect_request: DetectRequest):
        """Detect every table in the posted page."""
        html = require_html(detect_request.html)
        url = require_url(detect_request.url)

        document = HostDocument(html, url)
        registry = DetectionRegistry(document, settings)
        registry.rescan("api")
        grouper = BatchGrouper(registry, settings)
        batch = grouper.snapshot()

        logger.info(f"Detected {batch.count} tables ({batch.source})")
        return DetectResponse(
            tables=[TableModel.from_table(result.data) for result in batch.tables],
            count=batch.count,
            source=batch.source,
            chat_title=batch.chat_title,
            batch_available=grouper.is_batch_available(detect_request.min_batch),
            timestamp=batch.timestamp,
        )

    @app.post("/extract", response_model=TableModel)
    async def extract_table(extract_request: ExtractRequest):
        """Extract the table held by one element of the posted page."""
        html = require_html(extract_request.html)
        url = require_url(extract_request.url)
        selector = require_selector(extract_request.selector)

        document = HostDocument(html, url)
        matches = document.select(selector)
        if len(matches) <= extract_request.index:
            raise ExtractionError(
                f"Selector matched {len(matches)} elements",
                {"selector": selector, "index": extract_request.index}
            )

        table = extract_table_data(
            document,
            matches[extract_request.index],
            settings,
            chat_title=sanitize_chat_title(extract_chat_title(document)),
        )
        if table is None:
            raise ExtractionError("Element does not hold a table", {"selector": selector})

        return TableModel.from_table(table)

    return app
