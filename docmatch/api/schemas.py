"""Pydantic request/response schemas for the FastAPI endpoints."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    tesseract_available: bool
    scheduler_running: bool


class IngestionResponse(BaseModel):
    """Outcome of ingesting one uploaded file."""

    file_name: str
    channel: str
    status: str
    document_id: int | None = None
    archive_uri: str | None = None
    reason_code: str | None = None
    detail: str | None = None


class CycleResponse(BaseModel):
    """Counts of purchase orders by outcome for one matching cycle."""

    examined: int
    matched: int
    partially_matched: int
    exceptions: int
    pending: int
    failed: int


class POLineResponse(BaseModel):
    """A purchase order line and its match state."""

    model_config = ConfigDict(from_attributes=True)

    item_code: str | None
    description: str | None
    quantity_ordered: Decimal
    unit_price: Decimal
    line_status: str
    exception_reason: str | None = None


class PurchaseOrderResponse(BaseModel):
    """A purchase order header with its lines."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    org: str
    po_number: str
    supplier: str | None = None
    match_status: str
    is_processed: bool
    lines: list[POLineResponse]


class PolicyRequest(BaseModel):
    """Matching policy to set on a supplier."""

    is_3way_matching: bool = False
    quantity_variance_pct: Decimal = Field(default=Decimal("5"), ge=0)
    price_variance_absolute: Decimal = Field(default=Decimal("0.50"), ge=0)


class PolicyResponse(BaseModel):
    """Confirmation of a stored supplier policy."""

    supplier_id: int
    supplier: str
    is_3way_matching: bool
    quantity_variance_pct: Decimal
    price_variance_absolute: Decimal


class FileAuditResponse(BaseModel):
    """An audit row for a rejected or duplicate file."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    file_name: str
    channel: str
    reason_code: str
    archive_uri: str | None = None
    created_at: datetime


class AuditResponse(BaseModel):
    """Recent audit rows, newest first."""

    entries: list[FileAuditResponse]
