"""FastAPI application for document ingestion and matching.

Provides REST endpoints for uploading documents to a channel, triggering a
matching cycle, reading purchase order status, setting supplier policies,
and listing the file audit trail.
"""

import os
import shutil
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.concurrency import run_in_threadpool

from docmatch.models.documents import DocumentKind, SupplierMatchingPolicy
from docmatch.services import Services, build_services
from docmatch.utils.config import load_config
from docmatch.utils.exceptions import PersistenceFailure, TransientExternalFailure
from docmatch.utils.logger import get_logger

from .schemas import (
    AuditResponse,
    CycleResponse,
    FileAuditResponse,
    HealthResponse,
    IngestionResponse,
    POLineResponse,
    PolicyRequest,
    PolicyResponse,
    PurchaseOrderResponse,
)

logger = get_logger(__name__)

VERSION = "1.0.0"
CONFIG_ENV = "DOCMATCH_CONFIG"


@lru_cache(maxsize=1)
def _get_services() -> Services:
    """Build the shared components once per process.

    The configuration file is taken from the ``DOCMATCH_CONFIG`` environment
    variable when set.
    """
    path = os.environ.get(CONFIG_ENV)
    return build_services(load_config(Path(path) if path else None))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    services = _get_services()
    if services.config.api.start_scheduler:
        services.scheduler.start()
    try:
        yield
    finally:
        services.scheduler.stop(timeout=30)
        services.database.dispose()


app = FastAPI(
    title="Document Matching API",
    description="Ingest invoices, purchase orders and GRNs and reconcile them",
    version=VERSION,
    lifespan=lifespan,
)


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, TransientExternalFailure):
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return system health status."""
    return HealthResponse(
        status="healthy",
        version=VERSION,
        tesseract_available=shutil.which("tesseract") is not None,
        scheduler_running=_get_services().scheduler.running,
    )


@app.post("/documents/{channel}", response_model=IngestionResponse)
async def upload_document(
    channel: DocumentKind,
    file: Annotated[UploadFile, File(...)],
) -> IngestionResponse:
    """Drop an uploaded file on a channel and ingest it.

    Rejected and duplicate files are reported in the response body with a
    200 status; they have been archived and audited.

    Args:
        channel: Channel the document belongs to.
        file: Uploaded PDF.

    Returns:
        The ingestion outcome.
    """
    services = _get_services()
    file_name = file.filename or "document.pdf"
    content = await file.read()

    try:
        services.store.write_inbound(channel, file_name, content)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        outcome = await run_in_threadpool(services.ingestion.ingest, channel, file_name)
    except (TransientExternalFailure, PersistenceFailure) as exc:
        logger.error("Ingestion of %s failed: %s", file_name, exc)
        raise _http_error(exc) from exc

    return IngestionResponse(
        file_name=outcome.file_name,
        channel=outcome.channel.value,
        status=outcome.status.value,
        document_id=outcome.document_id,
        archive_uri=outcome.archive_uri,
        reason_code=outcome.reason_code,
        detail=outcome.detail,
    )


@app.post("/reconcile", response_model=CycleResponse)
async def reconcile() -> CycleResponse:
    """Run one matching cycle now.

    Returns 409 if a cycle is already running.
    """
    scheduler = _get_services().scheduler
    try:
        report = await run_in_threadpool(scheduler.run_once)
    except TransientExternalFailure as exc:
        raise _http_error(exc) from exc
    if report is None:
        raise HTTPException(status_code=409, detail="A matching cycle is already running")

    return CycleResponse(
        examined=report.examined,
        matched=report.matched,
        partially_matched=report.partially_matched,
        exceptions=report.exceptions,
        pending=report.pending,
        failed=report.failed,
    )


@app.get("/purchase-orders/{org}/{po_number}", response_model=PurchaseOrderResponse)
async def get_purchase_order(org: str, po_number: str) -> PurchaseOrderResponse:
    """Return a purchase order with its line statuses."""
    try:
        po = _get_services().repository.get_purchase_order(org, po_number)
    except (TransientExternalFailure, PersistenceFailure) as exc:
        raise _http_error(exc) from exc
    if po is None:
        raise HTTPException(
            status_code=404, detail=f"Purchase order {po_number} not found for {org}"
        )

    return PurchaseOrderResponse(
        id=po.id,
        org=po.org,
        po_number=po.po_number,
        supplier=po.supplier.name if po.supplier else None,
        match_status=po.match_status,
        is_processed=po.is_processed,
        lines=[POLineResponse.model_validate(line) for line in po.lines],
    )


@app.put("/suppliers/{name}/policy", response_model=PolicyResponse)
async def set_supplier_policy(name: str, request: PolicyRequest) -> PolicyResponse:
    """Set the matching policy used for a supplier's purchase orders."""
    policy = SupplierMatchingPolicy(
        is_3way_matching=request.is_3way_matching,
        quantity_variance_pct=request.quantity_variance_pct,
        price_variance_absolute=request.price_variance_absolute,
    )
    try:
        supplier_id = _get_services().repository.set_matching_policy(name, policy)
    except (TransientExternalFailure, PersistenceFailure) as exc:
        raise _http_error(exc) from exc

    return PolicyResponse(supplier_id=supplier_id, supplier=name, **request.model_dump())


@app.get("/audit", response_model=AuditResponse)
async def list_audit(
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> AuditResponse:
    """List the most recent rejected and duplicate files."""
    try:
        rows = _get_services().repository.list_file_audits(limit)
    except (TransientExternalFailure, PersistenceFailure) as exc:
        raise _http_error(exc) from exc
    return AuditResponse(entries=[FileAuditResponse.model_validate(row) for row in rows])
