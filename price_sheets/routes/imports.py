"""
Price import API routes.
"""

import logging
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from pydantic import BaseModel
from typing import Any, Dict, List, Optional

from ..dependencies import client_for, get_ledger, get_store_or_404
from ..db import Store
from ..processor import ImportPipeline, ImportResult, ImportSummary
from ..sheets import SpreadsheetError, read_import_rows
from ..shopify import ShopifyClientError
from .export import bulk_operation_gid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stores")


class LimitCheckResponse(BaseModel):
    allowed: bool
    type: Optional[str] = None
    limit: Optional[int] = None
    current: Optional[int] = None
    attempted: Optional[int] = None
    remaining: Optional[int] = None


class ImportResponse(BaseModel):
    success: bool
    phase: str
    error: Optional[str] = None
    usage_exceeded: bool = False
    job_status: Optional[str] = None
    total: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = []
    failed_rows: List[Dict[str, Any]] = []
    skipped_rows: List[Dict[str, Any]] = []
    bulk_operation_id: Optional[str] = None
    expected_update_count: int = 0
    limit_check: Optional[LimitCheckResponse] = None


def to_response(result: ImportResult) -> ImportResponse:
    summary = result.summary
    check = result.limit_check
    return ImportResponse(
        success=result.success,
        phase=result.phase.value,
        error=result.error,
        usage_exceeded=result.usage_exceeded,
        job_status=result.job_status.value if result.job_status else None,
        total=summary.total,
        updated=summary.updated,
        skipped=summary.skipped,
        failed=summary.failed,
        errors=summary.errors,
        failed_rows=summary.failed_rows,
        skipped_rows=summary.skipped_rows,
        bulk_operation_id=summary.bulk_operation_id,
        expected_update_count=summary.expected_update_count,
        limit_check=LimitCheckResponse(
            allowed=check.allowed,
            type=check.type,
            limit=check.limit,
            current=check.current,
            attempted=check.attempted,
            remaining=check.remaining,
        ) if check else None,
    )


@router.post("/{store_id}/import", response_model=ImportResponse)
async def start_import(
    file: UploadFile = File(...),
    store: Store = Depends(get_store_or_404),
):
    """
    Upload an xlsx price sheet.

    Rows are validated against the live catalog, checked against the usage
    quota and, if anything changed, submitted as a bulk mutation. Poll the
    returned bulk_operation_id for completion.
    """
    content = await file.read()
    try:
        columns, rows = read_import_rows(content)
    except SpreadsheetError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not rows:
        raise HTTPException(status_code=400, detail="No rows with a SKU found in file")

    logger.info(f"Import of {len(rows)} rows requested for store {store.name}")

    async with client_for(store) as client:
        pipeline = ImportPipeline(client, get_ledger(), store.id)
        result = await pipeline.run(rows, columns=columns, wait=False)

    return to_response(result)


@router.get("/{store_id}/import/{operation_id:path}", response_model=ImportResponse)
async def get_import_status(
    operation_id: str,
    expected_update_count: int = Query(0, ge=0),
    store: Store = Depends(get_store_or_404),
):
    """
    Check an import's bulk mutation once.

    When the job has finished its errors are merged and `updated` is set to
    expected_update_count (as returned by the upload call).
    """
    gid = bulk_operation_gid(operation_id)
    summary = ImportSummary(bulk_operation_id=gid, expected_update_count=expected_update_count)

    try:
        async with client_for(store) as client:
            pipeline = ImportPipeline(client, get_ledger(), store.id)
            job, job_errors = await pipeline.check(gid)
    except ShopifyClientError as e:
        raise HTTPException(status_code=502, detail=str(e))

    if job.is_active:
        return ImportResponse(
            success=True,
            phase="await",
            job_status=job.status.value,
            bulk_operation_id=gid,
            expected_update_count=expected_update_count,
        )

    return to_response(ImportPipeline.merge(summary, job, job_errors))
