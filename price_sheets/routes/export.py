"""
Price export API routes.
"""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel
from typing import Optional

from ..dependencies import client_for, get_store_or_404
from ..db import Store
from ..processor import ExportPipeline, ExportResult
from ..sheets import write_export_workbook
from ..shopify import BulkJobStatus
from ..sheets.workbook import EXPORT_FILENAME, XLSX_MIME_TYPE

router = APIRouter(prefix="/api/stores")

BULK_OPERATION_GID_PREFIX = "gid://shopify/BulkOperation/"


class ExportStatusResponse(BaseModel):
    success: bool
    status: str
    operation_id: Optional[str] = None
    progress: int = 0
    error: Optional[str] = None


def bulk_operation_gid(operation_id: str) -> str:
    """Accept either a full GID or its numeric tail."""
    if operation_id.startswith("gid://"):
        return operation_id
    return f"{BULK_OPERATION_GID_PREFIX}{operation_id}"


def to_status(result: ExportResult) -> ExportStatusResponse:
    return ExportStatusResponse(
        success=result.success,
        status=result.status.value,
        operation_id=result.operation_id,
        progress=result.progress,
        error=result.error,
    )


@router.post("/{store_id}/export", response_model=ExportStatusResponse)
async def start_export(store: Store = Depends(get_store_or_404)):
    """Start a bulk export of every variant price."""
    async with client_for(store) as client:
        result = await ExportPipeline(client).start()
    return to_status(result)


# Registered before the status route so the path converter does not eat "/download"
@router.get("/{store_id}/export/{operation_id:path}/download")
async def download_export(operation_id: str, store: Store = Depends(get_store_or_404)):
    """Download a completed export as xlsx."""
    async with client_for(store) as client:
        result = await ExportPipeline(client).collect(bulk_operation_gid(operation_id))

    if not result.success:
        raise HTTPException(status_code=502, detail=result.error or "Export failed")
    if result.status != BulkJobStatus.COMPLETED:
        raise HTTPException(status_code=409, detail=f"Export is {result.status.value}")

    return Response(
        content=write_export_workbook(result.rows),
        media_type=XLSX_MIME_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
    )


@router.get("/{store_id}/export/{operation_id:path}", response_model=ExportStatusResponse)
async def get_export_status(operation_id: str, store: Store = Depends(get_store_or_404)):
    """Check an export job once."""
    async with client_for(store) as client:
        result = await ExportPipeline(client).check(bulk_operation_gid(operation_id))
    return to_status(result)
