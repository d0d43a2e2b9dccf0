"""Whole-store backup and restore (disaster recovery). Requires X-Admin-Token."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Form, Header
from fastapi.responses import StreamingResponse, FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from scantrack.config import settings
from scantrack.database import get_db
from scantrack.services.backup_job import (
    BackupFormatError,
    build_store_backup_buffer,
    collect_store,
    get_backup_path,
    list_backup_files,
    restore_store,
)

router = APIRouter(prefix="/api/backup", tags=["backup-restore"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def require_admin_token(x_admin_token: Optional[str] = None) -> None:
    """admin_backup_token must be configured and sent back unchanged in X-Admin-Token."""
    if not settings.admin_backup_token:
        raise HTTPException(
            status_code=503,
            detail="Backup is disabled: ADMIN_BACKUP_TOKEN is not configured.",
        )
    if not x_admin_token or x_admin_token.strip() != settings.admin_backup_token.strip():
        raise HTTPException(status_code=403, detail="Only administrators can use backup and restore.")


@router.get("/export")
async def export_backup(
    x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token"),
    db: AsyncSession = Depends(get_db),
):
    """Every table as one sheet; file name scantrack_backup_YYYYMMDD_HHMMSS.xlsx."""
    require_admin_token(x_admin_token)
    buf, filename = build_store_backup_buffer(await collect_store(db))
    return StreamingResponse(
        buf,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/history")
async def backup_history(
    x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token"),
):
    require_admin_token(x_admin_token)
    return list_backup_files()


@router.get("/download/{filename}")
async def download_backup(
    filename: str,
    x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token"),
):
    require_admin_token(x_admin_token)
    path = get_backup_path(filename)
    if not path:
        raise HTTPException(status_code=404, detail="Backup not found or invalid file name.")
    return FileResponse(path, filename=path.name, media_type=XLSX_MEDIA_TYPE)


@router.post("/restore")
async def restore_backup(
    file: UploadFile = File(...),
    confirm: str = Form(..., description="type yes to overwrite all current data"),
    x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token"),
    db: AsyncSession = Depends(get_db),
):
    """Replace the whole store with an exported workbook. Nothing is changed if the workbook is invalid."""
    require_admin_token(x_admin_token)
    if confirm.strip().lower() != "yes":
        raise HTTPException(status_code=400, detail="Restore needs confirmation: send confirm=yes.")
    if not file.filename or not file.filename.lower().endswith(".xlsx"):
        raise HTTPException(status_code=400, detail="Please upload an .xlsx file.")
    content = await file.read()
    try:
        counts = await restore_store(db, content)
    except BackupFormatError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"message": "Restore complete", "restored": counts}
