"""Expenses API (super admin only): CRUD, attached documents, workbook import."""
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from scantrack.config import settings
from scantrack.database import get_db
from scantrack import crud, schemas
from scantrack.routers.auth import get_identity
from scantrack.services import document_store
from scantrack.services.document_store import DocumentRejectedError
from scantrack.services.expense_excel_parser import parse_expense_excel
from scantrack.visibility import Identity, PermissionDeniedError, ensure_super_admin

router = APIRouter(prefix="/api/expenses", tags=["expenses"])


def _require_super_admin(identity: Identity) -> None:
    try:
        ensure_super_admin(identity)
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))


def _to_read(exp) -> schemas.ExpenseRead:
    return schemas.ExpenseRead(
        id=exp.id,
        location_id=exp.location_id,
        location_name=exp.location.name if exp.location else None,
        expense_date=exp.expense_date,
        amount=exp.amount,
        description=exp.description,
        paid_by=exp.paid_by,
        paid_from=exp.paid_from,
        document_url=exp.document_url,
        created_at=exp.created_at,
    )


async def _load(db: AsyncSession, expense_id: int):
    exp = await crud.get_expense(db, expense_id)
    if not exp:
        raise HTTPException(status_code=404, detail="Expense not found")
    return exp


async def _check_location(db: AsyncSession, location_id: Optional[int]) -> None:
    if location_id is not None and not await crud.get_location(db, location_id):
        raise HTTPException(status_code=400, detail="Location not found")


@router.get("", response_model=List[schemas.ExpenseRead])
async def list_expenses(
    location_id: Optional[int] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """Newest first; unassigned expenses are included unless a location is given."""
    _require_super_admin(identity)
    return [_to_read(e) for e in await crud.list_expenses(db, location_id, start_date, end_date)]


@router.post("", response_model=schemas.ExpenseRead, status_code=201)
async def create_expense(
    data: schemas.ExpenseCreate,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    _require_super_admin(identity)
    await _check_location(db, data.location_id)
    exp = await crud.create_expense(db, data)
    return _to_read(await crud.get_expense(db, exp.id))


@router.put("/{expense_id}", response_model=schemas.ExpenseRead)
async def update_expense(
    expense_id: int,
    data: schemas.ExpenseUpdate,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    _require_super_admin(identity)
    exp = await _load(db, expense_id)
    await _check_location(db, data.location_id)
    exp = await crud.update_expense(db, exp, data)
    return _to_read(await crud.get_expense(db, exp.id))


@router.delete("/{expense_id}")
async def delete_expense(
    expense_id: int,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    _require_super_admin(identity)
    exp = await _load(db, expense_id)
    await crud.delete_expense(db, exp)
    return {"message": "Expense deleted"}


@router.post("/upload")
async def upload_document(
    document: UploadFile = File(...),
    identity: Identity = Depends(get_identity),
):
    """Store an image or PDF; the returned document_url is then saved on the expense."""
    _require_super_admin(identity)
    content = await document.read()
    try:
        ref = document_store.save_document(content, document.filename or "")
    except DocumentRejectedError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"document_url": ref, "message": "Document uploaded"}


@router.get("/{expense_id}/document")
async def get_document(
    expense_id: int,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    _require_super_admin(identity)
    exp = await _load(db, expense_id)
    if not exp.document_url:
        raise HTTPException(status_code=404, detail="No document attached")
    try:
        path = document_store.resolve_document_path(exp.document_url)
    except ValueError:
        raise HTTPException(status_code=404, detail="No document attached")
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Document file missing")
    return FileResponse(path, filename=path.name)


@router.delete("/{expense_id}/document")
async def delete_document(
    expense_id: int,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    _require_super_admin(identity)
    exp = await _load(db, expense_id)
    await crud.clear_expense_document(db, exp)
    return {"message": "Document deleted"}


@router.post("/import")
async def import_expenses(
    file: UploadFile = File(...),
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """Import an .xlsx expense sheet (two header rows). Unknown location names go to the unassigned bucket."""
    _require_super_admin(identity)
    if not file.filename or not file.filename.lower().endswith(".xlsx"):
        raise HTTPException(status_code=400, detail="Please upload an .xlsx file")
    content = await file.read()
    if len(content) > settings.max_upload_size_mb * 1024 * 1024:
        raise HTTPException(status_code=400, detail=f"File exceeds {settings.max_upload_size_mb} MB")
    location_ids = {loc.name.lower(): loc.id for loc in await crud.list_locations(db)}
    try:
        parsed = parse_expense_excel(content, location_ids)
    except Exception as e:
        raise HTTPException(status_code=400, detail=f"Could not read workbook: {e}")
    for row in parsed["rows"]:
        await crud.create_expense(db, schemas.ExpenseCreate(**row))
    return {
        "message": "Import complete",
        "imported": len(parsed["rows"]),
        "skipped": parsed["skipped"],
    }
