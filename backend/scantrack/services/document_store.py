"""Expense document storage: files live under uploads/expenses/, the DB keeps only the relative path."""
import logging
import time
import secrets
from pathlib import Path
from typing import Optional, Union

from scantrack import config as app_config

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = (".jpeg", ".jpg", ".png", ".gif", ".pdf")
EXPENSE_SUBDIR = "expenses"


class DocumentRejectedError(ValueError):
    pass


def get_upload_base(upload_dir: Optional[Union[str, Path]] = None) -> Path:
    """Upload root as an absolute path."""
    base = Path(upload_dir) if upload_dir is not None else app_config.settings.upload_dir
    if not base.is_absolute():
        base = app_config.BASE_DIR / base
    return base


def check_document(filename: str, size: int, max_size_mb: Optional[int] = None) -> str:
    """Returns the lower-cased extension, or raises DocumentRejectedError."""
    ext = Path(filename or "").suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise DocumentRejectedError("Only images and PDFs are allowed")
    limit_mb = max_size_mb if max_size_mb is not None else app_config.settings.max_upload_size_mb
    if size <= 0:
        raise DocumentRejectedError("No file uploaded")
    if size > limit_mb * 1024 * 1024:
        raise DocumentRejectedError(f"File exceeds {limit_mb} MB")
    return ext


def save_document(content: bytes, filename: str, upload_dir: Optional[Union[str, Path]] = None) -> str:
    """
    Write to uploads/expenses/expense-{millis}-{random}{ext}.
    Returns the path relative to the upload root (the opaque reference stored on the expense).
    """
    ext = check_document(filename, len(content))
    base = get_upload_base(upload_dir)
    dest_dir = base / EXPENSE_SUBDIR
    dest_dir.mkdir(parents=True, exist_ok=True)
    name = f"expense-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{ext}"
    (dest_dir / name).write_bytes(content)
    return f"{EXPENSE_SUBDIR}/{name}"


def resolve_document_path(reference: str, upload_dir: Optional[Union[str, Path]] = None) -> Path:
    """Reference -> absolute path; references escaping the upload root are rejected."""
    if not reference:
        raise ValueError("reference is empty")
    base = get_upload_base(upload_dir).resolve()
    path = (base / reference).resolve()
    if base != path and base not in path.parents:
        raise ValueError("reference outside upload directory")
    return path


def delete_document(reference: str, upload_dir: Optional[Union[str, Path]] = None) -> bool:
    """Remove the stored file. A missing file is only logged; returns whether a file was removed."""
    try:
        path = resolve_document_path(reference, upload_dir)
    except ValueError:
        logger.warning("refusing to delete document %r", reference)
        return False
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        logger.warning("expense document %s already gone", reference)
        return False
    except OSError:
        logger.warning("could not delete expense document %s", reference, exc_info=True)
        return False
