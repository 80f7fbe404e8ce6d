import logging
import math
import os
import re
import uuid
from datetime import datetime
from typing import Optional, Tuple
from fastapi import HTTPException, UploadFile
from opsdesk.core.config import UPLOAD_DIR

logger = logging.getLogger(__name__)

_SIZE_UNITS = ["Bytes", "KB", "MB", "GB"]
_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def secure_filename(filename: str) -> str:
    filename = os.path.basename(filename)
    filename = re.sub(r"[^\w\s\-.]", "", filename)
    filename = re.sub(r"\s+", "_", filename)
    return filename or "file"


def save_upload(file: UploadFile, subdir: str, max_mb: int,
                content_type_prefix: Optional[str] = None) -> Tuple[str, int]:
    """Write an upload under ``UPLOAD_DIR/subdir`` with a random name.

    Returns ``(file_path, size_in_bytes)``.
    """
    if content_type_prefix and not (file.content_type or "").startswith(content_type_prefix):
        raise HTTPException(status_code=400, detail="Only image files are allowed")

    content = file.file.read()
    if len(content) > max_mb * 1024 * 1024:
        raise HTTPException(status_code=400, detail=f"File too large (max {max_mb}MB)")

    target_dir = os.path.join(UPLOAD_DIR, subdir)
    os.makedirs(target_dir, exist_ok=True)
    safe_name = secure_filename(file.filename or "file")
    file_path = os.path.join(target_dir, f"{uuid.uuid4().hex[:8]}_{safe_name}")
    with open(file_path, "wb") as f:
        f.write(content)
    return file_path, len(content)


def remove_file(file_path: Optional[str]) -> None:
    if not file_path or not os.path.exists(file_path):
        return
    try:
        os.remove(file_path)
    except OSError:
        logger.warning("Could not remove stored file %s", file_path, exc_info=True)


def format_file_size(size: Optional[int]) -> str:
    if size is None:
        return "-"
    if size == 0:
        return "0 Bytes"
    i = 0
    while size >= math.pow(1024, i + 1) and i < len(_SIZE_UNITS) - 1:
        i += 1
    value = round(size / math.pow(1024, i), 2)
    if value.is_integer():
        value = int(value)
    return f"{value} {_SIZE_UNITS[i]}"


def format_display_date(value: Optional[datetime]) -> Optional[str]:
    if not value:
        return None
    return f"{value.day} {_MONTHS[value.month - 1]} {value.year}"
