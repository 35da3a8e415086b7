# utils/file_upload.py
import logging
import os
import random
import re
import time
from typing import List, Optional

from fastapi import HTTPException, UploadFile

from config import MAX_UPLOAD_SIZE_MB, UPLOAD_DIR
from models.assignment import FileSubmission

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "text/plain",
    "image/jpeg",
    "image/png",
    "image/gif",
    "application/zip",
    "application/x-zip-compressed",
}
ALLOWED_EXTENSIONS = {
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx", ".txt",
    ".jpg", ".jpeg", ".png", ".gif", ".zip",
}
CHUNK_SIZE = 1024 * 1024


def sanitize_filename(name: str) -> str:
    return re.sub(r"[^a-z0-9.]", "_", name, flags=re.IGNORECASE).lower()

def unique_filename(original: str) -> str:
    return f"assignment-{int(time.time() * 1000)}-{random.randint(0, 10**9)}-{sanitize_filename(original)}"

def _normalize_extension(ext: str) -> str:
    ext = ext.strip().lower()
    return ext if ext.startswith(".") else f".{ext}"

def check_file_type(filename: str, content_type: Optional[str], allowed_file_types: Optional[List[str]] = None):
    """
    A file passes when either its mime type or its extension is a known
    document type. An assignment may narrow the accepted extensions further.
    """
    ext = os.path.splitext(filename)[1].lower()
    if content_type not in ALLOWED_MIME_TYPES and ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail="Invalid file type. Allowed types: PDF, Word, Excel, PowerPoint, Text, Images, and ZIP."
        )
    if allowed_file_types:
        allowed = {_normalize_extension(t) for t in allowed_file_types}
        if ext not in allowed:
            raise HTTPException(
                status_code=400,
                detail=f"This assignment only accepts {', '.join(sorted(allowed))} files"
            )

async def save_upload(file: UploadFile, allowed_file_types: Optional[List[str]] = None) -> FileSubmission:
    """Validate an uploaded file and write it under UPLOAD_DIR with a unique, sanitized name."""
    if not file.filename:
        raise HTTPException(status_code=400, detail="Uploaded file has no name")
    check_file_type(file.filename, file.content_type, allowed_file_types)

    max_bytes = MAX_UPLOAD_SIZE_MB * 1024 * 1024
    os.makedirs(UPLOAD_DIR, exist_ok=True)
    stored_name = unique_filename(file.filename)
    path = os.path.join(UPLOAD_DIR, stored_name)

    size = 0
    with open(path, "wb") as buffer:
        while True:
            chunk = await file.read(CHUNK_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if size > max_bytes:
                break
            buffer.write(chunk)

    if size > max_bytes:
        os.remove(path)
        raise HTTPException(status_code=400, detail=f"File exceeds the {MAX_UPLOAD_SIZE_MB} MB limit")

    logger.info(f"📎 Stored upload {file.filename} as {stored_name} ({size} bytes)")
    return FileSubmission(
        filename=stored_name,
        originalname=file.filename,
        mimetype=file.content_type or "application/octet-stream",
        size=size,
        path=path,
    )
