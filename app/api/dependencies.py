"""
app/api/dependencies.py

Shared FastAPI dependencies for request validation.
"""

from __future__ import annotations

from fastapi import Header, HTTPException, UploadFile, status

CSV_CONTENT_TYPES = {
    "text/csv",
    "application/csv",
    "application/vnd.ms-excel",
    "text/plain",
}

MAX_USER_ID_LENGTH = 128


def ensure_csv_upload(file: UploadFile) -> UploadFile:
    """
    Validate that an uploaded file is a CSV by extension or MIME type.
    """

    filename = (file.filename or "").strip().lower()
    content_type = (file.content_type or "").strip().lower()

    is_csv_filename = filename.endswith(".csv")
    is_csv_content_type = content_type in CSV_CONTENT_TYPES

    if not is_csv_filename and not is_csv_content_type:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Only CSV files are allowed: {file.filename or '<unnamed>'}",
        )

    return file


def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """
    Caller identity supplied by the upstream auth layer in ``X-User-Id``.
    """

    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    if len(user_id) > MAX_USER_ID_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"X-User-Id must be at most {MAX_USER_ID_LENGTH} characters.",
        )
    return user_id
