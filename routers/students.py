"""
Student roster endpoints.
"""
from fastapi import APIRouter, Depends, File, UploadFile
from pydantic import BaseModel
from sqlalchemy.orm import Session

from auth.dependencies import TokenUser, get_db_session, require_admin
from services.student_import import StudentImportService, read_spreadsheet
from core.exceptions import ValidationError
from core.validators import validate_file_size
from core.logger import logger
import config


router = APIRouter(prefix="/api", tags=["students"])


class ImportResponse(BaseModel):
    """Import response."""
    message: str
    count: int


@router.post("/upload-students", response_model=ImportResponse)
def upload_students(
    file: UploadFile = File(...),
    current_user: TokenUser = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """
    Replace the student roster from an .xlsx or .csv file.

    Columns: name, roll number, password, gender, room, mobile (header row first).
    Rows missing roll number, password or room are skipped. Admin only.
    """
    content = file.file.read()
    is_valid_size, size_error = validate_file_size(len(content), config.MAX_IMPORT_SIZE_MB * 1024 * 1024)
    if not is_valid_size:
        raise ValidationError(size_error)

    rows = read_spreadsheet(content, file.filename)
    count = StudentImportService.import_students(db, rows)
    logger.info(f"Admin {current_user.id} imported {count} students from {file.filename!r}")
    return ImportResponse(message=f"{count} students imported successfully", count=count)
