"""
Complaint endpoints. Students file and list their own complaints; admins
triage, resolve and purge.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel
from sqlalchemy.orm import Session

from auth.dependencies import TokenUser, get_db_session, require_admin, require_student
from services.complaint_service import ComplaintService, serialize_complaint
from core.logger import logger


router = APIRouter(prefix="/api", tags=["complaints"])


class StatusUpdate(BaseModel):
    """Status update request."""
    status: Optional[str] = None


class SubmitResponse(BaseModel):
    message: str
    id: int


class MessageResponse(BaseModel):
    message: str


def _upload_size(upload: UploadFile) -> int:
    upload.file.seek(0, 2)
    size = upload.file.tell()
    upload.file.seek(0)
    return size


@router.post("/complaints", response_model=SubmitResponse)
def submit_complaint(
    title: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    roomNumber: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    current_user: TokenUser = Depends(require_student),
    db: Session = Depends(get_db_session)
):
    """File a complaint (multipart form, optional image). Student only."""
    has_image = image is not None and bool(image.filename)
    complaint = ComplaintService.submit(
        db,
        student_id=current_user.id,
        title=title,
        category=category,
        description=description,
        room_number=roomNumber,
        location=location,
        image_file=image.file if has_image else None,
        image_filename=image.filename if has_image else None,
        image_size=_upload_size(image) if has_image else None,
        roll_number=current_user.roll_number,
    )
    return SubmitResponse(message="Complaint submitted successfully", id=complaint.id)


@router.get("/my-complaints")
def my_complaints(
    current_user: TokenUser = Depends(require_student),
    db: Session = Depends(get_db_session)
) -> List[dict]:
    """The caller's own complaints, newest first."""
    complaints = ComplaintService.list_mine(db, current_user.id, current_user.roll_number)
    return [serialize_complaint(c) for c in complaints]


@router.get("/complaints")
def list_active_complaints(
    category: Optional[str] = None,
    roomNumber: Optional[str] = None,
    status: Optional[str] = None,
    current_user: TokenUser = Depends(require_admin),
    db: Session = Depends(get_db_session)
) -> List[dict]:
    """Unresolved complaints with optional filters. Admin only."""
    complaints = ComplaintService.list_active(db, category=category, room_number=roomNumber, status=status)
    return [serialize_complaint(c, include_student=True) for c in complaints]


@router.get("/complaints/history")
def complaint_history(
    current_user: TokenUser = Depends(require_admin),
    db: Session = Depends(get_db_session)
) -> List[dict]:
    """Resolved complaints, most recently updated first. Admin only."""
    return [serialize_complaint(c, include_student=True) for c in ComplaintService.list_history(db)]


@router.put("/complaints/{complaint_id}", response_model=MessageResponse)
def update_complaint_status(
    complaint_id: int,
    payload: StatusUpdate,
    current_user: TokenUser = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """Change a complaint's status. Admin only."""
    ComplaintService.update_status(db, complaint_id, payload.status)
    logger.info(f"Admin {current_user.id} set complaint {complaint_id} to {payload.status}")
    return MessageResponse(message="Status updated")


@router.delete("/complaints/{complaint_id}", response_model=MessageResponse)
def delete_complaint(
    complaint_id: int,
    current_user: TokenUser = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """Delete a resolved complaint and its photo. Admin only."""
    ComplaintService.delete(db, complaint_id)
    logger.info(f"Admin {current_user.id} deleted complaint {complaint_id}")
    return MessageResponse(message="Complaint deleted successfully")
