"""
Complaint lifecycle: submission, listing, status changes and deletion.
"""
from datetime import datetime
from typing import Any, BinaryIO, Dict, FrozenSet, List, Optional, Type, TypeVar

from sqlalchemy.orm import Session, joinedload

from database.models import (
    Complaint, ComplaintCategory, ComplaintLocation, ComplaintStatus, User, UserRole
)
from core.exceptions import InvalidState, InvalidToken, NotFound, ValidationError
from core.validators import (
    clean_text, sanitize_filename, validate_extension, validate_file_size
)
from core.logger import logger
import config

E = TypeVar("E")

# Forward-only moves; same-state updates are always accepted as no-ops
STRICT_STATUS_TRANSITIONS: Dict[ComplaintStatus, FrozenSet[ComplaintStatus]] = {
    ComplaintStatus.PENDING: frozenset({ComplaintStatus.IN_PROGRESS, ComplaintStatus.RESOLVED}),
    ComplaintStatus.IN_PROGRESS: frozenset({ComplaintStatus.RESOLVED}),
    ComplaintStatus.RESOLVED: frozenset(),
}

# Admins may set any status from any status
LENIENT_STATUS_TRANSITIONS: Dict[ComplaintStatus, FrozenSet[ComplaintStatus]] = {
    status: frozenset(ComplaintStatus) for status in ComplaintStatus
}


def status_transitions() -> Dict[ComplaintStatus, FrozenSet[ComplaintStatus]]:
    """Transition table in force for the current configuration."""
    if config.STRICT_STATUS_TRANSITIONS:
        return STRICT_STATUS_TRANSITIONS
    return LENIENT_STATUS_TRANSITIONS


def is_transition_allowed(current: ComplaintStatus, new: ComplaintStatus) -> bool:
    if current == new:
        return True
    return new in status_transitions().get(current, frozenset())


def parse_enum(enum_class: Type[E], value: Optional[str], field: str) -> E:
    """Convert a request value into an enum member (case-insensitive) or raise ValidationError."""
    try:
        return enum_class(value)
    except ValueError:
        if isinstance(value, str):
            for member in enum_class:
                if member.value.lower() == value.lower():
                    return member
        allowed = ", ".join(member.value for member in enum_class)
        raise ValidationError(f"Invalid {field} '{value}'. Allowed: {allowed}")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_complaint(complaint: Complaint, include_student: bool = False) -> Dict[str, Any]:
    """JSON shape consumed by the front end (camelCase, Mongo-style _id)."""
    student_ref: Any = complaint.student_id
    if include_student:
        student = complaint.student
        student_ref = {
            "_id": student.id,
            "rollNumber": student.roll_number,
            "roomNumber": student.room_number,
            "name": student.name,
        } if student else None

    return {
        "_id": complaint.id,
        "title": complaint.title,
        "category": complaint.category.value,
        "description": complaint.description,
        "roomNumber": complaint.room_number,
        "location": complaint.location.value,
        "imagePath": complaint.image_path,
        "status": complaint.status.value,
        "studentId": student_ref,
        "createdAt": _iso(complaint.created_at),
        "updatedAt": _iso(complaint.updated_at),
    }


def require_student_account(db: Session, student_id: int, roll_number: Optional[str] = None) -> User:
    """
    Make sure a token's student still exists.

    Tokens outlive a roster re-import, which deletes students and may hand
    their ids to new ones; the roll number claim tells the two apart.

    Raises:
        InvalidToken: no such student, or the id now belongs to someone else
    """
    user = db.get(User, student_id)
    if (
        user is None
        or user.role != UserRole.STUDENT
        or (roll_number is not None and user.roll_number != roll_number)
    ):
        logger.warning(f"Token for student {student_id} ({roll_number}) no longer matches an account")
        raise InvalidToken("Account no longer exists. Please log in again.")
    return user


def remove_complaint(db: Session, complaint: Complaint, storage=None) -> None:
    """
    Delete the record, then its image.

    The image removal is best-effort: it runs only after the delete is
    committed and its failure is logged, never raised.
    """
    complaint_id = complaint.id
    image_path = complaint.image_path
    db.delete(complaint)
    db.commit()
    logger.info(f"Complaint {complaint_id} deleted")

    if image_path:
        storage = storage or config.media_storage
        if storage is None:
            logger.warning(f"No media storage configured; image {image_path} left on disk")
            return
        try:
            storage.delete(image_path)
        except Exception as e:
            logger.warning(f"Image cleanup failed for complaint {complaint_id}: {e}")


class ComplaintService:
    """Service for complaint operations."""

    @staticmethod
    def submit(
        db: Session,
        student_id: int,
        title: Optional[str],
        category: Optional[str],
        description: Optional[str],
        room_number: Optional[str],
        location: Optional[str],
        image_file: Optional[BinaryIO] = None,
        image_filename: Optional[str] = None,
        image_size: Optional[int] = None,
        storage=None,
        roll_number: Optional[str] = None,
    ) -> Complaint:
        """
        File a new complaint as Pending.

        All of title, category, description, room number and location are
        required. The optional image is validated before anything is stored,
        so a rejected submission leaves neither a record nor a file.

        Raises:
            InvalidToken: the submitting student no longer exists
            ValidationError: missing/invalid field or unacceptable image
        """
        require_student_account(db, student_id, roll_number)

        fields = {
            "title": clean_text(title),
            "category": clean_text(category),
            "description": clean_text(description),
            "roomNumber": clean_text(room_number),
            "location": clean_text(location),
        }
        missing = [name for name, value in fields.items() if not value]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        category_value = parse_enum(ComplaintCategory, fields["category"], "category")
        location_value = parse_enum(ComplaintLocation, fields["location"], "location")

        safe_filename = None
        has_image = image_file is not None and bool(image_filename)
        if has_image:
            try:
                safe_filename = sanitize_filename(image_filename)
            except ValueError as e:
                raise ValidationError(f"Invalid filename: {e}")
            if not validate_extension(safe_filename, config.ALLOWED_IMAGE_EXTENSIONS):
                raise ValidationError(
                    f"Invalid file type. Allowed: {', '.join(sorted(config.ALLOWED_IMAGE_EXTENSIONS))}"
                )
            if image_size is not None:
                is_valid_size, size_error = validate_file_size(
                    image_size, config.MAX_IMAGE_SIZE_MB * 1024 * 1024
                )
                if not is_valid_size:
                    raise ValidationError(size_error)

        image_path = None
        storage = storage or config.media_storage
        if has_image:
            if storage is None:
                raise RuntimeError("Media storage not initialized")
            image_path = storage.save(image_file, safe_filename)

        complaint = Complaint(
            title=fields["title"],
            category=category_value,
            description=fields["description"],
            room_number=fields["roomNumber"],
            location=location_value,
            image_path=image_path,
            status=ComplaintStatus.PENDING,
            student_id=student_id,
        )
        try:
            db.add(complaint)
            db.commit()
            db.refresh(complaint)
        except Exception:
            db.rollback()
            if image_path:
                storage.delete(image_path)
            raise

        logger.info(f"Complaint {complaint.id} submitted by user {student_id} ({category_value.value})")
        return complaint

    @staticmethod
    def get(db: Session, complaint_id: int) -> Complaint:
        complaint = db.query(Complaint).filter(Complaint.id == complaint_id).first()
        if not complaint:
            raise NotFound("Complaint not found")
        return complaint

    @staticmethod
    def list_mine(db: Session, student_id: int, roll_number: Optional[str] = None) -> List[Complaint]:
        """All complaints owned by the student, newest first."""
        require_student_account(db, student_id, roll_number)
        return (
            db.query(Complaint)
            .filter(Complaint.student_id == student_id)
            .order_by(Complaint.created_at.desc(), Complaint.id.desc())
            .all()
        )

    @staticmethod
    def list_active(
        db: Session,
        category: Optional[str] = None,
        room_number: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Complaint]:
        """Unresolved complaints matching the optional filters, newest first."""
        query = (
            db.query(Complaint)
            .options(joinedload(Complaint.student))
            .filter(Complaint.status != ComplaintStatus.RESOLVED)
        )

        category = clean_text(category)
        if category:
            query = query.filter(Complaint.category == parse_enum(ComplaintCategory, category, "category"))
        room_number = clean_text(room_number)
        if room_number:
            query = query.filter(Complaint.room_number == room_number)
        status = clean_text(status)
        if status:
            query = query.filter(Complaint.status == parse_enum(ComplaintStatus, status, "status"))

        return query.order_by(Complaint.created_at.desc(), Complaint.id.desc()).all()

    @staticmethod
    def list_history(db: Session) -> List[Complaint]:
        """Resolved complaints, most recently updated first."""
        return (
            db.query(Complaint)
            .options(joinedload(Complaint.student))
            .filter(Complaint.status == ComplaintStatus.RESOLVED)
            .order_by(Complaint.updated_at.desc(), Complaint.id.desc())
            .all()
        )

    @staticmethod
    def update_status(db: Session, complaint_id: int, new_status: Optional[str]) -> Complaint:
        """
        Set a complaint's status and bump updated_at.

        Raises:
            NotFound: unknown complaint
            ValidationError: value is not a known status
            InvalidState: move rejected by the transition table
        """
        complaint = ComplaintService.get(db, complaint_id)
        target = parse_enum(ComplaintStatus, clean_text(new_status), "status")
        current = complaint.status

        if not is_transition_allowed(current, target):
            raise InvalidState(f"Cannot change status from {current.value} to {target.value}")
        if current == ComplaintStatus.RESOLVED and target != ComplaintStatus.RESOLVED:
            logger.warning(f"Complaint {complaint_id} reopened: {current.value} -> {target.value}")

        complaint.status = target
        complaint.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(complaint)
        logger.info(f"Complaint {complaint_id} status: {current.value} -> {target.value}")
        return complaint

    @staticmethod
    def delete(db: Session, complaint_id: int, storage=None) -> None:
        """
        Delete a resolved complaint and its image.

        Raises:
            NotFound: unknown complaint
            InvalidState: complaint is not Resolved
        """
        complaint = ComplaintService.get(db, complaint_id)
        if complaint.status != ComplaintStatus.RESOLVED:
            raise InvalidState("Only resolved complaints can be deleted")
        remove_complaint(db, complaint, storage)
