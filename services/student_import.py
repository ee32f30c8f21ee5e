"""
Bulk student roster import from spreadsheets (.xlsx via openpyxl, or .csv).

The import is a full replacement: every existing student is removed and the
spreadsheet rows become the new roster. Rows are validated before anything is
touched, and the delete + insert run in a single transaction.
"""
import csv
import io
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from openpyxl import load_workbook
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from database.models import Complaint, User, UserRole
from auth.security import get_password_hash
from core.exceptions import NoValidRows, ValidationError
from core.validators import clean_text, normalize_roll_number
from core.logger import logger
import config


# Column order used when the header row is not recognised
DEFAULT_COLUMNS = ["name", "roll_number", "password", "gender", "room_number", "mobile"]

HEADER_ALIASES = {
    "name": {"name", "studentname", "fullname"},
    "roll_number": {"rollnumber", "rollno", "roll", "identifier", "registernumber", "regno", "id"},
    "password": {"password", "initialpassword", "pass"},
    "gender": {"gender", "sex"},
    "room_number": {"roomnumber", "roomno", "room"},
    "mobile": {"mobile", "mobileno", "mobilenumber", "phone", "phonenumber", "contact"},
}


class StudentRow(BaseModel):
    """One usable spreadsheet row."""
    name: Optional[str] = None
    roll_number: str
    password: str
    gender: Optional[str] = None
    room_number: str
    mobile: Optional[str] = None


def _cell_to_text(value: Any) -> Optional[str]:
    """Spreadsheet cells arrive as str/int/float; 101.0 should read as '101'."""
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return clean_text(str(value))


def _normalize_header(value: Any) -> str:
    return re.sub(r"[^a-z0-9]", "", str(value or "").lower())


def map_columns(header: Sequence[Any]) -> Dict[str, int]:
    """
    Map field names to column indexes from the header row.
    Falls back to DEFAULT_COLUMNS order when fewer than two headers are recognised.
    """
    mapping: Dict[str, int] = {}
    for index, cell in enumerate(header):
        key = _normalize_header(cell)
        for field, aliases in HEADER_ALIASES.items():
            if key in aliases and field not in mapping:
                mapping[field] = index
                break
    if len(mapping) < 2:
        return {field: index for index, field in enumerate(DEFAULT_COLUMNS)}
    return mapping


def read_spreadsheet(content: bytes, filename: str) -> List[List[Any]]:
    """
    Read all rows (header included) from an uploaded file.

    Raises:
        ValidationError: unsupported extension or unreadable file
    """
    extension = Path(filename or "").suffix.lower()
    if extension not in config.ALLOWED_IMPORT_EXTENSIONS:
        raise ValidationError(
            f"Invalid file type. Allowed: {', '.join(sorted(config.ALLOWED_IMPORT_EXTENSIONS))}"
        )

    if extension == ".csv":
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError:
            raise ValidationError("CSV file must be UTF-8 encoded")
        return [list(row) for row in csv.reader(io.StringIO(text))]

    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        logger.warning(f"Could not open workbook {filename!r}: {e}")
        raise ValidationError("Could not read the spreadsheet. Upload a valid .xlsx file")
    try:
        sheet = workbook.active
        return [list(row) for row in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()


def parse_student_rows(rows: Iterable[Sequence[Any]]) -> List[StudentRow]:
    """
    Turn raw spreadsheet rows into StudentRow objects.

    The first row is the header. Rows without roll number, password or room
    are skipped; a roll number seen twice keeps its first row.
    """
    rows = list(rows)
    if not rows:
        return []

    columns = map_columns(rows[0])
    students: List[StudentRow] = []
    seen = set()

    for line_number, row in enumerate(rows[1:], start=2):
        def cell(field: str) -> Optional[str]:
            index = columns.get(field)
            if index is None or index >= len(row):
                return None
            return _cell_to_text(row[index])

        roll_number = normalize_roll_number(cell("roll_number"))
        password = cell("password")
        room_number = cell("room_number")
        if not roll_number or not password or not room_number:
            if any(value is not None and str(value).strip() for value in row):
                logger.debug(f"Skipping row {line_number}: roll number, password and room are required")
            continue
        if len(password.encode("utf-8")) > 72:
            logger.warning(f"Skipping row {line_number}: password longer than 72 bytes")
            continue
        if roll_number in seen:
            logger.warning(f"Skipping row {line_number}: duplicate roll number {roll_number}")
            continue
        seen.add(roll_number)

        students.append(StudentRow(
            name=cell("name"),
            roll_number=roll_number,
            password=password,
            gender=cell("gender"),
            room_number=room_number,
            mobile=cell("mobile"),
        ))

    return students


class StudentImportService:
    """Replaces the student roster from spreadsheet rows."""

    @staticmethod
    def import_students(
        db: Session,
        rows: Iterable[Sequence[Any]],
        activate: Optional[bool] = None,
    ) -> int:
        """
        Replace all students with the rows of a spreadsheet.

        Args:
            db: Database session
            rows: Raw rows, header first
            activate: Hash each row's password and create the student active.
                Defaults to IMPORT_ACTIVATES_STUDENTS; otherwise students are
                created inactive with no password and must activate.

        Returns:
            Number of students inserted

        Raises:
            NoValidRows: nothing usable in the file (existing roster untouched)
        """
        if activate is None:
            activate = config.IMPORT_ACTIVATES_STUDENTS

        students = parse_student_rows(rows)

        # Identifiers held by admins cannot be reused for students
        admin_rolls = {
            roll for (roll,) in db.query(User.roll_number).filter(User.role == UserRole.ADMIN).all()
        }
        clashing = [s.roll_number for s in students if s.roll_number in admin_rolls]
        if clashing:
            logger.warning(f"Skipping rows that reuse admin identifiers: {', '.join(clashing)}")
            students = [s for s in students if s.roll_number not in admin_rolls]

        if not students:
            raise NoValidRows()

        new_users = [
            User(
                roll_number=s.roll_number,
                name=s.name,
                room_number=s.room_number,
                mobile=s.mobile,
                gender=s.gender,
                role=UserRole.STUDENT,
                hashed_password=get_password_hash(s.password) if activate else "",
                is_active=bool(activate),
            )
            for s in students
        ]

        try:
            old_student_ids = select(User.id).where(User.role == UserRole.STUDENT)
            db.query(Complaint).filter(Complaint.student_id.in_(old_student_ids)).update(
                {Complaint.student_id: None}, synchronize_session=False
            )
            removed = db.query(User).filter(User.role == UserRole.STUDENT).delete(synchronize_session=False)
            db.add_all(new_users)
            db.commit()
        except Exception:
            db.rollback()
            logger.error("Student import failed; previous roster kept", exc_info=True)
            raise

        logger.info(f"Student roster replaced: {removed} removed, {len(new_users)} imported")
        return len(new_users)
