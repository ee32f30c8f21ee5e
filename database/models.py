"""
Database models for the complaint tracker.
"""
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text,
    ForeignKey, Index, TypeDecorator
)
from sqlalchemy.orm import declarative_base, relationship
import enum

Base = declarative_base()


# ============================================================================
# Custom Type Decorator for Enum Values
# ============================================================================

class EnumValue(TypeDecorator):
    """Type decorator to ensure enum values (not names) are stored."""
    impl = String
    cache_ok = True

    def __init__(self, enum_class, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.enum_class = enum_class

    def process_bind_param(self, value, dialect):
        """Convert enum to its value when writing to database."""
        if value is None:
            return None
        if isinstance(value, enum.Enum):
            return value.value
        return value

    def process_result_value(self, value, dialect):
        """Convert database value back to enum when reading."""
        if value is None:
            return None
        if isinstance(value, str):
            try:
                return self.enum_class(value)
            except ValueError:
                return value
        return value


# ============================================================================
# Enums - Must be defined before models that use them
# ============================================================================

class UserRole(str, enum.Enum):
    """User roles for authorization."""
    STUDENT = "student"
    ADMIN = "admin"


class ComplaintCategory(str, enum.Enum):
    """What the complaint is about."""
    WATER = "water"
    ELECTRICITY = "electricity"
    CLEANING = "cleaning"
    INTERNET = "internet"
    OTHER = "other"


class ComplaintLocation(str, enum.Enum):
    """Where the problem is."""
    HOSTEL = "Hostel"
    MESS = "Mess"
    CLASS = "Class"
    GROUND = "Ground"


class ComplaintStatus(str, enum.Enum):
    """Complaint lifecycle status."""
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"


# ============================================================================
# Models
# ============================================================================

class User(Base):
    """Students and admins. Students arrive through the roster import."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    roll_number = Column(String(100), unique=True, nullable=False)  # Stored upper-case
    name = Column(String(255), nullable=True)
    room_number = Column(String(50), nullable=True)
    mobile = Column(String(50), nullable=True)
    gender = Column(String(50), nullable=True)  # Free text from the spreadsheet
    role = Column(EnumValue(UserRole, 20), nullable=False)
    hashed_password = Column(String(255), nullable=False, default="")  # Empty until activation
    is_active = Column(Boolean, default=False, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    complaints = relationship("Complaint", back_populates="student")

    __table_args__ = (
        Index('idx_user_roll_number', 'roll_number'),
        Index('idx_user_role', 'role'),
    )

    @property
    def has_password(self) -> bool:
        return bool(self.hashed_password and str(self.hashed_password).strip())


class Complaint(Base):
    """A complaint filed by a student."""
    __tablename__ = "complaints"

    id = Column(Integer, primary_key=True)
    title = Column(String(255), nullable=False)
    category = Column(EnumValue(ComplaintCategory, 20), nullable=False)
    description = Column(Text, nullable=False)
    room_number = Column(String(50), nullable=False)
    location = Column(EnumValue(ComplaintLocation, 20), nullable=False)
    image_path = Column(String(512), nullable=True)  # Public path, e.g. uploads/1717000000000.jpg
    status = Column(EnumValue(ComplaintStatus, 20), default=ComplaintStatus.PENDING, nullable=False)
    # Owner; cleared only when the roster import removes the student
    student_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    student = relationship("User", back_populates="complaints")

    __table_args__ = (
        Index('idx_complaint_student', 'student_id'),
        Index('idx_complaint_status', 'status'),
        Index('idx_complaint_status_updated', 'status', 'updated_at'),
        Index('idx_complaint_created', 'created_at'),
    )
