"""
Test configuration and fixtures.
"""
import os
import tempfile
from datetime import datetime
from pathlib import Path

import pytest

# Set testing environment before config is imported
_tmp_root = Path(tempfile.mkdtemp(prefix="complaint-tracker-tests-"))
os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only'
os.environ['UPLOADS_DIR'] = str(_tmp_root / 'uploads')
os.environ['LOG_FILE'] = str(_tmp_root / 'logs' / 'test.log')
os.environ['RATE_LIMIT_PER_MINUTE'] = '0'
os.environ['RATE_LIMIT_PER_HOUR'] = '0'
os.environ['AUTH_RATE_LIMIT_PER_MINUTE'] = '0'
os.environ['RETENTION_SWEEP_ENABLED'] = 'false'

from fastapi.testclient import TestClient

import config
from app import app
from auth.security import get_password_hash
from database.connection import Database
from database.models import (
    Complaint, ComplaintCategory, ComplaintLocation, ComplaintStatus, User, UserRole
)
from services.auth_service import AuthService
from storage.local_storage import LocalMediaStorage


def _persist(database, obj):
    """Save obj in its own session and hand it back detached with attributes loaded."""
    s = database.SessionLocal(expire_on_commit=False)
    try:
        s.add(obj)
        s.commit()
    finally:
        s.close()
    return obj


@pytest.fixture
def database():
    """Fresh in-memory database for each test."""
    db = Database('sqlite://')
    db.create_tables()
    config.db = db
    yield db
    config.db = None
    db.drop_tables()
    db.engine.dispose()


@pytest.fixture
def storage(tmp_path):
    media = LocalMediaStorage(tmp_path / 'uploads', config.UPLOADS_URL_PREFIX)
    config.media_storage = media
    yield media
    config.media_storage = None


@pytest.fixture
def client(database, storage):
    """Test client; the lifespan is not run, fixtures provide db and storage."""
    return TestClient(app)


@pytest.fixture
def make_user(database):
    def _make_user(roll_number, role=UserRole.STUDENT, password=None, active=True, room_number='B12', name=None):
        user = User(
            roll_number=roll_number.upper(),
            name=name or f'User {roll_number}',
            room_number=room_number,
            role=role,
            hashed_password=get_password_hash(password) if password else '',
            is_active=active,
        )
        _persist(database, user)
        return user
    return _make_user


@pytest.fixture
def student(make_user):
    return make_user('B21CS001', password='student123')


@pytest.fixture
def admin(make_user):
    return make_user('ADMIN', role=UserRole.ADMIN, password='admin@2025', room_number=None)


@pytest.fixture
def student_headers(student):
    return {'Authorization': f'Bearer {AuthService.create_token(student)}'}


@pytest.fixture
def admin_headers(admin):
    return {'Authorization': f'Bearer {AuthService.create_token(admin)}'}


@pytest.fixture
def make_complaint(database):
    def _make_complaint(student, status=ComplaintStatus.PENDING, updated_at=None, created_at=None,
                        category=ComplaintCategory.WATER, room_number='B12', image_path=None, title='No water'):
        now = datetime.utcnow()
        complaint = Complaint(
            title=title,
            category=category,
            description='Taps are dry since morning',
            room_number=room_number,
            location=ComplaintLocation.HOSTEL,
            image_path=image_path,
            status=status,
            student_id=student.id if student else None,
            created_at=created_at or now,
            updated_at=updated_at or now,
        )
        _persist(database, complaint)
        return complaint
    return _make_complaint
