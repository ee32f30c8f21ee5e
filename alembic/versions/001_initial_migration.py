"""Initial migration - users and complaints

Revision ID: 001
Revises: 
Create Date: 2026-10-17 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('roll_number', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('room_number', sa.String(length=50), nullable=True),
        sa.Column('mobile', sa.String(length=50), nullable=True),
        sa.Column('gender', sa.String(length=50), nullable=True),
        # Enum values stored as plain strings (EnumValue type decorator)
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('roll_number')
    )
    op.create_index('idx_user_roll_number', 'users', ['roll_number'])
    op.create_index('idx_user_role', 'users', ['role'])

    op.create_table(
        'complaints',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=20), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('room_number', sa.String(length=50), nullable=False),
        sa.Column('location', sa.String(length=20), nullable=False),
        sa.Column('image_path', sa.String(length=512), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['student_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_complaint_student', 'complaints', ['student_id'])
    op.create_index('idx_complaint_status', 'complaints', ['status'])
    op.create_index('idx_complaint_status_updated', 'complaints', ['status', 'updated_at'])
    op.create_index('idx_complaint_created', 'complaints', ['created_at'])


def downgrade() -> None:
    op.drop_index('idx_complaint_created', table_name='complaints')
    op.drop_index('idx_complaint_status_updated', table_name='complaints')
    op.drop_index('idx_complaint_status', table_name='complaints')
    op.drop_index('idx_complaint_student', table_name='complaints')
    op.drop_table('complaints')
    op.drop_index('idx_user_role', table_name='users')
    op.drop_index('idx_user_roll_number', table_name='users')
    op.drop_table('users')
