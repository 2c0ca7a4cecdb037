"""initial schema with partial roll number index

Revision ID: a1c3e5f70001
Revises:
Create Date: 2026-10-19 09:12:40.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = 'a1c3e5f70001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

COUNTED = sa.text("status = 'active' AND deleted_at IS NULL")


def _base_columns():
    return [
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    ]


def _base_indexes(table: str):
    op.create_index(f'ix_{table}_id', table, ['id'])
    op.create_index(f'ix_{table}_created_at', table, ['created_at'])
    op.create_index(f'ix_{table}_deleted_at', table, ['deleted_at'])


def _fk(column: str, target: str, nullable: bool = False) -> sa.Column:
    return sa.Column(column, postgresql.UUID(as_uuid=True), sa.ForeignKey(target), nullable=nullable, index=True)


def upgrade() -> None:
    op.create_table(
        'persons',
        *_base_columns(),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('middle_name', sa.String(100)),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('display_name', sa.String(255)),
        sa.Column('dob', sa.Date()),
        sa.Column('gender', sa.String(20)),
        sa.Column('photo_url', sa.String(500)),
    )
    op.create_table(
        'person_contacts',
        *_base_columns(),
        _fk('person_id', 'persons.id'),
        sa.Column('contact_type', sa.String(20), nullable=False),
        sa.Column('contact_value', sa.String(255), nullable=False),
        sa.Column('is_primary', sa.Boolean(), nullable=False, server_default=sa.false()),
    )

    op.create_table(
        'academic_years',
        *_base_columns(),
        sa.Column('code', sa.String(20), nullable=False, unique=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('is_current', sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_table(
        'classes',
        *_base_columns(),
        sa.Column('name', sa.String(50), nullable=False, index=True),
        sa.Column('code', sa.String(20)),
    )
    op.create_table(
        'sections',
        *_base_columns(),
        sa.Column('name', sa.String(20), nullable=False, index=True),
        sa.Column('code', sa.String(20)),
    )
    op.create_table(
        'class_sections',
        *_base_columns(),
        _fk('class_id', 'classes.id'),
        _fk('section_id', 'sections.id'),
        _fk('academic_year_id', 'academic_years.id'),
        sa.Column('capacity', sa.Integer(), server_default='40'),
        sa.UniqueConstraint('class_id', 'section_id', 'academic_year_id', name='uq_class_section_year'),
    )

    op.create_table(
        'students',
        *_base_columns(),
        _fk('person_id', 'persons.id'),
        sa.Column('admission_no', sa.String(50), nullable=False),
        sa.Column('admission_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
    )
    op.create_index('ix_students_admission_no', 'students', ['admission_no'], unique=True)
    op.create_table(
        'parents',
        *_base_columns(),
        _fk('person_id', 'persons.id'),
        sa.Column('occupation', sa.String(100)),
    )
    op.create_table(
        'student_parents',
        *_base_columns(),
        _fk('student_id', 'students.id'),
        _fk('parent_id', 'parents.id'),
        sa.Column('relationship_type', sa.String(20), nullable=False),
        sa.Column('is_primary_contact', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_legal_guardian', sa.Boolean(), nullable=False, server_default=sa.false()),
    )

    op.create_table(
        'student_enrollments',
        *_base_columns(),
        _fk('student_id', 'students.id'),
        _fk('class_section_id', 'class_sections.id'),
        _fk('academic_year_id', 'academic_years.id'),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('roll_number', sa.Integer(), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('created_by', postgresql.UUID(as_uuid=True), nullable=True),
    )
    op.create_index(
        'uq_enrollment_scope_roll',
        'student_enrollments',
        ['class_section_id', 'academic_year_id', 'roll_number'],
        unique=True,
        postgresql_where=COUNTED,
    )
    op.create_index(
        'uq_enrollment_student_year_active',
        'student_enrollments',
        ['student_id', 'academic_year_id'],
        unique=True,
        postgresql_where=COUNTED,
    )

    op.create_table(
        'users',
        *_base_columns(),
        _fk('person_id', 'persons.id', nullable=True),
        sa.Column('account_status', sa.String(20), nullable=False, server_default='active'),
    )
    op.create_table(
        'roles',
        *_base_columns(),
        sa.Column('code', sa.String(50), nullable=False, unique=True),
        sa.Column('name', sa.String(100)),
    )
    op.create_table(
        'permissions',
        *_base_columns(),
        sa.Column('code', sa.String(100), nullable=False, unique=True),
        sa.Column('description', sa.String(255)),
    )
    op.create_table(
        'user_roles',
        *_base_columns(),
        _fk('user_id', 'users.id'),
        _fk('role_id', 'roles.id'),
        sa.UniqueConstraint('user_id', 'role_id', name='uq_user_role'),
    )
    op.create_table(
        'role_permissions',
        *_base_columns(),
        _fk('role_id', 'roles.id'),
        _fk('permission_id', 'permissions.id'),
        sa.UniqueConstraint('role_id', 'permission_id', name='uq_role_permission'),
    )

    for table in (
        'persons', 'person_contacts', 'academic_years', 'classes', 'sections', 'class_sections',
        'students', 'parents', 'student_parents', 'student_enrollments',
        'users', 'roles', 'permissions', 'user_roles', 'role_permissions',
    ):
        _base_indexes(table)


def downgrade() -> None:
    for table in (
        'role_permissions', 'user_roles', 'permissions', 'roles', 'users',
        'student_enrollments', 'student_parents', 'parents', 'students',
        'class_sections', 'sections', 'classes', 'academic_years',
        'person_contacts', 'persons',
    ):
        op.drop_table(table)
