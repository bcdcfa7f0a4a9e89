"""Initial migration - create all tables

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

Creates all database tables for the VirtuClass backend:
- users / user_refresh_tokens: accounts and their active refresh tokens
- courses / course_enrollments: courses and their rosters
- assessments / questions: question banks with scheduling and status
- submissions: one row per student attempt
- live_sessions / session_participants: Meet sessions and joins
- resources: shared file and link metadata

Also creates the uniqueness guarantees and indexes for common query patterns.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # ── Users ─────────────────────────────────────────────────
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(320), nullable=False, unique=True),
        sa.Column('password_hash', sa.Text(), nullable=False),
        sa.Column('role', sa.String(16), nullable=False, server_default='student'),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('email_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_approved', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('verification_token', sa.String(64), nullable=True),
        sa.Column('verification_expires_at', sa.DateTime(), nullable=True),
        sa.Column('reset_token', sa.String(64), nullable=True),
        sa.Column('reset_expires_at', sa.DateTime(), nullable=True),
        sa.Column('class_year', sa.Integer(), nullable=True),
        sa.Column('class_code', sa.String(3), nullable=True),
        sa.Column('google_refresh_token', sa.Text(), nullable=True),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'user_refresh_tokens',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('token', sa.Text(), nullable=False, unique=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_user_refresh_tokens_user_id', 'user_refresh_tokens', ['user_id'])

    # ── Courses ───────────────────────────────────────────────
    op.create_table(
        'courses',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('code', sa.String(32), nullable=False),
        sa.Column('year_group', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('teacher_id', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    # (code, year_group) is unique among active courses only
    op.create_index('uq_courses_code_year_active', 'courses', ['code', 'year_group'],
                    unique=True, postgresql_where=sa.text('is_active'))
    op.create_index('ix_courses_teacher_id', 'courses', ['teacher_id'])

    op.create_table(
        'course_enrollments',
        sa.Column('course_id', sa.String(36), sa.ForeignKey('courses.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('student_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('enrolled_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )

    # ── Assessments and Questions ─────────────────────────────
    op.create_table(
        'assessments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('type', sa.String(16), nullable=False),
        sa.Column('course_id', sa.String(36), sa.ForeignKey('courses.id'), nullable=False),
        sa.Column('teacher_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('show_results', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('show_correct_answers', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('shuffle_questions', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('shuffle_options', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('passing_score', sa.Float(), nullable=True),
        sa.Column('total_points', sa.Float(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(16), nullable=False, server_default='draft'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint('start_date < end_date', name='ck_assessments_window'),
    )
    op.create_index('ix_assessments_course_teacher', 'assessments', ['course_id', 'teacher_id'])
    op.create_index('ix_assessments_window', 'assessments', ['start_date', 'end_date'])
    op.create_index('ix_assessments_status_active', 'assessments', ['status', 'is_active'])

    op.create_table(
        'questions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('assessment_id', sa.String(36), sa.ForeignKey('assessments.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('question', sa.Text(), nullable=False),
        sa.Column('type', sa.String(32), nullable=False),
        sa.Column('options', postgresql.JSONB(), nullable=True),
        sa.Column('correct_answer', sa.Text(), nullable=True),
        sa.Column('points', sa.Float(), nullable=False, server_default='0'),
        sa.Column('explanation', sa.Text(), nullable=True),
    )
    op.create_index('ix_questions_assessment_id', 'questions', ['assessment_id'])

    # ── Submissions ───────────────────────────────────────────
    op.create_table(
        'submissions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('assessment_id', sa.String(36), sa.ForeignKey('assessments.id'), nullable=False),
        sa.Column('student_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('answers', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('submitted_at', sa.DateTime(), nullable=True),
        sa.Column('time_elapsed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('score', sa.Float(), nullable=True),
        sa.Column('percentage', sa.Float(), nullable=True),
        sa.Column('question_scores', postgresql.JSONB(), nullable=True),
        sa.Column('graded', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('graded_by_id', sa.String(36), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('graded_at', sa.DateTime(), nullable=True),
        sa.Column('feedback', sa.Text(), nullable=True),
        sa.Column('attempt_number', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(16), nullable=False, server_default='in_progress'),
        *_timestamps(),
        sa.UniqueConstraint('assessment_id', 'student_id', 'attempt_number', name='uq_submissions_attempt'),
    )
    op.create_index('ix_submissions_assessment_status', 'submissions', ['assessment_id', 'status'])
    op.create_index('ix_submissions_student_submitted', 'submissions', ['student_id', 'submitted_at'])

    # ── Live Sessions ─────────────────────────────────────────
    op.create_table(
        'live_sessions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('course_id', sa.String(36), sa.ForeignKey('courses.id'), nullable=False),
        sa.Column('teacher_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('meeting_id', sa.String(255), nullable=False, unique=True),
        sa.Column('meeting_url', sa.Text(), nullable=False),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(16), nullable=False, server_default='scheduled'),
        *_timestamps(),
        sa.CheckConstraint('duration BETWEEN 5 AND 480', name='ck_live_sessions_duration'),
    )
    op.create_index('ix_live_sessions_teacher_start', 'live_sessions', ['teacher_id', 'start_time'])
    op.create_index('ix_live_sessions_course_start', 'live_sessions', ['course_id', 'start_time'])
    op.create_index('ix_live_sessions_status_start', 'live_sessions', ['status', 'start_time'])

    op.create_table(
        'session_participants',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('session_id', sa.String(36), sa.ForeignKey('live_sessions.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('joined_at', sa.DateTime(), nullable=True),
        sa.Column('left_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('session_id', 'user_id', name='uq_session_participants_user'),
    )

    # ── Resources ─────────────────────────────────────────────
    op.create_table(
        'resources',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('type', sa.String(16), nullable=False),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('mime_type', sa.String(255), nullable=True),
        sa.Column('storage_public_id', sa.Text(), nullable=True),
        sa.Column('uploaded_by_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('class_code', sa.String(3), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_resources_type_active', 'resources', ['type', 'is_active'])
    op.create_index('ix_resources_uploaded_by', 'resources', ['uploaded_by_id'])


def downgrade() -> None:
    op.drop_table('resources')
    op.drop_table('session_participants')
    op.drop_table('live_sessions')
    op.drop_table('submissions')
    op.drop_table('questions')
    op.drop_table('assessments')
    op.drop_table('course_enrollments')
    op.drop_table('courses')
    op.drop_table('user_refresh_tokens')
    op.drop_table('users')
