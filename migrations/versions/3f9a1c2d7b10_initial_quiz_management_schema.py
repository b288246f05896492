"""Initial quiz management schema

Revision ID: 3f9a1c2d7b10
Revises:
Create Date: 2026-10-18 09:12:40.118342

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision = '3f9a1c2d7b10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    inspector = inspect(op.get_bind())
    tables = inspector.get_table_names()

    if 'users' not in tables:
        op.create_table('users',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('username', sa.String(length=50), nullable=False),
            sa.Column('email', sa.String(length=255), nullable=False),
            sa.Column('password_hash', sa.String(length=255), nullable=False),
            sa.Column('first_name', sa.String(length=100), nullable=False),
            sa.Column('last_name', sa.String(length=100), nullable=False),
            sa.Column('role', sa.String(length=20), nullable=False, server_default='student'),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('last_login', sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_users_username', 'users', ['username'], unique=True)
        op.create_index('ix_users_email', 'users', ['email'], unique=True)
        op.create_index('ix_users_role', 'users', ['role'], unique=False)
        op.create_index('ix_users_is_active', 'users', ['is_active'], unique=False)
        op.create_index('ix_users_created_at', 'users', ['created_at'], unique=False)

    if 'classes' not in tables:
        op.create_table('classes',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=255), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('enrollment_code', sa.String(length=20), nullable=False),
            sa.Column('professor_id', sa.Integer(), nullable=False),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(['professor_id'], ['users.id']),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_classes_name', 'classes', ['name'], unique=False)
        op.create_index('ix_classes_enrollment_code', 'classes', ['enrollment_code'], unique=True)
        op.create_index('ix_classes_professor_id', 'classes', ['professor_id'], unique=False)
        op.create_index('ix_classes_is_active', 'classes', ['is_active'], unique=False)
        op.create_index('ix_classes_created_at', 'classes', ['created_at'], unique=False)
        op.create_index('ix_classes_professor_active', 'classes', ['professor_id', 'is_active'], unique=False)

    if 'class_enrollments' not in tables:
        op.create_table('class_enrollments',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('class_id', sa.Integer(), nullable=False),
            sa.Column('student_id', sa.Integer(), nullable=False),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
            sa.Column('enrolled_at', sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(['class_id'], ['classes.id']),
            sa.ForeignKeyConstraint(['student_id'], ['users.id']),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('class_id', 'student_id', name='uq_class_student')
        )
        op.create_index('ix_class_enrollments_class_id', 'class_enrollments', ['class_id'], unique=False)
        op.create_index('ix_class_enrollments_student_id', 'class_enrollments', ['student_id'], unique=False)
        op.create_index('ix_class_enrollments_is_active', 'class_enrollments', ['is_active'], unique=False)
        op.create_index('ix_class_enrollments_class_active', 'class_enrollments', ['class_id', 'is_active'], unique=False)

    if 'quizzes' not in tables:
        op.create_table('quizzes',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('class_id', sa.Integer(), nullable=False),
            sa.Column('professor_id', sa.Integer(), nullable=False),
            sa.Column('title', sa.String(length=255), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('instructions', sa.Text(), nullable=True),
            sa.Column('deadline', sa.DateTime(), nullable=True),
            sa.Column('time_limit_minutes', sa.Integer(), nullable=False, server_default='30'),
            sa.Column('max_attempts', sa.Integer(), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default='0'),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(['class_id'], ['classes.id']),
            sa.ForeignKeyConstraint(['professor_id'], ['users.id']),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_quizzes_class_id', 'quizzes', ['class_id'], unique=False)
        op.create_index('ix_quizzes_professor_id', 'quizzes', ['professor_id'], unique=False)
        op.create_index('ix_quizzes_deadline', 'quizzes', ['deadline'], unique=False)
        op.create_index('ix_quizzes_is_active', 'quizzes', ['is_active'], unique=False)
        op.create_index('ix_quizzes_created_at', 'quizzes', ['created_at'], unique=False)
        op.create_index('ix_quizzes_class_active', 'quizzes', ['class_id', 'is_active'], unique=False)

    if 'questions' not in tables:
        op.create_table('questions',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('quiz_id', sa.Integer(), nullable=False),
            sa.Column('question_type', sa.String(length=50), nullable=False),
            sa.Column('question_text', sa.Text(), nullable=False),
            sa.Column('points', sa.Numeric(precision=5, scale=2), nullable=False, server_default='1.0'),
            sa.Column('order_index', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(['quiz_id'], ['quizzes.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_questions_quiz_id', 'questions', ['quiz_id'], unique=False)
        op.create_index('ix_questions_quiz_order', 'questions', ['quiz_id', 'order_index'], unique=False)

    if 'answer_options' not in tables:
        op.create_table('answer_options',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('question_id', sa.Integer(), nullable=False),
            sa.Column('option_text', sa.Text(), nullable=False),
            sa.Column('is_correct', sa.Boolean(), nullable=False, server_default='0'),
            sa.Column('order_index', sa.Integer(), nullable=False, server_default='0'),
            sa.ForeignKeyConstraint(['question_id'], ['questions.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_answer_options_question_id', 'answer_options', ['question_id'], unique=False)
        op.create_index('ix_answer_options_question_order', 'answer_options', ['question_id', 'order_index'], unique=False)

    if 'quiz_submissions' not in tables:
        op.create_table('quiz_submissions',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('quiz_id', sa.Integer(), nullable=False),
            sa.Column('student_id', sa.Integer(), nullable=False),
            sa.Column('started_at', sa.DateTime(), nullable=False),
            sa.Column('submitted_at', sa.DateTime(), nullable=True),
            sa.Column('is_completed', sa.Boolean(), nullable=False, server_default='0'),
            # TRUE while open, NULL once completed
            sa.Column('in_progress', sa.Boolean(), nullable=True),
            sa.Column('auto_submitted', sa.Boolean(), nullable=False, server_default='0'),
            sa.Column('total_score', sa.Numeric(precision=7, scale=2), nullable=True),
            sa.Column('max_score', sa.Numeric(precision=7, scale=2), nullable=False),
            sa.Column('time_taken_minutes', sa.Numeric(precision=7, scale=2), nullable=True),
            sa.ForeignKeyConstraint(['quiz_id'], ['quizzes.id']),
            sa.ForeignKeyConstraint(['student_id'], ['users.id']),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('student_id', 'quiz_id', 'in_progress', name='uq_submission_in_progress')
        )
        op.create_index('ix_quiz_submissions_quiz_id', 'quiz_submissions', ['quiz_id'], unique=False)
        op.create_index('ix_quiz_submissions_student_id', 'quiz_submissions', ['student_id'], unique=False)
        op.create_index('ix_quiz_submissions_is_completed', 'quiz_submissions', ['is_completed'], unique=False)
        op.create_index('ix_quiz_submissions_quiz_completed', 'quiz_submissions', ['quiz_id', 'is_completed'], unique=False)

    if 'student_answers' not in tables:
        op.create_table('student_answers',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('submission_id', sa.Integer(), nullable=False),
            sa.Column('question_id', sa.Integer(), nullable=True),
            sa.Column('selected_option_ids', sa.JSON(), nullable=True),
            sa.Column('answer_text', sa.Text(), nullable=True),
            sa.Column('is_correct', sa.Boolean(), nullable=True),
            sa.Column('points_earned', sa.Numeric(precision=5, scale=2), nullable=True),
            sa.Column('answered_at', sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(['submission_id'], ['quiz_submissions.id']),
            sa.ForeignKeyConstraint(['question_id'], ['questions.id'], ondelete='SET NULL'),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('submission_id', 'question_id', name='uq_submission_question')
        )
        op.create_index('ix_student_answers_submission_id', 'student_answers', ['submission_id'], unique=False)
        op.create_index('ix_student_answers_question_id', 'student_answers', ['question_id'], unique=False)

    if 'audit_logs' not in tables:
        op.create_table('audit_logs',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=True),
            sa.Column('action', sa.String(length=50), nullable=False),
            sa.Column('table_name', sa.String(length=50), nullable=True),
            sa.Column('record_id', sa.Integer(), nullable=True),
            sa.Column('old_values', sa.JSON(), nullable=True),
            sa.Column('new_values', sa.JSON(), nullable=True),
            sa.Column('ip_address', sa.String(length=45), nullable=True),
            sa.Column('user_agent', sa.String(length=255), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'], unique=False)
        op.create_index('ix_audit_logs_action', 'audit_logs', ['action'], unique=False)
        op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'], unique=False)
        op.create_index('ix_audit_logs_table_record', 'audit_logs', ['table_name', 'record_id'], unique=False)


def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('student_answers')
    op.drop_table('quiz_submissions')
    op.drop_table('answer_options')
    op.drop_table('questions')
    op.drop_table('quizzes')
    op.drop_table('class_enrollments')
    op.drop_table('classes')
    op.drop_table('users')
