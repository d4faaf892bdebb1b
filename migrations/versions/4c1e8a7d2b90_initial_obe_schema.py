"""initial obe schema

Revision ID: 4c1e8a7d2b90
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c1e8a7d2b90'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'programs',
        sa.Column('program_id', sa.Integer(), primary_key=True),
        sa.Column('parent_id_fk', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('slug', sa.String(length=128), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('level', sa.String(length=8), nullable=True),
        sa.Column('duration_years', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['parent_id_fk'], ['programs.program_id']),
        sa.UniqueConstraint('slug'),
    )
    op.create_table(
        'users',
        sa.Column('user_id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=True),
        sa.Column('email', sa.String(length=128), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=True),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('department_id_fk', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('email'),
    )
    op.create_table(
        'departments',
        sa.Column('department_id', sa.Integer(), primary_key=True),
        sa.Column('program_id_fk', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('slug', sa.String(length=128), nullable=False),
        sa.Column('hod_id_fk', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['program_id_fk'], ['programs.program_id']),
        sa.ForeignKeyConstraint(['hod_id_fk'], ['users.user_id']),
        sa.UniqueConstraint('slug'),
    )
    with op.batch_alter_table('users') as batch_op:
        batch_op.create_foreign_key(
            'fk_users_department', 'departments', ['department_id_fk'], ['department_id']
        )

    op.create_table(
        'faculty',
        sa.Column('faculty_id', sa.Integer(), primary_key=True),
        sa.Column('user_id_fk', sa.Integer(), nullable=False),
        sa.Column('department_id_fk', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('designation', sa.String(length=64), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id_fk'], ['users.user_id']),
        sa.ForeignKeyConstraint(['department_id_fk'], ['departments.department_id']),
        sa.UniqueConstraint('user_id_fk'),
    )
    op.create_table(
        'students',
        sa.Column('student_id', sa.Integer(), primary_key=True),
        sa.Column('user_id_fk', sa.Integer(), nullable=True),
        sa.Column('department_id_fk', sa.Integer(), nullable=True),
        sa.Column('roll_number', sa.String(length=32), nullable=True),
        sa.Column('admission_year', sa.Integer(), nullable=True),
        sa.Column('current_semester', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.ForeignKeyConstraint(['user_id_fk'], ['users.user_id']),
        sa.ForeignKeyConstraint(['department_id_fk'], ['departments.department_id']),
    )
    op.create_table(
        'courses',
        sa.Column('course_id', sa.Integer(), primary_key=True),
        sa.Column('department_id_fk', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('slug', sa.String(length=128), nullable=False),
        sa.Column('semester', sa.Integer(), nullable=True),
        sa.Column('credits', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(length=16), nullable=True),
        sa.Column('category', sa.String(length=16), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_by_id_fk', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['department_id_fk'], ['departments.department_id']),
        sa.ForeignKeyConstraint(['created_by_id_fk'], ['users.user_id']),
        sa.UniqueConstraint('slug'),
    )
    op.create_table(
        'clos',
        sa.Column('clo_id', sa.Integer(), primary_key=True),
        sa.Column('course_id_fk', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('statement', sa.Text(), nullable=False),
        sa.Column('bloom_level', sa.String(length=32), nullable=False),
        sa.Column('attainment_threshold', sa.Float(), nullable=True),
        sa.Column('order', sa.Integer(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_by_id_fk', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['course_id_fk'], ['courses.course_id']),
        sa.ForeignKeyConstraint(['created_by_id_fk'], ['users.user_id']),
        sa.UniqueConstraint('course_id_fk', 'code', name='uq_clo_course_code'),
    )
    op.create_table(
        'pos',
        sa.Column('po_id', sa.Integer(), primary_key=True),
        sa.Column('program_id_fk', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('statement', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['program_id_fk'], ['programs.program_id']),
        sa.UniqueConstraint('program_id_fk', 'code', name='uq_po_program_code'),
    )
    op.create_table(
        'psos',
        sa.Column('pso_id', sa.Integer(), primary_key=True),
        sa.Column('program_id_fk', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('statement', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['program_id_fk'], ['programs.program_id']),
        sa.UniqueConstraint('program_id_fk', 'code', name='uq_pso_program_code'),
    )
    op.create_table(
        'clo_po_mappings',
        sa.Column('mapping_id', sa.Integer(), primary_key=True),
        sa.Column('clo_id_fk', sa.Integer(), nullable=False),
        sa.Column('po_id_fk', sa.Integer(), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['clo_id_fk'], ['clos.clo_id']),
        sa.ForeignKeyConstraint(['po_id_fk'], ['pos.po_id']),
        sa.UniqueConstraint('clo_id_fk', 'po_id_fk', name='uq_clo_po'),
    )
    op.create_table(
        'clo_pso_mappings',
        sa.Column('mapping_id', sa.Integer(), primary_key=True),
        sa.Column('clo_id_fk', sa.Integer(), nullable=False),
        sa.Column('pso_id_fk', sa.Integer(), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['clo_id_fk'], ['clos.clo_id']),
        sa.ForeignKeyConstraint(['pso_id_fk'], ['psos.pso_id']),
        sa.UniqueConstraint('clo_id_fk', 'pso_id_fk', name='uq_clo_pso'),
    )
    op.create_table(
        'course_faculty',
        sa.Column('assignment_id', sa.Integer(), primary_key=True),
        sa.Column('course_id_fk', sa.Integer(), nullable=False),
        sa.Column('faculty_id_fk', sa.Integer(), nullable=False),
        sa.Column('semester', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('teaching_methodology', sa.String(length=255), nullable=True),
        sa.Column('assessment_mode', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['course_id_fk'], ['courses.course_id']),
        sa.ForeignKeyConstraint(['faculty_id_fk'], ['faculty.faculty_id']),
        sa.UniqueConstraint('course_id_fk', 'faculty_id_fk', 'semester', 'year', name='uq_course_faculty_term'),
    )
    op.create_table(
        'student_course_enrollments',
        sa.Column('enrollment_id', sa.Integer(), primary_key=True),
        sa.Column('student_id_fk', sa.Integer(), nullable=False),
        sa.Column('course_id_fk', sa.Integer(), nullable=False),
        sa.Column('semester', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['student_id_fk'], ['students.student_id']),
        sa.ForeignKeyConstraint(['course_id_fk'], ['courses.course_id']),
        sa.UniqueConstraint('student_id_fk', 'course_id_fk', 'semester', 'year', name='uq_enrollment_term'),
    )
    op.create_table(
        'assessments',
        sa.Column('assessment_id', sa.Integer(), primary_key=True),
        sa.Column('course_id_fk', sa.Integer(), nullable=False),
        sa.Column('faculty_id_fk', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('max_marks', sa.Float(), nullable=False),
        sa.Column('weightage', sa.Float(), nullable=True),
        sa.Column('type', sa.String(length=32), nullable=True),
        sa.Column('mode', sa.String(length=32), nullable=True),
        sa.Column('sub_type', sa.String(length=32), nullable=True),
        sa.Column('semester', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('scheduled_date', sa.DateTime(), nullable=True),
        sa.Column('submission_deadline', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('is_marks_finalized', sa.Boolean(), nullable=True),
        sa.Column('marks_finalized_at', sa.DateTime(), nullable=True),
        sa.Column('marks_finalized_by_id_fk', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['course_id_fk'], ['courses.course_id']),
        sa.ForeignKeyConstraint(['faculty_id_fk'], ['faculty.faculty_id']),
        sa.ForeignKeyConstraint(['marks_finalized_by_id_fk'], ['faculty.faculty_id']),
    )
    op.create_index('ix_assessments_course_term', 'assessments', ['course_id_fk', 'semester', 'year'])
    op.create_table(
        'assessment_clos',
        sa.Column('assessment_clo_id', sa.Integer(), primary_key=True),
        sa.Column('assessment_id_fk', sa.Integer(), nullable=False),
        sa.Column('clo_id_fk', sa.Integer(), nullable=False),
        sa.Column('marks_allocated', sa.Float(), nullable=False),
        sa.Column('weightage', sa.Float(), nullable=True),
        sa.Column('bloom_level', sa.String(length=32), nullable=True),
        sa.ForeignKeyConstraint(['assessment_id_fk'], ['assessments.assessment_id']),
        sa.ForeignKeyConstraint(['clo_id_fk'], ['clos.clo_id']),
        sa.UniqueConstraint('assessment_id_fk', 'clo_id_fk', name='uq_assessment_clo'),
    )
    op.create_table(
        'marks',
        sa.Column('mark_id', sa.Integer(), primary_key=True),
        sa.Column('student_id_fk', sa.Integer(), nullable=False),
        sa.Column('assessment_id_fk', sa.Integer(), nullable=False),
        sa.Column('clo_id_fk', sa.Integer(), nullable=False),
        sa.Column('marks_obtained', sa.Float(), nullable=False),
        sa.Column('entered_by_id_fk', sa.Integer(), nullable=True),
        sa.Column('entered_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['student_id_fk'], ['students.student_id']),
        sa.ForeignKeyConstraint(['assessment_id_fk'], ['assessments.assessment_id']),
        sa.ForeignKeyConstraint(['clo_id_fk'], ['clos.clo_id']),
        sa.ForeignKeyConstraint(['entered_by_id_fk'], ['users.user_id']),
        sa.UniqueConstraint('student_id_fk', 'assessment_id_fk', 'clo_id_fk', name='uq_mark_student_assessment_clo'),
    )


def downgrade():
    op.drop_table('marks')
    op.drop_table('assessment_clos')
    op.drop_index('ix_assessments_course_term', table_name='assessments')
    op.drop_table('assessments')
    op.drop_table('student_course_enrollments')
    op.drop_table('course_faculty')
    op.drop_table('clo_pso_mappings')
    op.drop_table('clo_po_mappings')
    op.drop_table('psos')
    op.drop_table('pos')
    op.drop_table('clos')
    op.drop_table('courses')
    op.drop_table('students')
    op.drop_table('faculty')
    with op.batch_alter_table('users') as batch_op:
        batch_op.drop_constraint('fk_users_department', type_='foreignkey')
    op.drop_table('departments')
    op.drop_table('users')
    op.drop_table('programs')
