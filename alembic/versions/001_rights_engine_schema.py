"""Rights engine schema

Revision ID: 001_rights_engine_schema
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_rights_engine_schema'
down_revision = None
branch_labels = None
depends_on = None


def _id():
    return sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True)


def _timestamp(name, nullable=False):
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=nullable,
        server_default=None if nullable else sa.func.now(),
    )


def upgrade() -> None:
    """Create jobs, people, applications, relationships, placements and audit tables."""
    op.create_table(
        'jobs',
        _id(),
        sa.Column('company_id', sa.BigInteger(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('fee_percentage', sa.Numeric(5, 2), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='active'),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_jobs_company_id', 'jobs', ['company_id'])
    op.create_index('idx_job_company_status', 'jobs', ['company_id', 'status'])

    op.create_table(
        'candidates',
        _id(),
        sa.Column('user_id', sa.BigInteger(), nullable=True),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_candidates_user_id', 'candidates', ['user_id'])

    op.create_table(
        'recruiters',
        _id(),
        sa.Column('user_id', sa.BigInteger(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='active'),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_recruiters_user_id', 'recruiters', ['user_id'])

    op.create_table(
        'job_pre_screen_questions',
        _id(),
        sa.Column('job_id', sa.BigInteger(), sa.ForeignKey('jobs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('question', sa.Text(), nullable=False),
        sa.Column('is_required', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_job_pre_screen_questions_job_id', 'job_pre_screen_questions', ['job_id'])

    op.create_table(
        'role_assignments',
        _id(),
        sa.Column('job_id', sa.BigInteger(), sa.ForeignKey('jobs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('recruiter_id', sa.BigInteger(), sa.ForeignKey('recruiters.id', ondelete='CASCADE'), nullable=False),
        _timestamp('assigned_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('job_id', 'recruiter_id', name='uq_role_assignment_job_recruiter'),
    )
    op.create_index('ix_role_assignments_job_id', 'role_assignments', ['job_id'])
    op.create_index('ix_role_assignments_recruiter_id', 'role_assignments', ['recruiter_id'])

    op.create_table(
        'applications',
        _id(),
        sa.Column('candidate_id', sa.BigInteger(), sa.ForeignKey('candidates.id'), nullable=False),
        sa.Column('job_id', sa.BigInteger(), sa.ForeignKey('jobs.id'), nullable=False),
        sa.Column('recruiter_id', sa.BigInteger(), sa.ForeignKey('recruiters.id'), nullable=True),
        sa.Column('stage', sa.String(length=50), nullable=False, server_default='draft'),
        sa.Column('accepted_by_company', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('primary_resume_id', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('recruiter_notes', sa.Text(), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        _timestamp('accepted_at', nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_applications_candidate_id', 'applications', ['candidate_id'])
    op.create_index('ix_applications_job_id', 'applications', ['job_id'])
    op.create_index('ix_applications_recruiter_id', 'applications', ['recruiter_id'])
    op.create_index('idx_application_job_stage', 'applications', ['job_id', 'stage'])
    op.create_index('idx_application_recruiter_stage', 'applications', ['recruiter_id', 'stage'])
    op.create_index(
        'uq_application_open_candidate_job',
        'applications',
        ['candidate_id', 'job_id'],
        unique=True,
        postgresql_where=sa.text("stage NOT IN ('rejected', 'withdrawn')"),
        sqlite_where=sa.text("stage NOT IN ('rejected', 'withdrawn')"),
    )

    op.create_table(
        'application_documents',
        _id(),
        sa.Column('application_id', sa.BigInteger(), sa.ForeignKey('applications.id', ondelete='CASCADE'), nullable=False),
        sa.Column('document_id', sa.String(length=255), nullable=False),
        sa.Column('document_type', sa.String(length=50), nullable=False),
        sa.Column('is_primary', sa.Boolean(), nullable=False, server_default='false'),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('application_id', 'document_id', name='uq_application_document'),
    )
    op.create_index('ix_application_documents_application_id', 'application_documents', ['application_id'])

    op.create_table(
        'application_answers',
        _id(),
        sa.Column('application_id', sa.BigInteger(), sa.ForeignKey('applications.id', ondelete='CASCADE'), nullable=False),
        sa.Column('question_id', sa.BigInteger(), sa.ForeignKey('job_pre_screen_questions.id'), nullable=False),
        sa.Column('answer', sa.Text(), nullable=False),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('application_id', 'question_id', name='uq_application_answer'),
    )
    op.create_index('ix_application_answers_application_id', 'application_answers', ['application_id'])

    op.create_table(
        'application_stage_history',
        _id(),
        sa.Column('application_id', sa.BigInteger(), sa.ForeignKey('applications.id'), nullable=False),
        sa.Column('actor_id', sa.BigInteger(), nullable=True),
        sa.Column('actor_role', sa.String(length=50), nullable=False),
        sa.Column('from_stage', sa.String(length=50), nullable=True),
        sa.Column('to_stage', sa.String(length=50), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_application_stage_history_application_id', 'application_stage_history', ['application_id'])
    op.create_index(
        'idx_stage_history_application_created',
        'application_stage_history',
        ['application_id', 'created_at'],
    )

    op.create_table(
        'recruiter_candidate_relationships',
        _id(),
        sa.Column('recruiter_id', sa.BigInteger(), sa.ForeignKey('recruiters.id'), nullable=False),
        sa.Column('candidate_id', sa.BigInteger(), sa.ForeignKey('candidates.id'), nullable=False),
        sa.Column('job_id', sa.BigInteger(), sa.ForeignKey('jobs.id'), nullable=True),
        sa.Column('scope_key', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='active'),
        sa.Column('relationship_start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('relationship_end_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('consent_given', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('consent_source', sa.String(length=255), nullable=True),
        _timestamp('consent_given_at', nullable=True),
        _timestamp('expired_at', nullable=True),
        _timestamp('terminated_at', nullable=True),
        sa.Column('terminated_by', sa.BigInteger(), nullable=True),
        sa.Column('termination_reason', sa.Text(), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_recruiter_candidate_relationships_recruiter_id', 'recruiter_candidate_relationships', ['recruiter_id'])
    op.create_index('ix_recruiter_candidate_relationships_candidate_id', 'recruiter_candidate_relationships', ['candidate_id'])
    op.create_index('ix_recruiter_candidate_relationships_job_id', 'recruiter_candidate_relationships', ['job_id'])
    op.create_index(
        'uq_relationship_active_scope',
        'recruiter_candidate_relationships',
        ['candidate_id', 'scope_key'],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
        sqlite_where=sa.text("status = 'active'"),
    )
    op.create_index('idx_relationship_candidate_status', 'recruiter_candidate_relationships', ['candidate_id', 'status'])
    op.create_index('idx_relationship_status_end', 'recruiter_candidate_relationships', ['status', 'relationship_end_date'])

    op.create_table(
        'placements',
        _id(),
        sa.Column('application_id', sa.BigInteger(), sa.ForeignKey('applications.id'), nullable=False),
        sa.Column('candidate_id', sa.BigInteger(), sa.ForeignKey('candidates.id'), nullable=False),
        sa.Column('job_id', sa.BigInteger(), sa.ForeignKey('jobs.id'), nullable=False),
        sa.Column('recruiter_id', sa.BigInteger(), sa.ForeignKey('recruiters.id'), nullable=False),
        sa.Column('relationship_id', sa.BigInteger(), sa.ForeignKey('recruiter_candidate_relationships.id'), nullable=True),
        sa.Column('recruiter_tier', sa.String(length=50), nullable=True),
        sa.Column('recruiter_share_percentage', sa.Numeric(5, 2), nullable=False),
        sa.Column('salary', sa.Numeric(14, 2), nullable=False),
        sa.Column('fee_percentage', sa.Numeric(5, 2), nullable=False),
        sa.Column('fee_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('recruiter_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('platform_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('hired_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_by', sa.BigInteger(), nullable=True),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('application_id', name='uq_placements_application_id'),
    )
    op.create_index('ix_placements_candidate_id', 'placements', ['candidate_id'])
    op.create_index('ix_placements_job_id', 'placements', ['job_id'])
    op.create_index('ix_placements_recruiter_id', 'placements', ['recruiter_id'])
    op.create_index('idx_placement_recruiter_hired', 'placements', ['recruiter_id', 'hired_at'])

    op.create_table(
        'audit_logs',
        _id(),
        sa.Column('actor_id', sa.BigInteger(), nullable=True),
        sa.Column('actor_role', sa.String(length=50), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', sa.BigInteger(), nullable=False),
        sa.Column('application_id', sa.BigInteger(), nullable=True),
        sa.Column('changes', sa.JSON(), nullable=True),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_logs_actor_id', 'audit_logs', ['actor_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_application_id', 'audit_logs', ['application_id'])
    op.create_index('idx_audit_entity', 'audit_logs', ['entity_type', 'entity_id'])


def downgrade() -> None:
    """Drop every rights engine table, dependents first."""
    for table in (
        'audit_logs',
        'placements',
        'recruiter_candidate_relationships',
        'application_stage_history',
        'application_answers',
        'application_documents',
        'applications',
        'role_assignments',
        'job_pre_screen_questions',
        'recruiters',
        'candidates',
        'jobs',
    ):
        op.drop_table(table)
