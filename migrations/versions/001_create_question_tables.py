"""Create question lifecycle tables

Revision ID: create_question_tables
Revises:
Create Date: 2026-10-18

questions: one row per submitted question; cancelled rows are kept.
analysis_results: append-only, 1:1 with a ready question.
pillar_profiles: one weight vector per user.
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = 'create_question_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'questions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('text', sa.Text, nullable=False),
        sa.Column('source', sa.String(20), nullable=False),
        sa.Column('status', sa.String(32), nullable=False, server_default='queued'),
        sa.Column('intent', postgresql.JSONB, nullable=True),
        sa.Column('clarifying_questions', postgresql.JSONB, nullable=True),
        sa.Column('clarification_finalized_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('analysis_brief', postgresql.JSONB, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint(
            "status IN ('queued', 'waiting-for-answers', 'ready', 'cancelled')",
            name='ck_questions_status',
        ),
        sa.CheckConstraint("source IN ('web', 'slack')", name='ck_questions_source'),
    )
    op.create_index('ix_questions_user_id', 'questions', ['user_id'])
    op.create_index('idx_questions_user_status', 'questions', ['user_id', 'status'])
    op.create_index('idx_questions_user_created', 'questions', ['user_id', 'created_at'])

    op.create_table(
        'analysis_results',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column(
            'question_id',
            sa.String(36),
            sa.ForeignKey('questions.id', ondelete='CASCADE'),
            nullable=False,
            unique=True,
        ),
        sa.Column('payload', postgresql.JSONB, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )

    op.create_table(
        'pillar_profiles',
        sa.Column('user_id', sa.String(64), primary_key=True),
        sa.Column('weights', postgresql.JSONB, nullable=False),
        sa.Column('update_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )


def downgrade():
    op.drop_table('pillar_profiles')
    op.drop_table('analysis_results')
    op.drop_index('idx_questions_user_created', table_name='questions')
    op.drop_index('idx_questions_user_status', table_name='questions')
    op.drop_index('ix_questions_user_id', table_name='questions')
    op.drop_table('questions')
