"""Add context tracking and learning pattern tables

Revision ID: context_001
Revises:
Create Date: 2026-10-18

Adds tables for the learning layer:
- context_events: Append-only log of tracked user actions
- learning_patterns: Per-user, per-scope learned preferences
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'context_001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Create context_events table
    op.create_table('context_events',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('project_id', sa.String(length=36), nullable=False),
        sa.Column('deck_id', sa.String(length=36), nullable=True),
        sa.Column('slide_id', sa.String(length=36), nullable=True),
        sa.Column('event_type', sa.String(length=50), nullable=False),
        sa.Column('content', sa.JSON(), nullable=False),
        sa.Column('learning_scope', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "event_type IN ('user_input', 'ai_generation', 'user_edit', 'feedback', 'chatbot_interaction')",
            name='ck_context_event_type'
        ),
        sa.CheckConstraint("learning_scope IN ('deck', 'project', 'global')", name='ck_context_event_scope'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_context_event_user_created', 'context_events', ['user_id', 'created_at'], unique=False)
    op.create_index('idx_context_event_deck_created', 'context_events', ['deck_id', 'created_at'], unique=False)
    op.create_index('idx_context_event_project_created', 'context_events', ['project_id', 'created_at'], unique=False)
    op.create_index(op.f('ix_context_events_user_id'), 'context_events', ['user_id'], unique=False)
    op.create_index(op.f('ix_context_events_project_id'), 'context_events', ['project_id'], unique=False)
    op.create_index(op.f('ix_context_events_deck_id'), 'context_events', ['deck_id'], unique=False)
    op.create_index(op.f('ix_context_events_created_at'), 'context_events', ['created_at'], unique=False)

    # Create learning_patterns table
    op.create_table('learning_patterns',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('scope_type', sa.String(length=20), nullable=False),
        sa.Column('scope_id', sa.String(length=36), nullable=True),
        sa.Column('pattern_type', sa.String(length=50), nullable=False),
        sa.Column('pattern_data', sa.JSON(), nullable=False),
        sa.Column('confidence_score', sa.Float(), nullable=False),
        sa.Column('last_reinforced', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('user_id', 'scope_type', 'scope_id', 'pattern_type', name='uq_learning_pattern_scope'),
        sa.CheckConstraint("scope_type IN ('deck', 'project', 'global')", name='ck_learning_pattern_scope'),
        sa.CheckConstraint(
            "pattern_type IN ('content_preference', 'style_preference', 'correction_pattern')",
            name='ck_learning_pattern_type'
        ),
        sa.CheckConstraint('confidence_score >= 0.0 AND confidence_score <= 1.0', name='ck_learning_pattern_confidence'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_learning_pattern_user_scope', 'learning_patterns', ['user_id', 'scope_type', 'scope_id'], unique=False)
    op.create_index(op.f('ix_learning_patterns_user_id'), 'learning_patterns', ['user_id'], unique=False)
    op.create_index(op.f('ix_learning_patterns_pattern_type'), 'learning_patterns', ['pattern_type'], unique=False)
    op.create_index(op.f('ix_learning_patterns_confidence_score'), 'learning_patterns', ['confidence_score'], unique=False)


def downgrade():
    # Drop learning_patterns table
    op.drop_index(op.f('ix_learning_patterns_confidence_score'), table_name='learning_patterns')
    op.drop_index(op.f('ix_learning_patterns_pattern_type'), table_name='learning_patterns')
    op.drop_index(op.f('ix_learning_patterns_user_id'), table_name='learning_patterns')
    op.drop_index('idx_learning_pattern_user_scope', table_name='learning_patterns')
    op.drop_table('learning_patterns')

    # Drop context_events table
    op.drop_index(op.f('ix_context_events_created_at'), table_name='context_events')
    op.drop_index(op.f('ix_context_events_deck_id'), table_name='context_events')
    op.drop_index(op.f('ix_context_events_project_id'), table_name='context_events')
    op.drop_index(op.f('ix_context_events_user_id'), table_name='context_events')
    op.drop_index('idx_context_event_project_created', table_name='context_events')
    op.drop_index('idx_context_event_deck_created', table_name='context_events')
    op.drop_index('idx_context_event_user_created', table_name='context_events')
    op.drop_table('context_events')
