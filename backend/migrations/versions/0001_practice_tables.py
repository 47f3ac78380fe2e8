"""practice tables

Revision ID: 0001
Revises: 0000
Create Date: 2025-01-13 09:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001'
down_revision = '0000'
branch_labels = None
depends_on = None

CHILD_TABLES = (
    'practice_instruction',
    'practice_hint',
    'practice_expected_command',
    'practice_validation_rule',
    'practice_tag',
)


def _audit_columns():
    return [
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
    ]


def _practice_fk():
    return sa.Column('practice_id', sa.String(length=36), sa.ForeignKey('practice.id', ondelete='CASCADE'),
                     nullable=False)


def upgrade():
    op.create_table(
        'practice',
        *_audit_columns(),
        sa.Column('lesson_id', sa.String(length=36), sa.ForeignKey('lesson.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('scenario', sa.String(), nullable=False),
        sa.Column('difficulty', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('estimated_time', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('views', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('completions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('goal_repository_state', sa.JSON(), nullable=True),
    )
    op.create_index('ix_practice_lesson_id', 'practice', ['lesson_id'])
    op.create_index('ix_practice_is_active', 'practice', ['is_active'])
    op.create_index('ix_practice_order', 'practice', ['order'])

    op.create_table(
        'practice_instruction',
        *_audit_columns(),
        _practice_fk(),
        sa.Column('content', sa.String(), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_table(
        'practice_hint',
        *_audit_columns(),
        _practice_fk(),
        sa.Column('content', sa.String(), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_table(
        'practice_expected_command',
        *_audit_columns(),
        _practice_fk(),
        sa.Column('command', sa.String(), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_required', sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_table(
        'practice_validation_rule',
        *_audit_columns(),
        _practice_fk(),
        sa.Column('type', sa.Enum('min_commands', 'required_commands', 'expected_graph_state', 'custom',
                                  name='practice_validation_rule_type', native_enum=False, length=20),
                  nullable=False),
        sa.Column('value', sa.String(), nullable=False),
        sa.Column('message', sa.String(), nullable=True),
        sa.Column('order', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_table(
        'practice_tag',
        *_audit_columns(),
        _practice_fk(),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('color', sa.String(), nullable=True),
    )
    for table in CHILD_TABLES:
        op.create_index(f'ix_{table}_practice_id', table, ['practice_id'])


def downgrade():
    for table in reversed(CHILD_TABLES):
        op.drop_index(f'ix_{table}_practice_id', table_name=table)
        op.drop_table(table)
    op.drop_index('ix_practice_order', table_name='practice')
    op.drop_index('ix_practice_is_active', table_name='practice')
    op.drop_index('ix_practice_lesson_id', table_name='practice')
    op.drop_table('practice')
