"""lesson_view table

Revision ID: 0005
Revises: 0004
Create Date: 2025-03-10 09:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0005'
down_revision = '0004'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'lesson_view',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False),
        sa.Column('lesson_id', sa.String(length=36), sa.ForeignKey('lesson.id', ondelete='CASCADE'), nullable=False),
        sa.Column('viewed_at', sa.DateTime(), nullable=False),
        sa.Column('view_count', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('last_viewed_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('user_id', 'lesson_id', name='UQ_lesson_view_user_lesson'),
    )
    op.create_index('ix_lesson_view_user_id', 'lesson_view', ['user_id'])
    op.create_index('ix_lesson_view_lesson_id', 'lesson_view', ['lesson_id'])
    op.create_index('ix_lesson_view_viewed_at', 'lesson_view', ['viewed_at'])


def downgrade():
    op.drop_index('ix_lesson_view_viewed_at', table_name='lesson_view')
    op.drop_index('ix_lesson_view_lesson_id', table_name='lesson_view')
    op.drop_index('ix_lesson_view_user_id', table_name='lesson_view')
    op.drop_table('lesson_view')
