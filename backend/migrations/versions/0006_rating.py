"""rating table

Revision ID: 0006
Revises: 0005
Create Date: 2025-03-17 09:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0006'
down_revision = '0005'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'rating',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False),
        sa.Column('lesson_id', sa.String(length=36), sa.ForeignKey('lesson.id', ondelete='CASCADE'), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('comment', sa.String(), nullable=True),
        sa.UniqueConstraint('user_id', 'lesson_id', name='UQ_rating_user_lesson'),
    )
    op.create_index('ix_rating_user_id', 'rating', ['user_id'])
    op.create_index('ix_rating_lesson_id', 'rating', ['lesson_id'])
    op.create_index('ix_rating_rating', 'rating', ['rating'])


def downgrade():
    op.drop_index('ix_rating_rating', table_name='rating')
    op.drop_index('ix_rating_lesson_id', table_name='rating')
    op.drop_index('ix_rating_user_id', table_name='rating')
    op.drop_table('rating')
