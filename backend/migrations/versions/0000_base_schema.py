"""base schema: user, lesson and password sessions

Revision ID: 0000
Revises:
Create Date: 2025-01-06 09:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0000'
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns():
    return [
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
    ]


def upgrade():
    op.create_table(
        'user',
        *_audit_columns(),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('password_hash', sa.String(), nullable=False),
        sa.Column('role', sa.Enum('USER', 'ADMIN', name='user_role', native_enum=False, length=10),
                  nullable=False, server_default='USER'),
    )
    op.create_index('ix_user_email', 'user', ['email'], unique=True)

    op.create_table(
        'lesson',
        *_audit_columns(),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('slug', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('content', sa.String(), nullable=False),
        sa.Column('practice', sa.String(), nullable=True),
        sa.Column('views', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.Enum('DRAFT', 'PUBLISHED', 'ARCHIVED', name='lesson_status', native_enum=False,
                                    length=9),
                  nullable=False, server_default='PUBLISHED'),
    )
    op.create_index('ix_lesson_slug', 'lesson', ['slug'], unique=True)

    op.create_table(
        'session',
        *_audit_columns(),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False),
        sa.Column('refresh_token_hash', sa.String(), nullable=False),
        sa.Column('user_agent', sa.String(), nullable=True),
        sa.Column('ip', sa.String(length=45), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('revoked_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_session_user_id', 'session', ['user_id'])


def downgrade():
    op.drop_index('ix_session_user_id', table_name='session')
    op.drop_table('session')
    op.drop_index('ix_lesson_slug', table_name='lesson')
    op.drop_table('lesson')
    op.drop_index('ix_user_email', table_name='user')
    op.drop_table('user')
