"""oauth: optional passwords, profile columns and oauth_provider

Revision ID: 0002
Revises: 0001
Create Date: 2025-02-03 09:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0002'
down_revision = '0001'
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table('user') as batch_op:
        batch_op.alter_column('password_hash', existing_type=sa.String(), nullable=True)
        batch_op.add_column(sa.Column('first_name', sa.String(), nullable=True))
        batch_op.add_column(sa.Column('last_name', sa.String(), nullable=True))
        batch_op.add_column(sa.Column('avatar', sa.String(), nullable=True))
        batch_op.add_column(sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()))

    op.create_table(
        'oauth_provider',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('provider', sa.Enum('GOOGLE', 'GITHUB', 'FACEBOOK', name='oauth_provider_name',
                                      native_enum=False, length=20),
                  nullable=False),
        sa.Column('provider_id', sa.String(), nullable=False),
        sa.Column('provider_email', sa.String(), nullable=False),
        sa.Column('provider_name', sa.String(), nullable=True),
        sa.Column('provider_avatar', sa.String(), nullable=True),
        sa.Column('access_token', sa.String(), nullable=True),
        sa.Column('refresh_token', sa.String(), nullable=True),
        sa.Column('token_expires_at', sa.DateTime(), nullable=True),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False),
    )
    op.create_index('IDX_oauth_provider_provider_provider_id', 'oauth_provider', ['provider', 'provider_id'],
                    unique=True)


def downgrade():
    op.drop_index('IDX_oauth_provider_provider_provider_id', table_name='oauth_provider')
    op.drop_table('oauth_provider')

    with op.batch_alter_table('user') as batch_op:
        batch_op.drop_column('is_active')
        batch_op.drop_column('avatar')
        batch_op.drop_column('last_name')
        batch_op.drop_column('first_name')
        batch_op.alter_column('password_hash', existing_type=sa.String(), nullable=False)
