"""session oauth columns; provider tokens move off oauth_provider

Revision ID: 0003
Revises: 0002
Create Date: 2025-02-10 09:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0003'
down_revision = '0002'
branch_labels = None
depends_on = None

SESSION_COLUMNS = (
    'session_type',
    'oauth_provider',
    'oauth_provider_id',
    'oauth_access_token_hash',
    'oauth_refresh_token_hash',
    'oauth_token_expires_at',
)


def upgrade():
    with op.batch_alter_table('session') as batch_op:
        batch_op.add_column(sa.Column(
            'session_type',
            sa.Enum('PASSWORD', 'OAUTH', name='session_type', native_enum=False, length=8),
            nullable=False,
            server_default='PASSWORD',
        ))
        batch_op.add_column(sa.Column(
            'oauth_provider',
            sa.Enum('GOOGLE', 'GITHUB', 'FACEBOOK', name='session_oauth_provider', native_enum=False, length=8),
            nullable=True,
        ))
        batch_op.add_column(sa.Column('oauth_provider_id', sa.String(), nullable=True))
        batch_op.add_column(sa.Column('oauth_access_token_hash', sa.String(), nullable=True))
        batch_op.add_column(sa.Column('oauth_refresh_token_hash', sa.String(), nullable=True))
        batch_op.add_column(sa.Column('oauth_token_expires_at', sa.DateTime(), nullable=True))

    with op.batch_alter_table('oauth_provider') as batch_op:
        batch_op.drop_column('access_token')
        batch_op.drop_column('refresh_token')
        batch_op.drop_column('token_expires_at')


def downgrade():
    with op.batch_alter_table('oauth_provider') as batch_op:
        batch_op.add_column(sa.Column('access_token', sa.String(), nullable=True))
        batch_op.add_column(sa.Column('refresh_token', sa.String(), nullable=True))
        batch_op.add_column(sa.Column('token_expires_at', sa.DateTime(), nullable=True))

    with op.batch_alter_table('session') as batch_op:
        for name in reversed(SESSION_COLUMNS):
            batch_op.drop_column(name)
