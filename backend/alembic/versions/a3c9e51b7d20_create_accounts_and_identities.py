"""create_accounts_and_identities

Revision ID: a3c9e51b7d20
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a3c9e51b7d20'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'accounts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column(
            'status',
            sa.Enum('UNVERIFIED', 'OPEN', 'CLOSED', name='account_status', native_enum=False),
            nullable=False,
        ),
        sa.Column('password_hash', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    # Closed accounts release their login
    op.create_index(
        'ix_accounts_email',
        'accounts',
        ['email'],
        unique=True,
        postgresql_where=sa.text("status <> 'CLOSED'"),
        sqlite_where=sa.text("status <> 'CLOSED'"),
    )

    op.create_table(
        'account_verification_keys',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('key_hash', sa.String(length=64), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('key_hash'),
    )
    op.create_index(
        'ix_account_verification_keys_account_id', 'account_verification_keys', ['account_id']
    )

    op.create_table(
        'account_identities',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=True),
        sa.Column('provider', sa.String(length=100), nullable=False),
        sa.Column('uid', sa.String(length=255), nullable=False),
        sa.Column('info', sa.Text(), nullable=True),
        sa.Column('credentials', sa.Text(), nullable=True),
        sa.Column('extra', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('provider', 'uid', name='uq_account_identities_provider_uid'),
    )
    op.create_index('ix_account_identities_account_id', 'account_identities', ['account_id'])


def downgrade() -> None:
    op.drop_index('ix_account_identities_account_id', table_name='account_identities')
    op.drop_table('account_identities')
    op.drop_index(
        'ix_account_verification_keys_account_id', table_name='account_verification_keys'
    )
    op.drop_table('account_verification_keys')
    op.drop_index('ix_accounts_email', table_name='accounts')
    op.drop_table('accounts')
