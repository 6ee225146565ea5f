"""create_ledger_tables

Revision ID: 0001_create_ledger_tables
Revises:
Create Date: 2026-10-19 08:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_create_ledger_tables'
down_revision = None
branch_labels = None
depends_on = None

TRANSACTION_TYPES = ('Income', 'Needs', 'Wants', 'Savings')


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('hashed_password', sa.String(length=1024), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_superuser', sa.Boolean(), nullable=False),
        sa.Column('is_verified', sa.Boolean(), nullable=False),
        sa.Column('full_name', sa.String(), nullable=True),
        sa.Column('preferred_currency', sa.String(length=3), nullable=False, server_default='INR'),
        sa.Column('budget_needs_percentage', sa.Numeric(5, 2), nullable=False, server_default='50'),
        sa.Column('budget_wants_percentage', sa.Numeric(5, 2), nullable=False, server_default='30'),
        sa.Column('budget_savings_percentage', sa.Numeric(5, 2), nullable=False, server_default='20'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'categories',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('type', sa.Enum(*TRANSACTION_TYPES, name='category_type'), nullable=False),
        sa.Column('icon', sa.String(length=50), nullable=True),
        sa.Column('color', sa.String(length=20), nullable=True),
        sa.Column('is_custom', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'transactions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('category_id', sa.Uuid(), sa.ForeignKey('categories.id', ondelete='SET NULL'), nullable=True),
        sa.Column('transaction_type', sa.Enum(*TRANSACTION_TYPES, name='transaction_type'), nullable=False),
        sa.Column('recipient_name', sa.String(length=255), nullable=True),
        sa.Column(
            'recipient_kind',
            sa.Enum('contact', 'upi', 'bank', 'merchant', name='recipient_kind'),
            nullable=True,
        ),
        sa.Column('recipient_details', sa.String(length=255), nullable=True),
        sa.Column('recipient_frequency', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('transaction_date', sa.DateTime(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column(
            'source',
            sa.Enum('Manual', 'SMS', 'Email', 'Import', 'Distribution', name='transaction_source'),
            nullable=False,
        ),
        sa.Column(
            'status',
            sa.Enum('pending', 'categorized', 'verified', name='transaction_status'),
            nullable=False,
        ),
        sa.Column('tag', sa.String(length=100), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('attachments', sa.JSON(), nullable=False),
        sa.Column(
            'parent_transaction_id',
            sa.Uuid(),
            sa.ForeignKey('transactions.id', ondelete='CASCADE'),
            nullable=True,
        ),
        sa.Column('is_distribution', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_editable', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('parent_transaction_id', 'transaction_type', name='uq_transactions_parent_type'),
    )
    op.create_index('ix_transactions_user_date', 'transactions', ['user_id', 'transaction_date'])
    op.create_index('ix_transactions_user_type', 'transactions', ['user_id', 'transaction_type'])
    op.create_index('ix_transactions_user_category', 'transactions', ['user_id', 'category_id'])
    op.create_index('ix_transactions_user_recipient', 'transactions', ['user_id', 'recipient_name'])


def downgrade() -> None:
    op.drop_index('ix_transactions_user_recipient', table_name='transactions')
    op.drop_index('ix_transactions_user_category', table_name='transactions')
    op.drop_index('ix_transactions_user_type', table_name='transactions')
    op.drop_index('ix_transactions_user_date', table_name='transactions')
    op.drop_table('transactions')
    op.drop_table('categories')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
    for enum_name in ('transaction_status', 'transaction_source', 'recipient_kind', 'transaction_type', 'category_type'):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
