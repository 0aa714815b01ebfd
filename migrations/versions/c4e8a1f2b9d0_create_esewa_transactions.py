"""create esewa_transactions table

Revision ID: c4e8a1f2b9d0
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'c4e8a1f2b9d0'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('esewa_transactions',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('transaction_uuid', sa.String(length=100), nullable=False),
    sa.Column('product_code', sa.String(length=50), nullable=False),
    sa.Column('amount', sa.Numeric(precision=10, scale=2), nullable=False),
    sa.Column('tax_amount', sa.Numeric(precision=10, scale=2), nullable=True),
    sa.Column('total_amount', sa.Numeric(precision=10, scale=2), nullable=False),
    sa.Column('reference', sa.String(length=100), nullable=True),
    sa.Column('transaction_code', sa.String(length=100), nullable=True),
    sa.Column('status', sa.String(length=50), nullable=True),
    sa.Column('result_desc', sa.String(length=500), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('completed_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('esewa_transactions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_esewa_transactions_transaction_uuid'), ['transaction_uuid'], unique=True)


def downgrade():
    with op.batch_alter_table('esewa_transactions', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_esewa_transactions_transaction_uuid'))

    op.drop_table('esewa_transactions')
