"""replace promo_codes.discount (percent) with discount_kind/discount_value

Revision ID: 0002_typed_promo_discount
Revises: 0001_initial_schema
Create Date: 2026-10-19 00:00:00.000001
"""
from alembic import op
import sqlalchemy as sa

revision = '0002_typed_promo_discount'
down_revision = '0001_initial_schema'
branch_labels = None
depends_on = None


def upgrade():
    op.add_column('promo_codes', sa.Column('discount_kind', sa.String(length=16), nullable=False, server_default='percent'))
    op.add_column('promo_codes', sa.Column('discount_value', sa.Integer(), nullable=True))
    # every existing code was a percentage
    op.execute("UPDATE promo_codes SET discount_value = discount")
    op.alter_column('promo_codes', 'discount_value', nullable=False)
    op.create_check_constraint('ck_promo_codes_value_nonneg', 'promo_codes', 'discount_value >= 0')
    op.drop_column('promo_codes', 'discount')


def downgrade():
    op.add_column('promo_codes', sa.Column('discount', sa.Integer(), nullable=True))
    # flat-amount codes have no percent equivalent
    op.execute("DELETE FROM promo_codes WHERE discount_kind <> 'percent'")
    op.execute("UPDATE promo_codes SET discount = discount_value")
    op.alter_column('promo_codes', 'discount', nullable=False)
    op.drop_constraint('ck_promo_codes_value_nonneg', 'promo_codes', type_='check')
    op.drop_column('promo_codes', 'discount_value')
    op.drop_column('promo_codes', 'discount_kind')
