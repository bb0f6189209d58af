"""company settings

Revision ID: m3c5d7e9f1a2
Revises: k1a0b2c3d4e5
Create Date: 2026-10-19 12:00:00.000000

Adds company_settings: the single editable row of issuer data (name, NIT,
DIAN resolution, address, phone, city) read by invoices and the
electronic-invoice XML. Blank columns fall back to the app config.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'm3c5d7e9f1a2'
down_revision = 'k1a0b2c3d4e5'
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # Company settings
    # ============================================================================
    op.create_table(
        'company_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=True),
        sa.Column('nit', sa.String(length=32), nullable=True),
        sa.Column('resolution_number', sa.String(length=64), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=64), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('updated_by_user_id', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('id = 1', name='ck_company_settings_single_row'),
        sa.ForeignKeyConstraint(['updated_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )


def downgrade():
    op.drop_table('company_settings')
