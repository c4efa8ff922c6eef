"""initial cylinder schema

Revision ID: c1d2e3f4a5b6
Revises:
Create Date: 2026-10-17 00:00:00.000000

Creates:
- cylinders: one row per physical LPG cylinder, with its single current status
- cylinder_movements: append-only audit trail of status transitions
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'c1d2e3f4a5b6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # cylinders: inventory units
    # ============================================================================
    op.create_table(
        'cylinders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('identifier', sa.String(length=80), nullable=False),
        sa.Column('qr_code', sa.String(length=76), nullable=False),
        sa.Column('weight_kg', sa.Numeric(precision=6, scale=2), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False),
        sa.Column('supplier', sa.String(length=120), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('available', 'sold', 'maintenance', 'damaged', 'missing')",
            name='ck_cylinders_status',
        ),
        sa.CheckConstraint('unit_cost_cents >= 0', name='ck_cylinders_unit_cost'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('identifier'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_cylinders_qr_code', 'cylinders', ['qr_code'])
    op.create_index('ix_cylinders_status', 'cylinders', ['status'])
    op.create_index('ix_cylinders_status_weight', 'cylinders', ['status', 'weight_kg'])

    # ============================================================================
    # cylinder_movements: append-only status audit trail
    # ============================================================================
    op.create_table(
        'cylinder_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('cylinder_id', sa.Integer(), nullable=False),
        sa.Column('product_identifier', sa.String(length=80), nullable=False),
        sa.Column('from_status', sa.String(length=16), nullable=False),
        sa.Column('to_status', sa.String(length=16), nullable=False),
        sa.Column('movement_type', sa.String(length=32), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('reference_number', sa.String(length=64), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('from_status <> to_status', name='ck_movements_not_noop'),
        sa.ForeignKeyConstraint(['cylinder_id'], ['cylinders.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_cylinder_movements_cylinder_id', 'cylinder_movements', ['cylinder_id'])
    op.create_index('ix_cylinder_movements_product_identifier', 'cylinder_movements', ['product_identifier'])
    op.create_index('ix_cylinder_movements_to_status', 'cylinder_movements', ['to_status'])
    op.create_index('ix_cylinder_movements_movement_type', 'cylinder_movements', ['movement_type'])
    op.create_index('ix_cylinder_movements_occurred_at', 'cylinder_movements', ['occurred_at'])
    op.create_index('ix_movements_cylinder_occurred', 'cylinder_movements', ['cylinder_id', 'occurred_at'])


def downgrade():
    op.drop_table('cylinder_movements')
    op.drop_table('cylinders')
