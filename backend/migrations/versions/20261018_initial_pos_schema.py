"""Initial POS schema: catalog, appointments, transactions, cash register

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18

This migration adds:
1. Product and Service catalog (read by the POS engine; products carry stock)
2. Appointment payment face
3. Transactions (sales + refunds) with lines, payment legs and refund events
4. Cash register sessions (one open per business) and cash movements
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. CATALOG
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('stock', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_products_business_id'), ['business_id'], unique=False)
        batch_op.create_index('ix_products_business_status', ['business_id', 'status'], unique=False)

    op.create_table('services',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('services', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_services_business_id'), ['business_id'], unique=False)
        batch_op.create_index('ix_services_business_status', ['business_id', 'status'], unique=False)

    # ==========================================================================
    # 2. APPOINTMENTS (payment face only)
    # ==========================================================================
    op.create_table('appointments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_amount', sa.Float(), nullable=True),
        sa.Column('transaction_id', sa.Integer(), nullable=True),
        sa.Column('payment_notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('appointments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_appointments_business_id'), ['business_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_appointments_payment_status'), ['payment_status'], unique=False)

    # ==========================================================================
    # 3. TRANSACTIONS
    # ==========================================================================
    op.create_table('transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('source', sa.String(length=16), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('appointment_id', sa.Integer(), nullable=True),
        sa.Column('related_transaction_id', sa.Integer(), nullable=True),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('client_name', sa.String(length=128), nullable=True),
        sa.Column('client_phone', sa.String(length=32), nullable=True),
        sa.Column('client_email', sa.String(length=255), nullable=True),
        sa.Column('subtotal', sa.Float(), nullable=False),
        sa.Column('global_discount_percent', sa.Float(), nullable=False),
        sa.Column('global_discount_amount', sa.Float(), nullable=False),
        sa.Column('tip', sa.Float(), nullable=False),
        sa.Column('final_total', sa.Float(), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=True),
        sa.Column('gateway_payment_id', sa.String(length=128), nullable=True),
        sa.Column('total_refunded', sa.Float(), nullable=False, server_default='0'),
        sa.Column('refund_method', sa.String(length=16), nullable=True),
        sa.Column('refund_reason', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('idempotency_key', sa.String(length=64), nullable=True),
        sa.Column('processed_by', sa.Integer(), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id'], ),
        sa.ForeignKeyConstraint(['related_transaction_id'], ['transactions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('business_id', 'kind', 'idempotency_key', name='uq_transactions_idempotency'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('transactions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_transactions_business_id'), ['business_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_appointment_id'), ['appointment_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_related_transaction_id'), ['related_transaction_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_client_id'), ['client_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_payment_method'), ['payment_method'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_refund_method'), ['refund_method'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_processed_at'), ['processed_at'], unique=False)
        batch_op.create_index('ix_transactions_business_kind_processed', ['business_id', 'kind', 'processed_at'], unique=False)
        batch_op.create_index('ix_transactions_business_status', ['business_id', 'status'], unique=False)

    op.create_table('transaction_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('staff_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Float(), nullable=False),
        sa.Column('discount_percent', sa.Float(), nullable=False),
        sa.Column('total', sa.Float(), nullable=False),
        sa.Column('refunded_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sale_line_index', sa.Integer(), nullable=True),
        sa.CheckConstraint('refunded_quantity <= quantity', name='ck_transaction_lines_refund_bound'),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_id', 'position', name='uq_transaction_lines_position'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('transaction_lines', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_transaction_lines_transaction_id'), ['transaction_id'], unique=False)

    op.create_table('transaction_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('method', sa.String(length=16), nullable=False),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('reference', sa.String(length=128), nullable=True),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('transaction_payments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_transaction_payments_transaction_id'), ['transaction_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_transaction_payments_method'), ['method'], unique=False)

    op.create_table('refund_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('refund_transaction_id', sa.Integer(), nullable=True),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('method', sa.String(length=16), nullable=False),
        sa.Column('processed_by', sa.Integer(), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['sale_id'], ['transactions.id'], ),
        sa.ForeignKeyConstraint(['refund_transaction_id'], ['transactions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('refund_events', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_refund_events_sale_id'), ['sale_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_refund_events_refund_transaction_id'), ['refund_transaction_id'], unique=False)

    # ==========================================================================
    # 4. CASH REGISTER
    # ==========================================================================
    op.create_table('cash_register_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('opened_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('opened_by', sa.Integer(), nullable=False),
        sa.Column('initial_amount', sa.Float(), nullable=False),
        sa.Column('opening_notes', sa.Text(), nullable=True),
        sa.Column('last_movement_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_by', sa.Integer(), nullable=True),
        sa.Column('final_amount', sa.Float(), nullable=True),
        sa.Column('expected_amount', sa.Float(), nullable=True),
        sa.Column('difference', sa.Float(), nullable=True),
        sa.Column('closing_notes', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('cash_register_sessions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_cash_register_sessions_business_id'), ['business_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_cash_register_sessions_status'), ['status'], unique=False)
        batch_op.create_index('ix_cash_register_sessions_business_closed', ['business_id', 'closed_at'], unique=False)
        batch_op.create_index(
            'uq_cash_register_sessions_one_open',
            ['business_id'],
            unique=True,
            sqlite_where=sa.text("status = 'open'"),
            postgresql_where=sa.text("status = 'open'"),
        )

    op.create_table('cash_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=8), nullable=False),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('reason', sa.String(length=200), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('recorded_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('recorded_by', sa.Integer(), nullable=False),
        sa.CheckConstraint('amount > 0', name='ck_cash_movements_amount_positive'),
        sa.ForeignKeyConstraint(['session_id'], ['cash_register_sessions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('cash_movements', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_cash_movements_session_id'), ['session_id'], unique=False)


def downgrade():
    op.drop_table('cash_movements')
    with op.batch_alter_table('cash_register_sessions', schema=None) as batch_op:
        batch_op.drop_index('uq_cash_register_sessions_one_open')
    op.drop_table('cash_register_sessions')
    op.drop_table('refund_events')
    op.drop_table('transaction_payments')
    op.drop_table('transaction_lines')
    op.drop_table('transactions')
    op.drop_table('appointments')
    op.drop_table('services')
    op.drop_table('products')
