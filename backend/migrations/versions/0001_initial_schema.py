"""initial schema: access control, clients, tickets, time tracking, billing

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None

MONEY = sa.Numeric(10, 2)
RATE = sa.Numeric(5, 2)


def upgrade():
    # --- Access control ---
    op.create_table('permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=64), nullable=False, unique=True),
        sa.Column('service', sa.String(length=32), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
    )
    op.create_index('ix_permissions_code', 'permissions', ['code'])
    op.create_index('ix_permissions_service', 'permissions', ['service'])

    op.create_table('roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=64), nullable=False, unique=True),
        sa.Column('is_system', sa.Boolean(), nullable=True, server_default=sa.text('0')),
    )

    op.create_table('role_permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('permission_id', sa.Integer(), sa.ForeignKey('permissions.id', ondelete='CASCADE'), nullable=False),
        sa.UniqueConstraint('role_id', 'permission_id', name='uq_role_permission'),
    )

    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=128), nullable=True),
        sa.Column('first_name', sa.String(length=64), nullable=True),
        sa.Column('last_name', sa.String(length=64), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default=sa.text('1')),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    op.create_table('user_roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), nullable=False),
        sa.UniqueConstraint('user_id', 'role_id', name='uq_user_role'),
    )

    # --- Clients & devices ---
    op.create_table('clients',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=128), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_clients_name', 'clients', ['name'])

    op.create_table('devices',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('client_id', sa.Integer(), sa.ForeignKey('clients.id'), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('brand', sa.String(length=64), nullable=False),
        sa.Column('model', sa.String(length=64), nullable=False),
        sa.Column('serial_number', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_devices_client_id', 'devices', ['client_id'])

    # --- Tickets & ticket children ---
    op.create_table('tickets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ticket_number', sa.String(length=32), nullable=False),
        sa.Column('client_id', sa.Integer(), sa.ForeignKey('clients.id'), nullable=False),
        sa.Column('device_id', sa.Integer(), sa.ForeignKey('devices.id'), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('priority', sa.String(length=16), nullable=False),
        sa.Column('estimated_cost', MONEY, nullable=True),
        sa.Column('final_cost', MONEY, nullable=True),
        sa.Column('is_paid', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('payment_method', sa.String(length=32), nullable=True),
        sa.Column('payment_date', sa.DateTime(), nullable=True),
        sa.Column('estimated_completion_time', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_tickets_ticket_number', 'tickets', ['ticket_number'], unique=True)
    op.create_index('ix_tickets_client_id', 'tickets', ['client_id'])
    op.create_index('ix_tickets_device_id', 'tickets', ['device_id'])
    op.create_index('ix_tickets_status', 'tickets', ['status'])
    op.create_index('ix_tickets_created_at', 'tickets', ['created_at'])

    op.create_table('activity_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ticket_id', sa.Integer(), sa.ForeignKey('tickets.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_activity_logs_ticket_id', 'activity_logs', ['ticket_id'])
    op.create_index('ix_activity_logs_type', 'activity_logs', ['type'])

    op.create_table('repair_notes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ticket_id', sa.Integer(), sa.ForeignKey('tickets.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('technician_name', sa.String(length=128), nullable=False),
        sa.Column('is_resolved', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('priority', sa.String(length=16), nullable=False),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_repair_notes_ticket_id', 'repair_notes', ['ticket_id'])

    op.create_table('attachments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ticket_id', sa.Integer(), sa.ForeignKey('tickets.id'), nullable=False),
        sa.Column('filename', sa.String(length=255), nullable=False),
        sa.Column('original_name', sa.String(length=255), nullable=False),
        sa.Column('mimetype', sa.String(length=64), nullable=False),
        sa.Column('size', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('uploaded_by', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_attachments_ticket_id', 'attachments', ['ticket_id'])

    op.create_table('parts_orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ticket_id', sa.Integer(), sa.ForeignKey('tickets.id'), nullable=False),
        sa.Column('part_name', sa.String(length=200), nullable=False),
        sa.Column('supplier', sa.String(length=128), nullable=True),
        sa.Column('order_number', sa.String(length=64), nullable=True),
        sa.Column('cost', MONEY, nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('order_date', sa.DateTime(), nullable=False),
        sa.Column('expected_date', sa.DateTime(), nullable=True),
        sa.Column('received_date', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
    )
    op.create_index('ix_parts_orders_ticket_id', 'parts_orders', ['ticket_id'])
    op.create_index('ix_parts_orders_status', 'parts_orders', ['status'])

    op.create_table('reminders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ticket_id', sa.Integer(), sa.ForeignKey('tickets.id'), nullable=True),
        sa.Column('client_id', sa.Integer(), sa.ForeignKey('clients.id'), nullable=True),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('due_date', sa.DateTime(), nullable=False),
        sa.Column('is_completed', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_reminders_ticket_id', 'reminders', ['ticket_id'])
    op.create_index('ix_reminders_client_id', 'reminders', ['client_id'])
    op.create_index('ix_reminders_due_date', 'reminders', ['due_date'])

    op.create_table('time_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ticket_id', sa.Integer(), sa.ForeignKey('tickets.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('technician_name', sa.String(length=128), nullable=False),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=True),
        sa.Column('duration', sa.Integer(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('billable', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('hourly_rate', MONEY, nullable=True),
        sa.Column('labor_cost', MONEY, nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_time_logs_ticket_id', 'time_logs', ['ticket_id'])
    op.create_index('ix_time_logs_user_id', 'time_logs', ['user_id'])
    op.create_index(
        'uq_time_logs_active', 'time_logs', ['ticket_id', 'technician_name'], unique=True,
        sqlite_where=sa.text('end_time IS NULL'), postgresql_where=sa.text('end_time IS NULL'),
    )

    # --- Billing ---
    op.create_table('invoices',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('invoice_number', sa.String(length=32), nullable=False),
        sa.Column('ticket_id', sa.Integer(), sa.ForeignKey('tickets.id'), nullable=False),
        sa.Column('client_id', sa.Integer(), sa.ForeignKey('clients.id'), nullable=False),
        sa.Column('subtotal', MONEY, nullable=False),
        sa.Column('tax_amount', MONEY, nullable=False),
        sa.Column('total', MONEY, nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_invoices_invoice_number', 'invoices', ['invoice_number'], unique=True)
    op.create_index('ix_invoices_ticket_id', 'invoices', ['ticket_id'])
    op.create_index('ix_invoices_client_id', 'invoices', ['client_id'])

    op.create_table('billable_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ticket_id', sa.Integer(), sa.ForeignKey('tickets.id'), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('quantity', MONEY, nullable=False),
        sa.Column('unit_price', MONEY, nullable=False),
        sa.Column('tax_rate', RATE, nullable=False),
        sa.Column('tax_inclusive', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('line_total', MONEY, nullable=False),
        sa.Column('billing_status', sa.String(length=16), nullable=False),
        sa.Column('billed_date', sa.DateTime(), nullable=True),
        sa.Column('invoice_id', sa.Integer(), sa.ForeignKey('invoices.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_billable_items_ticket_id', 'billable_items', ['ticket_id'])
    op.create_index('ix_billable_items_billing_status', 'billable_items', ['billing_status'])
    op.create_index('ix_billable_items_invoice_id', 'billable_items', ['invoice_id'])

    op.create_table('sales_transactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('client_id', sa.Integer(), sa.ForeignKey('clients.id'), nullable=False),
        sa.Column('sale_date', sa.DateTime(), nullable=False),
        sa.Column('subtotal', MONEY, nullable=False),
        sa.Column('tax_amount', MONEY, nullable=False),
        sa.Column('total_amount', MONEY, nullable=False),
        sa.Column('payment_status', sa.String(length=16), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_sales_transactions_client_id', 'sales_transactions', ['client_id'])

    op.create_table('sale_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('transaction_id', sa.Integer(), sa.ForeignKey('sales_transactions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('quantity', MONEY, nullable=False),
        sa.Column('unit_price', MONEY, nullable=False),
        sa.Column('tax_rate', RATE, nullable=False),
        sa.Column('tax_inclusive', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('line_total', MONEY, nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_sale_items_transaction_id', 'sale_items', ['transaction_id'])

    op.create_table('payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('transaction_id', sa.Integer(), sa.ForeignKey('sales_transactions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('payment_method', sa.String(length=32), nullable=False),
        sa.Column('payment_date', sa.DateTime(), nullable=False),
        sa.Column('reference', sa.String(length=128), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_payments_transaction_id', 'payments', ['transaction_id'])


def downgrade():
    for table in (
        'payments', 'sale_items', 'sales_transactions', 'billable_items', 'invoices', 'time_logs',
        'reminders', 'parts_orders', 'attachments', 'repair_notes', 'activity_logs', 'tickets',
        'devices', 'clients', 'user_roles', 'users', 'role_permissions', 'roles', 'permissions',
    ):
        op.drop_table(table)
