from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Boolean, Numeric, ForeignKey, DateTime

from .authz import Base
from repairdesk.utils import clock


class Invoice(Base):
    __tablename__ = 'invoices'
    STATUS_UNPAID = 'unpaid'
    STATUS_PAID = 'paid'
    ALL_STATUSES = (STATUS_UNPAID, STATUS_PAID)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    invoice_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey('tickets.id'), nullable=False, index=True)
    client_id: Mapped[int] = mapped_column(ForeignKey('clients.id'), nullable=False, index=True)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_UNPAID)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: clock.now())

    items: Mapped[List['BillableItem']] = relationship('BillableItem', back_populates='invoice', order_by='BillableItem.id')


class BillableItem(Base):
    """A chargeable part or labor line on a ticket, pending until invoiced."""
    __tablename__ = 'billable_items'
    TYPE_LABOR = 'labor'
    TYPE_PART = 'part'
    TYPE_SERVICE = 'service'
    ALL_TYPES = (TYPE_LABOR, TYPE_PART, TYPE_SERVICE)
    STATUS_PENDING = 'pending'
    STATUS_BILLED = 'billed'
    STATUS_VOID = 'void'
    ALL_STATUSES = (STATUS_PENDING, STATUS_BILLED, STATUS_VOID)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey('tickets.id'), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal('1.00'))
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal('10.00'))
    tax_inclusive: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    line_total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    billing_status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_PENDING, index=True)
    billed_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    invoice_id: Mapped[Optional[int]] = mapped_column(ForeignKey('invoices.id'), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: clock.now())

    invoice = relationship('Invoice', back_populates='items')


class SalesTransaction(Base):
    """Point-of-sale checkout, independent of repair tickets."""
    __tablename__ = 'sales_transactions'
    PAYMENT_PENDING = 'pending'
    PAYMENT_PARTIAL = 'partial'
    PAYMENT_PAID = 'paid'
    ALL_PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_PARTIAL, PAYMENT_PAID)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    client_id: Mapped[int] = mapped_column(ForeignKey('clients.id'), nullable=False, index=True)
    sale_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: clock.now())
    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    payment_status: Mapped[str] = mapped_column(String(16), nullable=False, default=PAYMENT_PENDING)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_by_user_id: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: clock.now())

    items: Mapped[List['SaleItem']] = relationship('SaleItem', back_populates='transaction', order_by='SaleItem.id', cascade='all, delete-orphan')
    payments: Mapped[List['Payment']] = relationship('Payment', back_populates='transaction', order_by='Payment.id', cascade='all, delete-orphan')


class SaleItem(Base):
    __tablename__ = 'sale_items'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    transaction_id: Mapped[int] = mapped_column(ForeignKey('sales_transactions.id', ondelete='CASCADE'), nullable=False, index=True)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal('10.00'))
    tax_inclusive: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    line_total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: clock.now())

    transaction = relationship('SalesTransaction', back_populates='items')


class Payment(Base):
    __tablename__ = 'payments'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    transaction_id: Mapped[int] = mapped_column(ForeignKey('sales_transactions.id', ondelete='CASCADE'), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(32), nullable=False)
    payment_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: clock.now())
    reference: Mapped[Optional[str]] = mapped_column(String(128))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: clock.now())

    transaction = relationship('SalesTransaction', back_populates='payments')

__all__ = ['Invoice', 'BillableItem', 'SalesTransaction', 'SaleItem', 'Payment']
