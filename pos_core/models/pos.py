from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, text
from sqlalchemy.orm import relationship

from ..db import Base


class PosShift(Base):
    __tablename__ = "pos_shift"
    id = Column(String(32), primary_key=True)
    cashier_id = Column(String(64), nullable=False, index=True)
    cashier_name = Column(String(120))
    opened_at = Column(DateTime, default=datetime.utcnow)
    closed_at = Column(DateTime)
    status = Column(String(10), default="open")  # open | closed
    opening_cash = Column(Numeric(14, 2), default=0)
    closing_cash = Column(Numeric(14, 2))
    expected_cash = Column(Numeric(14, 2))
    actual_cash = Column(Numeric(14, 2))
    variance = Column(Numeric(14, 2))
    total_sales = Column(Numeric(14, 2), default=0)
    total_transactions = Column(Integer, default=0)
    notes = Column(Text)

    # one open shift per cashier
    __table_args__ = (
        Index(
            "ux_pos_shift_open_cashier",
            "cashier_id",
            unique=True,
            sqlite_where=text("status = 'open'"),
            postgresql_where=text("status = 'open'"),
        ),
    )


class PosTransaction(Base):
    __tablename__ = "pos_transaction"
    id = Column(String(32), primary_key=True)
    transaction_number = Column(String(40), unique=True, nullable=False)
    shift_id = Column(String(32), ForeignKey("pos_shift.id"), nullable=False, index=True)
    customer_id = Column(String(64))
    subtotal = Column(Numeric(14, 2), default=0)
    discount_amount = Column(Numeric(14, 2), default=0)
    tax_rate = Column(Numeric(6, 4), default=0)
    tax_amount = Column(Numeric(14, 2), default=0)
    total = Column(Numeric(14, 2), default=0)
    payment_method = Column(String(20), nullable=False)  # cash | card | ... | split
    payment_status = Column(String(20), default="paid")  # paid | refunded
    transaction_date = Column(DateTime, default=datetime.utcnow)
    notes = Column(Text)
    refund_id = Column(String(32))
    original_transaction_id = Column(String(32), ForeignKey("pos_transaction.id"))

    items = relationship("PosTransactionItem", cascade="all, delete-orphan")
    payments = relationship("PosPayment", cascade="all, delete-orphan")


class PosTransactionItem(Base):
    __tablename__ = "pos_transaction_item"
    id = Column(String(32), primary_key=True)
    transaction_id = Column(String(32), ForeignKey("pos_transaction.id"), nullable=False, index=True)
    product_id = Column(String(64), nullable=False)
    product_name = Column(String(200))
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(14, 2), nullable=False)
    discount_percent = Column(Numeric(5, 2), default=0)
    discount_amount = Column(Numeric(14, 2), default=0)
    subtotal = Column(Numeric(14, 2), default=0)


class PosPayment(Base):
    __tablename__ = "pos_payment"
    id = Column(Integer, primary_key=True)
    transaction_id = Column(String(32), ForeignKey("pos_transaction.id"), nullable=False, index=True)
    payment_method = Column(String(20), nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    received_amount = Column(Numeric(14, 2))
    change_amount = Column(Numeric(14, 2), default=0)
    reference_number = Column(String(120))
    payment_date = Column(DateTime, default=datetime.utcnow)


class StockMove(Base):
    __tablename__ = "stock_move"
    id = Column(Integer, primary_key=True)
    transaction_id = Column(String(32), ForeignKey("pos_transaction.id"), nullable=False, index=True)
    product_id = Column(String(64), nullable=False, index=True)
    qty = Column(Integer, nullable=False)  # units to subtract; negative puts stock back
    created_at = Column(DateTime, default=datetime.utcnow)
