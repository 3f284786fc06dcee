from datetime import datetime
from decimal import Decimal
import logging
from typing import List, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import (
    DuplicateOrderNumberError,
    NotFoundError,
    PersistenceError,
    ShiftAlreadyOpenError,
    ValidationError,
)
from ..core.schemas import CashierShift, StockDecrement, Transaction
from ..models.pos import PosPayment, PosShift, PosTransaction, PosTransactionItem, StockMove

logger = logging.getLogger(__name__)


class SqlPosStore:
    """
    SQLAlchemy persistence for shifts and finalized transactions. The core
    never reads back from here; it only writes what ``PosSession`` hands it.
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def open_shift(self, shift: CashierShift) -> None:
        db: Session = self.session_factory()
        try:
            db.add(PosShift(
                id=shift.id,
                cashier_id=shift.cashier_id,
                cashier_name=shift.cashier_name,
                opened_at=shift.start_time,
                status="open",
                opening_cash=shift.starting_cash,
                notes=shift.notes,
            ))
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ShiftAlreadyOpenError(shift.cashier_id)
        finally:
            db.close()

    def close_shift(self, shift: CashierShift) -> None:
        db: Session = self.session_factory()
        try:
            row = db.get(PosShift, shift.id)
            if row is None:
                raise NotFoundError("Shift", shift.id)
            row.status = "closed"
            row.closed_at = shift.end_time
            row.closing_cash = shift.ending_cash
            row.expected_cash = shift.expected_cash
            row.actual_cash = shift.actual_cash
            row.variance = shift.variance
            row.total_sales = shift.total_sales
            row.total_transactions = shift.total_transactions
            row.notes = shift.notes
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("could not close shift %s", shift.id)
            raise PersistenceError(f"Shift {shift.id} gagal ditutup")
        finally:
            db.close()

    def save_transaction(self, tx: Transaction, decrements: Sequence[StockDecrement]) -> None:
        """Transaction, its lines, payments and stock moves go in one commit."""
        db: Session = self.session_factory()
        try:
            row = PosTransaction(
                id=tx.id,
                transaction_number=tx.order_number,
                shift_id=tx.cashier_shift_id,
                customer_id=tx.customer.id if tx.customer else None,
                subtotal=tx.subtotal,
                discount_amount=tx.discount_amount,
                tax_rate=tx.tax_rate,
                tax_amount=tx.tax_amount,
                total=tx.total_amount,
                payment_method=tx.payment_method,
                payment_status=tx.status,
                transaction_date=tx.timestamp,
                notes=tx.notes,
                refund_id=tx.refund_id,
                original_transaction_id=tx.original_transaction_id,
            )
            row.items = [
                PosTransactionItem(
                    id=i.id,
                    product_id=i.product_id,
                    product_name=i.product_name,
                    quantity=i.quantity,
                    unit_price=i.unit_price,
                    discount_percent=i.discount_percent,
                    discount_amount=i.discount_amount,
                    subtotal=i.line_total,
                )
                for i in tx.items
            ]
            row.payments = [
                PosPayment(
                    payment_method=p.method,
                    amount=p.amount,
                    received_amount=p.received_amount,
                    change_amount=p.change,
                    reference_number=p.reference,
                    payment_date=tx.timestamp,
                )
                for p in tx.payments
            ]
            db.add(row)
            db.add_all(
                StockMove(transaction_id=tx.id, product_id=d.product_id, qty=d.quantity, created_at=tx.timestamp)
                for d in decrements
            )
            if tx.original_transaction_id:
                orig = db.get(PosTransaction, tx.original_transaction_id)
                if orig is not None:
                    orig.payment_status = "refunded"
            db.commit()
        except IntegrityError:
            db.rollback()
            taken = db.query(PosTransaction.id).filter_by(transaction_number=tx.order_number).first()
            if taken is not None:
                logger.warning("order number %s already taken", tx.order_number)
                raise DuplicateOrderNumberError(tx.order_number)
            logger.exception("could not persist transaction %s", tx.order_number)
            raise ValidationError(f"Transaksi {tx.order_number} gagal disimpan")
        finally:
            db.close()

    def cancel_transaction(self, tx: Transaction, reversals: Sequence[StockDecrement]) -> None:
        """Mark a stored sale cancelled and put its stock back, in one commit."""
        db: Session = self.session_factory()
        try:
            row = db.get(PosTransaction, tx.id)
            if row is None:
                raise NotFoundError("Transaksi", tx.id)
            row.payment_status = "cancelled"
            row.notes = tx.notes
            db.add_all(
                StockMove(transaction_id=tx.id, product_id=d.product_id, qty=d.quantity, created_at=tx.timestamp)
                for d in reversals
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("could not cancel transaction %s", tx.order_number)
            raise PersistenceError(f"Transaksi {tx.order_number} gagal dibatalkan")
        finally:
            db.close()

    # ---------- reads (reporting) ----------
    def count_orders_on(self, prefix: str, day: datetime) -> int:
        """Sale orders already numbered for that day, every cashier included."""
        db: Session = self.session_factory()
        try:
            pattern = f"{prefix}-{day:%Y%m%d}-%"
            return db.query(PosTransaction).filter(PosTransaction.transaction_number.like(pattern)).count()
        finally:
            db.close()

    def transaction_status(self, tx_id: str) -> Optional[str]:
        db: Session = self.session_factory()
        try:
            row = db.get(PosTransaction, tx_id)
            return row.payment_status if row is not None else None
        finally:
            db.close()

    def open_shift_for(self, cashier_id: str) -> Optional[PosShift]:
        db: Session = self.session_factory()
        try:
            return db.query(PosShift).filter_by(cashier_id=cashier_id, status="open").first()
        finally:
            db.close()

    def stock_moved(self, product_id: str) -> int:
        db: Session = self.session_factory()
        try:
            rows: List[StockMove] = db.query(StockMove).filter_by(product_id=product_id).all()
            return sum(r.qty for r in rows)
        finally:
            db.close()

    def shift_cash_sales(self, shift_id: str) -> Decimal:
        """Cash-settled sales of a shift as stored (single-tender cash transactions)."""
        db: Session = self.session_factory()
        try:
            rows = db.query(PosTransaction).filter_by(shift_id=shift_id, payment_method="cash").all()
            return sum((Decimal(r.total) for r in rows), Decimal("0"))
        finally:
            db.close()
