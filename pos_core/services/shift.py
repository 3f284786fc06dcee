"""
Cashier shift ledger.

States are no-shift -> open -> closed. Closing is one-way; a closed shift only
accepts extra notes. Expected cash at close is the opening float plus every
cash-settled sale (refunds paid out in cash reduce it).
"""
from datetime import datetime, timezone
import logging
from typing import List, Optional

from ..core.config import settings
from ..core.errors import (
    NoActiveShiftError,
    Result,
    ShiftAlreadyClosedError,
    ShiftAlreadyOpenError,
    ValidationError,
)
from ..core.money import ZERO, rupiah, to_decimal
from ..core.schemas import CashierShift, ShiftSummary, Transaction

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ShiftLedger:
    def __init__(self):
        self.current: Optional[CashierShift] = None
        self.history: List[CashierShift] = []

    @property
    def active(self) -> Optional[CashierShift]:
        if self.current is not None and self.current.status == "open":
            return self.current
        return None

    def open_shift(self, cashier_id: str, cashier_name: str, starting_cash, notes: Optional[str] = None,
                   now: Optional[datetime] = None) -> Result[CashierShift]:
        if self.active is not None:
            return Result.failure(ShiftAlreadyOpenError(self.active.cashier_id))
        starting_cash = to_decimal(starting_cash)
        if starting_cash < 0:
            return Result.failure(ValidationError("Kas awal tidak boleh negatif", field="starting_cash"))

        self.current = CashierShift(
            cashier_id=cashier_id,
            cashier_name=cashier_name,
            start_time=now or _utcnow(),
            starting_cash=starting_cash,
            notes=notes,
        )
        logger.info("shift %s opened by %s with %s", self.current.id, cashier_id, starting_cash)
        return Result.success(self.current)

    def record_transaction(self, tx: Transaction) -> Result[CashierShift]:
        if self.current is None:
            return Result.failure(NoActiveShiftError())
        if self.current.status == "closed":
            return Result.failure(ShiftAlreadyClosedError())
        shift = self.current
        if tx.cashier_shift_id != shift.id:
            return Result.failure(ValidationError("Transaksi tidak termasuk dalam shift ini", field="cashier_shift_id"))

        shift.total_transactions += 1
        shift.total_sales += tx.total_amount
        shift.cash_sales += tx.cash_amount()
        if tx.payment_method == "cash":
            shift.cash_transactions += 1
        shift.sales_by_method[tx.payment_method] = shift.sales_by_method.get(tx.payment_method, ZERO) + tx.total_amount
        return Result.success(shift)

    def void_transaction(self, tx: Transaction) -> Result[CashierShift]:
        """Take a cancelled sale back out of the open shift's totals."""
        shift = self.active
        if shift is None:
            return Result.failure(NoActiveShiftError())
        if tx.cashier_shift_id != shift.id:
            return Result.failure(ValidationError("Transaksi tidak termasuk dalam shift ini", field="cashier_shift_id"))

        shift.total_transactions -= 1
        shift.total_sales -= tx.total_amount
        shift.cash_sales -= tx.cash_amount()
        if tx.payment_method == "cash":
            shift.cash_transactions -= 1
        shift.sales_by_method[tx.payment_method] = shift.sales_by_method.get(tx.payment_method, ZERO) - tx.total_amount
        return Result.success(shift)

    def expected_cash(self) -> Result:
        if self.current is None:
            return Result.failure(NoActiveShiftError())
        return Result.success(self.current.starting_cash + self.current.cash_sales)

    def close_shift(self, actual_cash, notes: Optional[str] = None, now: Optional[datetime] = None) -> Result[CashierShift]:
        if self.current is None:
            return Result.failure(NoActiveShiftError())
        if self.current.status == "closed":
            return Result.failure(ShiftAlreadyClosedError())
        actual_cash = to_decimal(actual_cash)
        if actual_cash < 0:
            return Result.failure(ValidationError("Kas akhir tidak boleh negatif", field="actual_cash"))

        shift = self.current
        expected = shift.starting_cash + shift.cash_sales
        shift.expected_cash = expected
        shift.actual_cash = actual_cash
        shift.ending_cash = actual_cash
        shift.variance = actual_cash - expected
        shift.end_time = now or _utcnow()
        shift.status = "closed"
        if notes:
            self._append_note(shift, notes)
        self.history.append(shift)
        logger.info("shift %s closed expected=%s actual=%s variance=%s", shift.id, expected, actual_cash, shift.variance)
        return Result.success(shift)

    def add_note(self, text: str) -> Result[CashierShift]:
        if self.current is None:
            return Result.failure(NoActiveShiftError())
        if not text.strip():
            return Result.failure(ValidationError("Catatan tidak boleh kosong", field="notes"))
        self._append_note(self.current, text)
        return Result.success(self.current)

    @staticmethod
    def _append_note(shift: CashierShift, text: str) -> None:
        shift.notes = f"{shift.notes}\n{text}" if shift.notes else text

    def summary(self) -> Result[ShiftSummary]:
        shift = self.current
        if shift is None:
            return Result.failure(NoActiveShiftError())
        count = shift.total_transactions
        average = rupiah(shift.total_sales / count) if count else ZERO
        within = None
        if shift.variance is not None:
            within = abs(shift.variance) <= settings.cash_close_tolerance
        return Result.success(ShiftSummary(
            shift_id=shift.id,
            status=shift.status,
            total_sales=shift.total_sales,
            total_transactions=count,
            average_transaction=average,
            cash_transactions=shift.cash_transactions,
            non_cash_transactions=count - shift.cash_transactions,
            cash_sales=shift.cash_sales,
            sales_by_method=dict(shift.sales_by_method),
            starting_cash=shift.starting_cash,
            expected_cash=shift.expected_cash if shift.expected_cash is not None else shift.starting_cash + shift.cash_sales,
            actual_cash=shift.actual_cash,
            variance=shift.variance,
            within_tolerance=within,
        ))
