from datetime import datetime, timezone
import logging
from typing import Dict, List, Optional
import uuid

from ..core.config import settings
from ..core.errors import NoActiveShiftError, NotFoundError, Result, TransactionNotCancellableError, ValidationError
from ..core.money import ZERO, format_rupiah, rupiah
from ..core.schemas import CashierShift, Payment, RefundRequest, Transaction, TransactionLine

logger = logging.getLogger(__name__)


class TransactionLog:
    """Record of finalized transactions for one session. Entries are never
    removed; cancelling a sale swaps in its cancelled copy."""

    def __init__(self, prefix: Optional[str] = None):
        self.prefix = prefix or settings.order_prefix
        self._items: List[Transaction] = []

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    def append(self, tx: Transaction) -> Result[Transaction]:
        if self.get(tx.id) is not None:
            return Result.failure(ValidationError(f"Transaksi {tx.id} sudah tercatat", field="id"))
        self._items.append(tx)
        return Result.success(tx)

    def replace(self, tx: Transaction) -> Result[Transaction]:
        for i, t in enumerate(self._items):
            if t.id == tx.id:
                self._items[i] = tx
                return Result.success(tx)
        return Result.failure(NotFoundError("Transaksi", tx.id))

    def get(self, tx_id: str) -> Optional[Transaction]:
        return next((t for t in self._items if t.id == tx_id), None)

    def for_shift(self, shift_id: str) -> List[Transaction]:
        return [t for t in self._items if t.cashier_shift_id == shift_id]

    def refunds_of(self, tx_id: str) -> List[Transaction]:
        return [t for t in self._items if t.original_transaction_id == tx_id]

    def next_order_number(self, now: Optional[datetime] = None, issued: Optional[int] = None) -> str:
        """
        POS-YYYYMMDD-NNNN, sequence restarts every day. ``issued`` is the
        number of sale orders already handed out that day across all
        cashiers; without it only this log is counted.
        """
        now = now or datetime.now(timezone.utc)
        if issued is None:
            day = now.date()
            issued = sum(1 for t in self._items if not t.is_refund and t.timestamp.date() == day)
        return f"{self.prefix}-{now:%Y%m%d}-{issued + 1:04d}"

    def _refunded_quantities(self, tx_id: str) -> Dict[str, int]:
        out: Dict[str, int] = {}
        for r in self.refunds_of(tx_id):
            for line in r.items:
                if line.source_line_id:
                    out[line.source_line_id] = out.get(line.source_line_id, 0) - line.quantity
        return out

    def build_refund(self, request: RefundRequest, shift: Optional[CashierShift],
                     now: Optional[datetime] = None) -> Result[Transaction]:
        """
        Build the negative-valued reversal of (part of) an earlier sale. The
        refund is paid out in cash and booked on the currently open shift.
        """
        if shift is None or shift.status != "open":
            return Result.failure(NoActiveShiftError())
        original = self.get(request.original_transaction_id)
        if original is None:
            return Result.failure(NotFoundError("Transaksi", request.original_transaction_id))
        if original.is_refund:
            return Result.failure(ValidationError("Transaksi refund tidak dapat direfund lagi"))
        if original.status == "cancelled":
            return Result.failure(ValidationError("Transaksi yang dibatalkan tidak dapat direfund"))

        already = self._refunded_quantities(original.id)
        lines: List[TransactionLine] = []
        items_total = ZERO
        for item in request.items:
            src = next((l for l in original.items if l.id == item.line_id), None)
            if src is None:
                return Result.failure(NotFoundError("Item", item.line_id))
            left = src.quantity - already.get(src.id, 0)
            if item.quantity > left:
                return Result.failure(ValidationError(
                    f"Jumlah refund untuk {src.product_name} melebihi sisa ({left})", field="items"))
            already[src.id] = already.get(src.id, 0) + item.quantity
            amount = rupiah(src.line_total * item.quantity / src.quantity)
            items_total += amount
            lines.append(src.model_copy(update={
                "id": uuid.uuid4().hex,
                "quantity": -item.quantity,
                "line_total": -amount,
                "source_line_id": src.id,
            }))

        refundable = original.total_amount + sum((r.total_amount for r in self.refunds_of(original.id)), ZERO)
        if request.refund_amount is not None:
            refund_amount = rupiah(request.refund_amount)
        elif original.subtotal > 0:
            # share of what the customer actually paid (after cart discount and tax)
            refund_amount = rupiah(items_total * original.total_amount / original.subtotal)
        else:
            refund_amount = ZERO
        if refund_amount <= 0 or refund_amount > refundable:
            return Result.failure(ValidationError(
                f"Jumlah refund harus antara Rp 1 dan {format_rupiah(refundable)}", field="refund_amount"))

        n = len(self.refunds_of(original.id))
        order_number = f"REF-{original.order_number}" + (f"-{n + 1}" if n else "")
        tx = Transaction(
            order_number=order_number,
            items=tuple(lines),
            subtotal=-refund_amount,
            discount_amount=ZERO,
            tax_rate=ZERO,
            tax_amount=ZERO,
            total_amount=-refund_amount,
            payments=(Payment(method="cash", amount=refund_amount),),
            payment_method="cash",
            cashier_shift_id=shift.id,
            timestamp=now or datetime.now(timezone.utc),
            customer=original.customer,
            notes=request.reason or None,
            refund_id=uuid.uuid4().hex,
            original_transaction_id=original.id,
        )
        logger.info("refund %s built for %s amount=%s", tx.order_number, original.order_number, refund_amount)
        return Result.success(tx)

    def build_cancel(self, tx_id: str, shift: Optional[CashierShift],
                     reason: Optional[str] = None) -> Result[Transaction]:
        """
        Void a sale of the open shift. The order number stays used; the
        cancelled copy is returned and the log is not touched.
        """
        if shift is None or shift.status != "open":
            return Result.failure(NoActiveShiftError())
        tx = self.get(tx_id)
        if tx is None:
            return Result.failure(NotFoundError("Transaksi", tx_id))
        if tx.is_refund:
            return Result.failure(TransactionNotCancellableError("Transaksi refund tidak dapat dibatalkan"))
        if tx.status == "cancelled":
            return Result.failure(TransactionNotCancellableError(f"Transaksi {tx.order_number} sudah dibatalkan"))
        if self.refunds_of(tx.id):
            return Result.failure(TransactionNotCancellableError(
                f"Transaksi {tx.order_number} sudah direfund dan tidak dapat dibatalkan"))
        if tx.cashier_shift_id != shift.id:
            return Result.failure(TransactionNotCancellableError(
                "Hanya transaksi dari shift yang sedang berjalan yang dapat dibatalkan"))

        note = f"Dibatalkan: {reason}" if reason else "Dibatalkan"
        notes = f"{tx.notes}\n{note}" if tx.notes else note
        logger.info("transaction %s cancelled", tx.order_number)
        return Result.success(tx.model_copy(update={"status": "cancelled", "notes": notes}))
