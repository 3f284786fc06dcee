"""
Error kinds surfaced by the POS core.

Each kind carries a stable ``code`` (for callers and the HTTP layer) and the
Indonesian message cashiers see. Core operations hand these back inside a
``Result`` instead of raising them; only the HTTP adapter turns them into
``HTTPException``.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Generic, List, Optional, TypeVar

from .money import format_rupiah

T = TypeVar("T")


class PosError(Exception):
    code = "POS_ERROR"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationError(PosError):
    code = "VALIDATION_ERROR"
    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        d = super().to_dict()
        if self.field:
            d["field"] = self.field
        return d


class MissingReferenceError(ValidationError):
    code = "MISSING_REFERENCE"

    def __init__(self, method: str, index: int = 0):
        super().__init__(
            f"Nomor referensi wajib diisi untuk pembayaran {method}",
            field=f"payments[{index}].reference",
        )
        self.method = method


class InsufficientPaymentError(PosError):
    code = "INSUFFICIENT_PAYMENT"
    status_code = 422

    def __init__(self, amount_due: Decimal, paid: Decimal):
        self.amount_due = amount_due
        self.paid = paid
        self.remaining = amount_due - paid
        super().__init__(f"Pembayaran kurang! Masih kurang {format_rupiah(self.remaining)}")


class NoActiveShiftError(PosError):
    code = "NO_ACTIVE_SHIFT"
    status_code = 409

    def __init__(self):
        super().__init__("Tidak ada shift aktif. Silakan buka shift terlebih dahulu.")


class ShiftAlreadyOpenError(PosError):
    code = "SHIFT_ALREADY_OPEN"
    status_code = 409

    def __init__(self, cashier_id: Optional[str] = None):
        super().__init__("Anda masih memiliki shift yang terbuka. Silakan tutup shift terlebih dahulu.")
        self.cashier_id = cashier_id


class ShiftAlreadyClosedError(PosError):
    code = "SHIFT_ALREADY_CLOSED"
    status_code = 409

    def __init__(self):
        super().__init__("Shift sudah ditutup dan tidak dapat dibuka kembali.")


class EmptyCartError(PosError):
    code = "EMPTY_CART"
    status_code = 422

    def __init__(self):
        super().__init__("Keranjang kosong. Tambahkan produk terlebih dahulu.")


class NotFoundError(PosError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, what: str, ident: Optional[str] = None):
        msg = f"{what} tidak ditemukan" if ident is None else f"{what} {ident} tidak ditemukan"
        super().__init__(msg)
        self.what = what
        self.ident = ident


class DuplicateOrderNumberError(PosError):
    code = "DUPLICATE_ORDER_NUMBER"
    status_code = 409

    def __init__(self, order_number: str):
        super().__init__(f"Nomor transaksi {order_number} sudah digunakan. Silakan coba lagi.")
        self.order_number = order_number


class TransactionNotCancellableError(PosError):
    code = "NOT_CANCELLABLE"
    status_code = 409


class PersistenceError(PosError):
    code = "PERSISTENCE_ERROR"
    status_code = 503


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    error: Optional[PosError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value

    @classmethod
    def success(cls, value: T = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: PosError) -> "Result[T]":
        return cls(error=error)


def first_error(errors: List[PosError]) -> Optional[PosError]:
    """Most specific error wins: an insufficient payment outranks a field error."""
    for e in errors:
        if isinstance(e, InsufficientPaymentError):
            return e
    return errors[0] if errors else None
