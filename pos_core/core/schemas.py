from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Literal, Optional, Tuple
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import settings
from .money import ZERO

PaymentMethod = Literal["cash", "card", "transfer", "e-wallet", "qr_code", "credit"]
PromotionType = Literal["percentage", "fixed", "buy_x_get_y"]
PromotionStatus = Literal["draft", "scheduled", "active", "expired", "cancelled"]
CustomerSegment = Literal["all", "new", "regular", "vip"]
ShiftStatus = Literal["open", "closed"]
TransactionStatus = Literal["paid", "cancelled"]


def _new_id() -> str:
    return uuid.uuid4().hex


class _Money(BaseModel):
    @field_validator("*", mode="before")
    @classmethod
    def _floats_to_decimal(cls, v):
        # floats come from JSON bodies; route them through str so 0.1 stays 0.1
        if isinstance(v, float):
            return Decimal(str(v))
        return v


class Product(_Money):
    id: str
    name: str
    sku: str = ""
    unit_price: Decimal = Field(..., ge=0)
    stock_quantity: int = 0
    barcode: Optional[str] = None
    category_id: Optional[str] = None


class Customer(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    segment: Optional[CustomerSegment] = None


class LineItem(_Money):
    id: str = Field(default_factory=_new_id)
    product: Product
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)
    discount_percent: Decimal = Field(default=ZERO, ge=0, le=100)
    discount_amount: Decimal = Field(default=ZERO, ge=0)
    barcode: Optional[str] = None
    line_total: Decimal = ZERO


class Discount(_Money):
    type: Literal["percentage", "fixed_amount"]
    value: Decimal = Field(..., ge=0)
    description: Optional[str] = None

    @field_validator("value")
    @classmethod
    def _percent_range(cls, v, info):
        if info.data.get("type") == "percentage" and v > 100:
            raise ValueError("percentage discount must be between 0 and 100")
        return v


class Promotion(_Money):
    id: str
    name: str
    code: str = ""
    description: Optional[str] = None
    type: PromotionType
    discount_value: Optional[Decimal] = None
    buy_quantity: Optional[int] = None
    get_quantity: Optional[int] = None
    min_purchase_amount: Decimal = ZERO
    max_discount_amount: Optional[Decimal] = None
    start_date: datetime
    end_date: datetime
    status: PromotionStatus = "active"
    is_active: bool = True
    customer_segment: CustomerSegment = "all"
    product_ids: List[str] = Field(default_factory=list)
    category_ids: List[str] = Field(default_factory=list)


class PromotionResult(BaseModel):
    promotion: Optional[Promotion] = None
    discount_amount: Decimal = ZERO
    reason: str = ""

    @property
    def applicable(self) -> bool:
        return self.promotion is not None and self.discount_amount > 0


class Payment(_Money):
    model_config = ConfigDict(frozen=True)

    method: PaymentMethod
    amount: Decimal = Field(..., ge=0)
    reference: Optional[str] = None
    received_amount: Optional[Decimal] = None
    change: Decimal = ZERO


class TransactionLine(_Money):
    model_config = ConfigDict(frozen=True)

    id: str
    product_id: str
    product_name: str
    sku: str = ""
    quantity: int
    unit_price: Decimal
    discount_percent: Decimal = ZERO
    discount_amount: Decimal = ZERO
    line_total: Decimal
    barcode: Optional[str] = None
    promotion_id: Optional[str] = None
    source_line_id: Optional[str] = None  # refunds: the line being reversed


class Transaction(_Money):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    order_number: str
    items: Tuple[TransactionLine, ...]
    subtotal: Decimal
    discount_amount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    payments: Tuple[Payment, ...]
    payment_method: str
    cashier_shift_id: str
    timestamp: datetime
    customer: Optional[Customer] = None
    notes: Optional[str] = None
    status: TransactionStatus = "paid"
    refund_id: Optional[str] = None
    original_transaction_id: Optional[str] = None

    @property
    def is_refund(self) -> bool:
        return self.original_transaction_id is not None

    @property
    def change(self) -> Decimal:
        return sum((p.change for p in self.payments), ZERO)

    @property
    def amount_paid(self) -> Decimal:
        return sum((p.amount for p in self.payments), ZERO)

    def amount_by_method(self) -> Dict[str, Decimal]:
        out: Dict[str, Decimal] = {}
        for p in self.payments:
            out[p.method] = out.get(p.method, ZERO) + p.amount
        return out

    def cash_amount(self) -> Decimal:
        """Portion of the total settled in cash (what lands in the drawer)."""
        if not self.payments:
            return ZERO
        cash = self.amount_by_method().get("cash", ZERO)
        if len(self.payments) == 1:
            return self.total_amount if cash else ZERO
        # split tender: overpayment is handed back in cash
        over = self.amount_paid - self.total_amount
        return max(ZERO, cash - over) if over > 0 else cash


class StockDecrement(BaseModel):
    product_id: str
    quantity: int


class CashierShift(_Money):
    id: str = Field(default_factory=_new_id)
    cashier_id: str
    cashier_name: str
    start_time: datetime
    end_time: Optional[datetime] = None
    starting_cash: Decimal = Field(..., ge=0)
    ending_cash: Optional[Decimal] = None
    total_sales: Decimal = ZERO
    total_transactions: int = 0
    cash_sales: Decimal = ZERO
    cash_transactions: int = 0
    sales_by_method: Dict[str, Decimal] = Field(default_factory=dict)
    status: ShiftStatus = "open"
    notes: Optional[str] = None
    expected_cash: Optional[Decimal] = None
    actual_cash: Optional[Decimal] = None
    variance: Optional[Decimal] = None


class ShiftSummary(BaseModel):
    shift_id: str
    status: ShiftStatus
    total_sales: Decimal
    total_transactions: int
    average_transaction: Decimal
    cash_transactions: int
    non_cash_transactions: int
    cash_sales: Decimal
    sales_by_method: Dict[str, Decimal]
    starting_cash: Decimal
    expected_cash: Decimal
    actual_cash: Optional[Decimal] = None
    variance: Optional[Decimal] = None
    within_tolerance: Optional[bool] = None


class CompanyInfo(BaseModel):
    name: str = Field(default_factory=lambda: settings.company_name)
    address: str = Field(default_factory=lambda: settings.company_address)
    phone: str = Field(default_factory=lambda: settings.company_phone)


class RefundItem(BaseModel):
    line_id: str
    quantity: int = Field(..., gt=0)
    reason: str = ""


class RefundRequest(_Money):
    original_transaction_id: str
    items: List[RefundItem] = Field(..., min_length=1)
    reason: str = ""
    refund_amount: Optional[Decimal] = None
