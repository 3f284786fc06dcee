from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..core.money import rupiah
from ..core.schemas import Customer, Discount, Payment, Product, Promotion, RefundRequest, Transaction
from ..services.cart import Cart
from ..services.session import PosSession
from .deps import get_pos_session, unwrap

router = APIRouter(prefix="/pos", tags=["pos"])


class AddItemBody(BaseModel):
    product: Product
    quantity: int = 1
    barcode: Optional[str] = None


class UpdateLineBody(BaseModel):
    quantity: Optional[int] = None
    discount_percent: Optional[float] = None
    discount_amount: Optional[float] = None


class PromotionsBody(BaseModel):
    promotions: List[Promotion] = Field(default_factory=list)
    apply: bool = False
    at: Optional[datetime] = None


class PayBody(BaseModel):
    payments: List[Payment] = Field(..., min_length=1)
    notes: Optional[str] = None


class CancelBody(BaseModel):
    reason: Optional[str] = None


def _serialize_cart(cart: Cart):
    t = cart.rounded_totals()
    return {
        "lines": [{"line_id": l.id, "product_id": l.product.id, "name": l.product.name,
                   "qty": l.quantity, "unit_price": int(rupiah(l.unit_price)),
                   "discount_percent": float(l.discount_percent),
                   "discount_amount": int(rupiah(l.discount_amount)),
                   "line_total": int(rupiah(l.line_total))} for l in cart.lines],
        "discount": cart.discount.model_dump(mode="json") if cart.discount else None,
        "customer": cart.customer.model_dump(mode="json") if cart.customer else None,
        "tax_rate": float(cart.tax_rate),
        "subtotal": int(t.subtotal), "discount_total": int(t.discount_amount),
        "tax_total": int(t.tax_amount), "total": int(t.total_amount),
    }


def _serialize_tx(tx: Transaction):
    out = tx.model_dump(mode="json")
    out["change"] = int(tx.change)
    return out


@router.get("/cart")
def get_cart(ses: PosSession = Depends(get_pos_session)):
    return _serialize_cart(ses.cart)


@router.delete("/cart")
def reset_cart(ses: PosSession = Depends(get_pos_session)):
    ses.reset()
    return _serialize_cart(ses.cart)


@router.post("/cart/items")
def add_item(payload: AddItemBody, ses: PosSession = Depends(get_pos_session)):
    unwrap(ses.cart.add_item(payload.product, payload.quantity, payload.barcode))
    return _serialize_cart(ses.cart)


@router.patch("/cart/items/{line_id}")
def update_line(line_id: str, payload: UpdateLineBody, ses: PosSession = Depends(get_pos_session)):
    if payload.discount_percent is not None:
        unwrap(ses.cart.update_line_discount(line_id, payload.discount_percent))
    if payload.discount_amount is not None:
        unwrap(ses.cart.update_line_discount_amount(line_id, payload.discount_amount))
    if payload.quantity is not None:
        unwrap(ses.cart.update_quantity(line_id, payload.quantity))
    return _serialize_cart(ses.cart)


@router.delete("/cart/items/{line_id}")
def remove_line(line_id: str, ses: PosSession = Depends(get_pos_session)):
    unwrap(ses.cart.remove_item(line_id))
    return _serialize_cart(ses.cart)


@router.post("/cart/discount")
def apply_discount(payload: Discount, ses: PosSession = Depends(get_pos_session)):
    unwrap(ses.cart.apply_cart_discount(payload))
    return _serialize_cart(ses.cart)


@router.delete("/cart/discount")
def remove_discount(ses: PosSession = Depends(get_pos_session)):
    unwrap(ses.cart.remove_cart_discount())
    return _serialize_cart(ses.cart)


@router.post("/cart/customer")
def set_customer(payload: Optional[Customer] = None, ses: PosSession = Depends(get_pos_session)):
    ses.cart.set_customer(payload)
    return _serialize_cart(ses.cart)


@router.post("/cart/promotions/best")
def best_promotion(payload: PromotionsBody, ses: PosSession = Depends(get_pos_session)):
    if payload.apply:
        res = ses.apply_best_promotion(payload.promotions, payload.at)
    else:
        res = ses.best_promotion(payload.promotions, payload.at)
    return {
        "promotion_id": res.promotion.id if res.promotion else None,
        "discount_amount": int(res.discount_amount),
        "reason": res.reason,
        "cart": _serialize_cart(ses.cart),
    }


@router.post("/pay")
def pay(payload: PayBody, ses: PosSession = Depends(get_pos_session)):
    tx = unwrap(ses.pay(payload.payments, payload.notes))
    return _serialize_tx(tx)


@router.post("/refund")
def refund(payload: RefundRequest, ses: PosSession = Depends(get_pos_session)):
    tx = unwrap(ses.refund(payload))
    return _serialize_tx(tx)


@router.get("/transactions")
def list_transactions(ses: PosSession = Depends(get_pos_session)):
    return {"transactions": [_serialize_tx(t) for t in ses.log]}


@router.get("/transactions/{tx_id}/receipt")
def receipt(tx_id: str, ses: PosSession = Depends(get_pos_session)):
    return unwrap(ses.receipt(tx_id))


@router.post("/transactions/{tx_id}/cancel")
def cancel_transaction(tx_id: str, payload: CancelBody, ses: PosSession = Depends(get_pos_session)):
    tx = unwrap(ses.cancel(tx_id, payload.reason))
    return _serialize_tx(tx)
