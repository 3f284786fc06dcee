from typing import Dict, Optional

from fastapi import Header, HTTPException

from ..core.errors import Result
from ..services.session import PosSession

# in-memory sessions, one per cashier
_SESSIONS: Dict[str, PosSession] = {}
_STORE = None


def use_store(store) -> None:
    global _STORE
    _STORE = store
    _SESSIONS.clear()


def get_pos_session(
    x_cashier_id: str = Header(..., alias="X-Cashier-Id"),
    x_cashier_name: Optional[str] = Header(default=None, alias="X-Cashier-Name"),
) -> PosSession:
    cashier_id = x_cashier_id.strip()
    if not cashier_id:
        raise HTTPException(status_code=400, detail={"code": "CASHIER_REQUIRED", "message": "Kasir wajib diisi"})
    ses = _SESSIONS.get(cashier_id)
    if ses is None:
        ses = PosSession(cashier_id, x_cashier_name or cashier_id, store=_STORE)
        _SESSIONS[cashier_id] = ses
    elif x_cashier_name:
        ses.cashier_name = x_cashier_name
    return ses


def unwrap(res: Result):
    if not res.ok:
        raise HTTPException(status_code=res.error.status_code, detail=res.error.to_dict())
    return res.value
