from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..services.session import PosSession
from .deps import get_pos_session, unwrap

router = APIRouter(prefix="/pos/shift", tags=["pos-shift"])


class OpenShiftBody(BaseModel):
    starting_cash: Decimal = Field(..., ge=0)
    notes: Optional[str] = None


class CloseShiftBody(BaseModel):
    actual_cash: Decimal = Field(..., ge=0)
    notes: Optional[str] = None


class NoteBody(BaseModel):
    text: str = Field(..., min_length=1)


@router.post("/open")
def open_shift(payload: OpenShiftBody, ses: PosSession = Depends(get_pos_session)):
    shift = unwrap(ses.open_shift(payload.starting_cash, payload.notes))
    return shift.model_dump(mode="json")


@router.post("/close")
def close_shift(payload: CloseShiftBody, ses: PosSession = Depends(get_pos_session)):
    unwrap(ses.close_shift(payload.actual_cash, payload.notes))
    return unwrap(ses.shift_summary()).model_dump(mode="json")


@router.get("/summary")
def shift_summary(ses: PosSession = Depends(get_pos_session)):
    return unwrap(ses.shift_summary()).model_dump(mode="json")


@router.post("/notes")
def add_note(payload: NoteBody, ses: PosSession = Depends(get_pos_session)):
    shift = unwrap(ses.ledger.add_note(payload.text))
    return {"shift_id": shift.id, "notes": shift.notes}
