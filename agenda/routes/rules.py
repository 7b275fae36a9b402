"""Recurrence rule helpers for the repeat picker."""
from datetime import datetime

from fastapi import APIRouter
from sqlmodel import SQLModel

from agenda.calendar.rules import decode_rule, encode_rule
from agenda.models.repeat import RepeatConfig

router = APIRouter(prefix="/rules", tags=["rules"])


class EncodeRequest(SQLModel):
    repeat: RepeatConfig
    start_at: datetime
    all_day: bool = False


class DecodeRequest(SQLModel):
    rule: str | None = None


@router.post("/encode")
async def encode(payload: EncodeRequest):
    """Turn a repeat configuration into stored rule text (null for no repeat)."""
    return {"rule": encode_rule(payload.repeat, payload.start_at, payload.all_day)}


@router.post("/decode")
async def decode(payload: DecodeRequest):
    """Turn rule text back into a repeat configuration. Never fails."""
    return {"repeat": decode_rule(payload.rule)}
