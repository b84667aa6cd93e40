from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from stockpost.app.api.deps import get_db

router = APIRouter()


@router.get("/health")
def health():
    return {"ok": True, "service": "stockpost"}


@router.get("/db-ping")
def db_ping(db: Session = Depends(get_db)):
    val = db.execute(text("SELECT 1")).scalar()
    return {"db": "ok", "select1": val}
