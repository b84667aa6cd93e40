from __future__ import annotations

from typing import Callable, Generator

from sqlalchemy.orm import Session

from stockpost.app.db.session import SessionLocal


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> Callable[[], Session]:
    """Bulk operations open one session per order."""
    return SessionLocal
