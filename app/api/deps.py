from __future__ import annotations

from collections.abc import Iterator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.orm import Session

from app.db.base import SessionLocal, session_scope


def get_db() -> Iterator[Session]:
    with session_scope(SessionLocal) as db:
        yield db


DbSession = Annotated[Session, Depends(get_db)]
