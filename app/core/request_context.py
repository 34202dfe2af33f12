from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token

_request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")
# property id of the import run executing in this context, if any
_import_subject_ctx: ContextVar[str | None] = ContextVar("import_subject", default=None)


def set_request_id(request_id: str) -> Token[str]:
    return _request_id_ctx.set(request_id)


def get_request_id() -> str:
    return _request_id_ctx.get()


def reset_request_id(token: Token[str]) -> None:
    _request_id_ctx.reset(token)


def get_import_subject() -> str | None:
    return _import_subject_ctx.get()


@contextmanager
def import_subject(property_id: str) -> Iterator[None]:
    token = _import_subject_ctx.set(property_id)
    try:
        yield
    finally:
        _import_subject_ctx.reset(token)
