from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from uuid import uuid4

NO_RUN = "-"

_run_id_ctx: ContextVar[str] = ContextVar("enum_replace_run_id", default=NO_RUN)


def get_run_id() -> str:
    return _run_id_ctx.get()


@contextmanager
def run_scope(run_id: str | None = None) -> Iterator[str]:
    """Tag log records with one id for the duration of a migration.

    A scope opened while another is active keeps the outer id unless ``run_id``
    is given explicitly.
    """
    current = _run_id_ctx.get()
    if run_id is None and current != NO_RUN:
        yield current
        return

    token = _run_id_ctx.set(run_id or uuid4().hex)
    try:
        yield _run_id_ctx.get()
    finally:
        _run_id_ctx.reset(token)
