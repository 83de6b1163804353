# newsdesk/core/request_id.py
from __future__ import annotations

import contextvars
import uuid
from contextlib import contextmanager
from typing import ContextManager, Iterator, Optional

# One id per HTTP call to the trigger, one per ingestion pass of the worker.
# The logging processors read both, so every line of a run can be grepped.
_request_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("request_id", default=None)
_run_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("run_id", default=None)


def new_id() -> str:
    return uuid.uuid4().hex


@contextmanager
def _scoped(var: contextvars.ContextVar[Optional[str]], value: str) -> Iterator[str]:
    token = var.set(value)
    try:
        yield value
    finally:
        var.reset(token)


def get_request_id() -> Optional[str]:
    return _request_id_ctx.get()


def get_run_id() -> Optional[str]:
    return _run_id_ctx.get()


def request_scope(incoming: Optional[str] = None) -> ContextManager[str]:
    """
    Bind the request id for one trigger call. A caller-supplied
    X-Request-Id is reused so the UI and the service log the same id.
    """
    return _scoped(_request_id_ctx, (incoming or "").strip() or new_id())


def with_run_id(run_id: Optional[str] = None) -> ContextManager[str]:
    """
    Tag every log line emitted inside the block with one ingestion run id:

        with with_run_id() as run_id:
            await ingest_articles(...)
    """
    return _scoped(_run_id_ctx, run_id or new_id())
