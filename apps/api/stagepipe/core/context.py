from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass


_correlation_id: ContextVar[str | None] = ContextVar("stagepipe_correlation_id", default=None)


@dataclass
class RequestContext:
    request_id: str
    correlation_id: str
    principal_id: str | None


def get_correlation_id() -> str | None:
    return _correlation_id.get()


@contextmanager
def bind_correlation_id(value: str | None) -> Iterator[str | None]:
    """Make ``value`` the correlation id for logs, spans and events emitted inside the block."""

    token = _correlation_id.set(value)
    try:
        yield value
    finally:
        _correlation_id.reset(token)
