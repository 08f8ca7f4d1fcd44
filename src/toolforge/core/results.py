"""Tagged results returned at the upstream-service boundary.

Calls to external AI services never raise into the request handler.  They
return one of:

- :class:`Ok` with the parsed value,
- :class:`ParseError` when the service answered but the answer is unusable,
- :class:`UpstreamError` when the call itself failed.

Callers branch on the type and choose a fallback explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class ParseError:
    reason: str
    raw: str | None = None


@dataclass(frozen=True)
class UpstreamError:
    reason: str
    cause: BaseException | None = None


Result = Union[Ok[T], ParseError, UpstreamError]
