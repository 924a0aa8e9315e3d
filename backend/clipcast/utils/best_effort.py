"""Best-effort call results.

A best-effort operation may fail without failing the operation that
encloses it. Its outcome is returned rather than raised so callers can
record it and move on.
"""
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BestEffortResult(Generic[T]):
    """Outcome of a best-effort call."""
    succeeded: bool
    value: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, value: Optional[T] = None) -> "BestEffortResult[T]":
        return cls(succeeded=True, value=value)

    @classmethod
    def failed(cls, error: str, value: Optional[T] = None) -> "BestEffortResult[T]":
        return cls(succeeded=False, value=value, error=error)


async def run_best_effort(
    label: str,
    func: Callable[..., Awaitable[T]],
    *args: Any,
    **kwargs: Any,
) -> BestEffortResult[T]:
    """Await ``func`` and capture any exception as a failed result."""
    try:
        value = await func(*args, **kwargs)
    except Exception as e:
        logger.warning(f"{label} failed (best-effort): {e}")
        return BestEffortResult.failed(str(e) or type(e).__name__)
    return BestEffortResult.ok(value)
