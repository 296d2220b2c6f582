"""Bounded-concurrency ordered map over a thread pool, in the spirit of `p-map`.

Used for I/O-bound fan-out (external classifier calls) where at most
``concurrency`` calls may be in flight and results must line up with inputs.

- ``concurrency`` caps in-flight mapper calls; inputs are pulled lazily.
- ``stop_on_error=True`` re-raises the first failure and cancels queued work.
  With ``False`` every call runs and failures are raised together as an
  ``ExceptionGroup``.
- A mapper may return ``p_map_skip`` to drop its item from the output.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TypeVar

InT = TypeVar("InT")
OutT = TypeVar("OutT")


class _Skip:
    __slots__ = ()

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return "p_map_skip"


p_map_skip: object = _Skip()


def p_map(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT | object],
    *,
    concurrency: int,
    stop_on_error: bool = True,
    thread_name_prefix: str = "p_map",
) -> list[OutT]:
    """Map ``iterable`` through ``mapper`` with at most ``concurrency`` calls in flight."""

    if not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    source = enumerate(iterable)
    slots: list[OutT | object] = []
    errors: list[Exception] = []
    pending: dict[Future, int] = {}

    with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix=thread_name_prefix) as pool:

        def _fill() -> None:
            while len(pending) < concurrency:
                nxt = next(source, None)
                if nxt is None:
                    return
                idx, item = nxt
                slots.append(p_map_skip)
                pending[pool.submit(mapper, item)] = idx

        _fill()
        while pending:
            done, _ = wait(pending, return_when=FIRST_COMPLETED)
            for fut in done:
                idx = pending.pop(fut)
                exc = fut.exception()
                if exc is None:
                    slots[idx] = fut.result()
                    continue
                if stop_on_error:
                    for other in pending:
                        other.cancel()
                    raise exc
                if isinstance(exc, Exception):
                    errors.append(exc)
                else:  # pragma: no cover - KeyboardInterrupt and friends
                    raise exc
            _fill()

    if errors:
        raise ExceptionGroup("p_map: one or more mapper calls failed", errors)
    return [v for v in slots if v is not p_map_skip]  # type: ignore[misc]


__all__ = ["p_map", "p_map_skip"]
