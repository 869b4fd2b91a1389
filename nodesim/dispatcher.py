from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from threading import Event
from typing import Any, Callable, Sequence

DEFAULT_WORKERS = 5


@dataclass(frozen=True)
class UnitResult:
    item: Any
    value: Any = None
    error: BaseException | None = None
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.skipped


def parallelize(
    workers: int,
    items: Sequence[Any],
    fn: Callable[[Any], Any],
    cancel: Event | None = None,
    on_error: Callable[[Any, BaseException], None] | None = None,
) -> list[UnitResult]:
    """Run ``fn`` over ``items`` with at most ``workers`` calls in flight.

    Blocks until every item has finished. A raising item is recorded as a
    failed :class:`UnitResult` (and passed to ``on_error``); it never stops
    the others. Items that have not started when ``cancel`` is set are
    skipped. Results come back in completion order.
    """
    if not items:
        return []

    def _run(item: Any) -> UnitResult:
        if cancel is not None and cancel.is_set():
            return UnitResult(item=item, skipped=True)
        try:
            return UnitResult(item=item, value=fn(item))
        except Exception as e:
            if on_error is not None:
                on_error(item, e)
            return UnitResult(item=item, error=e)

    results: list[UnitResult] = []
    bound = max(1, min(int(workers), len(items)))
    with ThreadPoolExecutor(max_workers=bound, thread_name_prefix="nodesim-sync") as executor:
        futures = [executor.submit(_run, item) for item in items]
        for future in as_completed(futures):
            results.append(future.result())
    return results
