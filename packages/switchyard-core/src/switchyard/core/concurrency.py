from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Iterable, List, Optional, TypeVar, Union

T = TypeVar("T")
R = TypeVar("R")


def run_thread_pool(
    items: Iterable[T],
    fn: Callable[[T], R],
    *,
    workers: int = 8,
    fail_fast: bool = True,
    return_exceptions: bool = False,
) -> List[Union[R, BaseException]]:
    """Run ``fn`` over ``items`` in a thread pool; results keep input order.

    With ``return_exceptions=True`` a failed item's slot holds its exception and
    every item runs to completion. Otherwise the first failure is raised
    unchanged (after cancelling pending work when ``fail_fast``).
    """
    items = list(items)
    if not items:
        return []

    results: List[Optional[Union[R, BaseException]]] = [None] * len(items)
    errors: List[tuple[int, BaseException]] = []

    with ThreadPoolExecutor(max_workers=max(1, int(workers)), thread_name_prefix="switchyard") as ex:
        fut_map = {ex.submit(fn, item): idx for idx, item in enumerate(items)}
        for fut in as_completed(fut_map):
            idx = fut_map[fut]
            try:
                results[idx] = fut.result()
            except Exception as e:
                if return_exceptions:
                    results[idx] = e
                    continue
                errors.append((idx, e))
                if fail_fast:
                    for f in fut_map:
                        if not f.done():
                            f.cancel()
                    break

    if errors:
        errors.sort(key=lambda x: x[0])
        raise errors[0][1]

    return list(results)  # type: ignore
