"""Bounded fan-out with positional join.

Runs one coroutine per item with a concurrency cap, waits for all of them,
and returns results aligned to the input order regardless of which call
finished first.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Sequence, TypeVar

logger = logging.getLogger("packagescout")

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class BatchResult(Generic[R]):
    values: list[R | None]
    aborted_by: BaseException | None = None
    attempted: list[bool] = field(default_factory=list)

    @property
    def aborted(self) -> bool:
        return self.aborted_by is not None


async def fan_out(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    limit: int,
    abort_on: tuple[type[BaseException], ...] = (),
) -> BatchResult[R]:
    """Run *worker* over *items*, at most *limit* at a time.

    An exception listed in *abort_on* stops the batch: items that have not
    started are skipped and results arriving afterwards are dropped, leaving
    their slot as None. Any other exception only empties its own slot.
    """
    values: list[R | None] = [None] * len(items)
    attempted = [False] * len(items)
    if not items:
        return BatchResult(values, None, attempted)

    semaphore = asyncio.Semaphore(max(1, limit))
    abort = asyncio.Event()
    outcome: dict[str, BaseException] = {}

    async def run(index: int, item: T) -> None:
        async with semaphore:
            if abort.is_set():
                return
            attempted[index] = True
            try:
                value = await worker(item)
            except abort_on as e:
                if not abort.is_set():
                    outcome["aborted_by"] = e
                    abort.set()
                return
            except Exception:
                logger.warning("fanout ITEM_FAILED index=%d", index, exc_info=True)
                return
            if not abort.is_set():
                values[index] = value

    await asyncio.gather(*(run(i, item) for i, item in enumerate(items)))
    return BatchResult(values, outcome.get("aborted_by"), attempted)
