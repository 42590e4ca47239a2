"""
Bulk operations.

Each item runs as its own unit of work on a bounded pool of concurrent tasks;
one item failing never rolls back the others.
"""

from dataclasses import dataclass, asdict
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional
import asyncio
import logging

from core.errors import EngineError

logger = logging.getLogger(__name__)


@dataclass
class BulkItemResult:
    application_id: int
    success: bool
    stage: Optional[str] = None
    changed: bool = False
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def unique_ids(ids: Iterable[int]) -> List[int]:
    """Drop duplicates, keep first-seen order."""
    return list(dict.fromkeys(ids))


async def run_bulk(
    application_ids: Iterable[int],
    handler: Callable[[int], Awaitable[BulkItemResult]],
    max_concurrency: int,
) -> List[BulkItemResult]:
    """
    Run ``handler`` for every id with at most ``max_concurrency`` in flight.

    Engine errors become failed item results; results keep request order.
    """
    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def run_one(application_id: int) -> BulkItemResult:
        async with semaphore:
            try:
                return await handler(application_id)
            except EngineError as e:
                logger.info(f"Bulk item {application_id} failed: {e.code} {e.message}")
                return BulkItemResult(
                    application_id=application_id,
                    success=False,
                    error_code=e.code,
                    error_message=e.message,
                )

    ids = unique_ids(application_ids)
    results = await asyncio.gather(*(run_one(application_id) for application_id in ids))
    succeeded = sum(1 for r in results if r.success)
    logger.info(f"Bulk run finished: {succeeded}/{len(ids)} succeeded")
    return list(results)
