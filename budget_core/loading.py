import asyncio
from typing import Dict, Tuple

from budget_core.domain import Snapshot
from budget_core.storage import StoragePort
from budget_core.transforms import KINDS


async def load_collections(storage: StoragePort, user_id: str) -> Dict[str, Tuple]:
    """Load every record kind for ``user_id`` concurrently.

    Backends are synchronous, so each read runs in a worker thread.  The
    first failing read propagates once all reads have settled.
    """
    async def load_one(kind: str) -> Tuple[str, Tuple]:
        records = await asyncio.to_thread(storage.list_records, kind, user_id)
        return kind, records

    results = await asyncio.gather(*(load_one(k) for k in KINDS), return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return dict(results)


async def load_snapshot(storage: StoragePort, user_id: str) -> Snapshot:
    return Snapshot(**await load_collections(storage, user_id))
