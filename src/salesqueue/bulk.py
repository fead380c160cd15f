"""Batched fetch-by-identifier that tolerates partial upstream failure."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from salesqueue.connectors.base import ConnectorError, ValidationError

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 100

BatchFetcher = Callable[[List[int]], Awaitable[Sequence[Any]]]


@dataclass
class BatchFailure:
    """A batch whose fetch failed and whose entities are missing."""

    label: str
    batch_index: int
    ids: List[int]
    error: Exception

    @property
    def id_range(self) -> str:
        return f"{self.ids[0]}..{self.ids[-1]}" if self.ids else ""


def _default_id_of(entity: Any) -> Optional[int]:
    if isinstance(entity, dict):
        return entity.get("id")
    return getattr(entity, "id", None)


def partition(ids: Sequence[int], size: int) -> List[List[int]]:
    """Split `ids` into consecutive batches of at most `size`."""
    return [list(ids[i:i + size]) for i in range(0, len(ids), size)]


class BulkFetcher:
    """Fetches entities by identifier in bounded batches.

    Batches are issued concurrently and merged by each entity's own id.
    An upstream failure in one batch is logged and, when the caller passes a
    `failures` list, recorded there; that batch's entities are simply absent
    from the result. Malformed requests (`ValidationError`) and non-transport
    errors still propagate. The fetcher keeps no state between calls.
    """

    def __init__(self, batch_size: int = MAX_BATCH_SIZE):
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.batch_size = batch_size

    async def fetch(
        self,
        ids: Iterable[int],
        fetch_batch: BatchFetcher,
        *,
        label: str = "entities",
        id_of: Callable[[Any], Optional[int]] = _default_id_of,
        failures: Optional[List[BatchFailure]] = None,
    ) -> Dict[int, Any]:
        """Fetch all `ids` and return an id -> entity map.

        Args:
            ids: Identifiers to resolve (duplicates are ignored)
            fetch_batch: async `(ids) -> entities` for one batch
            label: Entity kind, used in diagnostics
            id_of: Extracts the identifier from a returned entity
            failures: Receives one BatchFailure per absorbed batch error

        Returns:
            Map of every entity returned by a successful batch.
        """
        unique_ids = list(dict.fromkeys(ids))
        if not unique_ids:
            return {}

        batches = partition(unique_ids, self.batch_size)
        results = await asyncio.gather(
            *(fetch_batch(batch) for batch in batches),
            return_exceptions=True,
        )

        entities: Dict[int, Any] = {}
        for index, (batch, result) in enumerate(zip(batches, results)):
            if isinstance(result, BaseException):
                if isinstance(result, ValidationError) or not isinstance(result, ConnectorError):
                    raise result
                failure = BatchFailure(label=label, batch_index=index, ids=batch, error=result)
                if failures is not None:
                    failures.append(failure)
                logger.warning(
                    f"Error fetching {label} batch {index + 1}/{len(batches)} "
                    f"(ids {failure.id_range}): {result}"
                )
                continue

            for entity in result or []:
                entity_id = id_of(entity)
                if entity_id is not None:
                    entities[entity_id] = entity

        logger.debug(f"Bulk fetched {len(entities)}/{len(unique_ids)} {label} in {len(batches)} batches")
        return entities
