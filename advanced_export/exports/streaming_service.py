### advanced_export/exports/streaming_service.py

"""
Record Streaming - Memory-Efficient Query Execution

Executes an export query plan in fixed-size chunks using SQLAlchemy
``yield_per`` so memory stays bounded by the chunk size, not by the total
result size.
"""

from typing import Callable, Iterator, List, Optional

from sqlalchemy.orm import Session

from advanced_export.exports.exceptions import NoDataError
from advanced_export.exports.query_builder import QueryPlan
from advanced_export.utils.logger import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[int], None]


class RecordStreamer:
    """
    Streams export records in batches.

    The sequence produced by ``stream`` is lazy, finite and can only be
    consumed once; every chunk comes from a single server-side cursor so rows
    are neither skipped nor duplicated across chunk boundaries.
    """

    def __init__(self, db: Session, chunk_size: int = 500):
        self.db = db
        self.chunk_size = chunk_size

    def count(self, plan: QueryPlan) -> int:
        """Number of records matching the plan, ignoring the record cap."""
        return int(self.db.execute(plan.count_statement()).scalar_one())

    def total_to_export(self, plan: QueryPlan) -> int:
        """
        Records the plan will actually stream (count capped at the plan limit).

        Raises NoDataError when nothing matches.
        """
        total = self.count(plan)
        if plan.limit is not None:
            total = min(total, plan.limit)
        if total == 0:
            logger.info("No records found for export", entity=plan.entity.name)
            raise NoDataError(plan.entity.name)
        return total

    def stream(
        self,
        plan: QueryPlan,
        chunk_size: Optional[int] = None,
        on_chunk: Optional[ProgressCallback] = None,
    ) -> Iterator[List]:
        """
        Generator that yields batches of ORM objects.

        Args:
            plan: Compiled query plan (the record cap is applied here)
            chunk_size: Rows per batch, defaults to the streamer's chunk size
            on_chunk: Called with the running total after each batch is consumed
        """
        chunk_size = chunk_size or self.chunk_size
        logger.debug("Starting streaming query", entity=plan.entity.name, chunk_size=chunk_size)

        result = self.db.scalars(
            plan.select(),
            execution_options={"yield_per": chunk_size, "stream_results": True},
        )

        processed = 0
        try:
            for partition in result.partitions():
                batch = list(partition)
                processed += len(batch)
                yield batch
                logger.info("Processed export chunk", entity=plan.entity.name, rows=len(batch), total=processed)
                if on_chunk is not None:
                    on_chunk(processed)
        finally:
            result.close()
