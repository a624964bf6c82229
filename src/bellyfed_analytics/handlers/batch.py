"""Lambda handler for the batch event channel (SQS event source).

Reports partial failures so the channel redelivers only the records that
failed. Records rejected for invalid input are logged and dropped; they would
fail the same way on every redelivery.
"""

import asyncio
from typing import Any

from ..ingestor import BatchResult
from ..structured_logging import StructuredLogger
from . import build_engine

logger = StructuredLogger(__name__)


async def process_records(records: list[dict[str, Any]]) -> BatchResult:
    """Ingest a batch with a fresh engine."""
    async with build_engine() as engine:
        return await engine.ingestor.ingest_batch(records)


def handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """Main Lambda handler for batched analytics events."""
    records = event.get("Records", [])
    result = asyncio.run(process_records(records))

    if result.rejected:
        logger.warning("Dropped invalid records", message_ids=result.rejected)

    return result.to_batch_response()
