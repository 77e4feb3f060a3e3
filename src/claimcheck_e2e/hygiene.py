"""
Queue purges that bracket each phase.

A stray message left by an earlier phase or run would be received in place
of the expected one and break the receive-count based assertions. SQS allows
one PurgeQueue per queue every 60 seconds, so a purge that is refused as
already in progress falls back to draining the queue by hand.
"""

import logging
import time
from typing import Any, Callable, Iterable

from .clients import PURGE_IN_PROGRESS_CODES, WorkQueue
from .exceptions import AwsOperationError, CleanupError

logger = logging.getLogger(__name__)

DEFAULT_SETTLE_SECONDS = 5
DRAIN_WAIT_SECONDS = 1
MAX_DRAIN_BATCHES = 100


def drain_queue(
    queue: WorkQueue,
    queue_url: str,
    wait_seconds: int = DRAIN_WAIT_SECONDS,
    max_batches: int = MAX_DRAIN_BATCHES,
) -> int:
    """
    Receives and deletes messages until a receive comes back empty, and
    returns how many were deleted. Messages hidden by another consumer's
    visibility timeout are not seen.
    """
    drained = 0
    for _ in range(max_batches):
        messages = queue.receive(queue_url, max_messages=10, wait_seconds=wait_seconds)
        if not messages:
            break
        for message in messages:
            queue.delete(queue_url, message.receipt_handle)
            drained += 1
    logger.info("Drained queue", extra={"queue_url": queue_url, "drained": drained})
    return drained


def purge_queue(
    queue: WorkQueue,
    queue_url: str,
    settle_seconds: float = DEFAULT_SETTLE_SECONDS,
    sleep: Callable[[float], Any] = time.sleep,
) -> bool:
    """
    Purges *queue_url* and waits *settle_seconds* for the purge to complete.

    Purging an empty queue is not an error. When a purge is already in
    progress the queue is drained instead and False is returned. Any other
    failure raises CleanupError.
    """
    purged = True
    try:
        queue.purge(queue_url)
        logger.info("Purged queue", extra={"queue_url": queue_url})
    except AwsOperationError as e:
        if e.aws_error_code not in PURGE_IN_PROGRESS_CODES:
            raise CleanupError("sqs:PurgeQueue", e.message, context={"queue_url": queue_url}) from e
        logger.warning(
            "Purge already in progress, draining instead",
            extra={"queue_url": queue_url},
        )
        purged = False
        try:
            drain_queue(queue, queue_url)
        except AwsOperationError as drain_error:
            raise CleanupError(
                "sqs:DrainQueue", drain_error.message, context={"queue_url": queue_url}
            ) from drain_error

    if settle_seconds > 0:
        sleep(settle_seconds)
    return purged


def purge_queues(
    queue: WorkQueue,
    queue_urls: Iterable[str],
    settle_seconds: float = DEFAULT_SETTLE_SECONDS,
    sleep: Callable[[float], Any] = time.sleep,
) -> None:
    """Purges every queue, then settles once."""
    for url in queue_urls:
        purge_queue(queue, url, settle_seconds=0, sleep=sleep)
    if settle_seconds > 0:
        sleep(settle_seconds)
