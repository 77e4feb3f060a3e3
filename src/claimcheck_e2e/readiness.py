"""
Waits for the SNS → SQS subscription to be confirmed.

Subscription confirmation is asynchronous relative to `apply` finishing and
there is no push notification for it, so the topic's subscription list is
polled on a coarse interval.
"""

import logging
import time
from typing import Any, Callable, Optional

from .clients import Subscription, Topic
from .polling import poll_until

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 300
DEFAULT_POLL_INTERVAL_SECONDS = 5


def find_active_subscription(topic: Topic, topic_arn: str, endpoint_arn: str) -> Optional[Subscription]:
    """Returns the confirmed subscription delivering *topic_arn* to *endpoint_arn*, if any."""
    for sub in topic.list_subscriptions(topic_arn):
        if sub.endpoint == endpoint_arn and not sub.pending:
            return sub
    return None


def wait_for_active_subscription(
    topic: Topic,
    topic_arn: str,
    queue_arn: str,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    sleep: Callable[[float], Any] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    """
    True once a subscription with a matching endpoint and a non-pending ARN
    exists, False if *timeout_seconds* elapse first. Never raises on timeout;
    AWS API errors still propagate.
    """
    logger.info(
        "Waiting for subscription to become active",
        extra={
            "topic_arn": topic_arn,
            "queue_arn": queue_arn,
            "timeout_seconds": timeout_seconds,
        },
    )
    result = poll_until(
        lambda: find_active_subscription(topic, topic_arn, queue_arn),
        interval=poll_interval_seconds,
        timeout=timeout_seconds,
        description="active subscription",
        sleep=sleep,
        clock=clock,
    )
    if result.succeeded:
        logger.info(
            "Subscription active",
            extra={
                "subscription_arn": result.value.subscription_arn,
                "attempts": result.attempts,
                "elapsed_seconds": round(result.elapsed, 1),
            },
        )
        return True

    logger.warning(
        "Subscription did not become active in time",
        extra={"attempts": result.attempts, "elapsed_seconds": round(result.elapsed, 1)},
    )
    return False
