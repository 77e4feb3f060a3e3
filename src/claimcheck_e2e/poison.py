"""
Poison-message redrive check.

The work queue is provisioned with a redrive policy (maxReceiveCount 1 and a
1 second visibility timeout in the reference stack). A message that is
received and never deleted becomes visible again once the visibility window
passes; the next receive pushes its receive count past the maximum and SQS
moves it to the dead-letter queue. The driver only observes that transfer:

    PUBLISHED -> FIRST_DELIVERY -> VISIBILITY_EXPIRED -> SECOND_DELIVERY
              -> MOVED_TO_DLQ
"""

import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from .clients import AwsClients
from .envelopes import new_poison_message, unwrap_message
from .exceptions import ContentMismatchError, MessageCountError
from .fixture import ResourceFixture

logger = logging.getLogger(__name__)


class RedriveState(str, enum.Enum):
    IDLE = "IDLE"
    PUBLISHED = "PUBLISHED"
    FIRST_DELIVERY = "FIRST_DELIVERY"
    VISIBILITY_EXPIRED = "VISIBILITY_EXPIRED"
    SECOND_DELIVERY = "SECOND_DELIVERY"
    MOVED_TO_DLQ = "MOVED_TO_DLQ"


@dataclass
class PoisonRun:
    message: str
    published_message_id: Optional[str] = None
    first_receive_count: Optional[int] = None
    dlq_message_id: Optional[str] = None
    dlq_body: Optional[str] = None
    state: RedriveState = RedriveState.IDLE
    history: List[RedriveState] = field(default_factory=lambda: [RedriveState.IDLE])

    def advance(self, state: RedriveState) -> None:
        self.state = state
        self.history.append(state)
        logger.debug("Redrive state", extra={"state": state.value})


class PoisonMessageDriver:
    def __init__(
        self,
        clients: AwsClients,
        fixture: ResourceFixture,
        receive_wait_seconds: int = 10,
        visibility_wait_seconds: float = 5,
        dlq_wait_seconds: int = 10,
        sleep: Callable[[float], Any] = time.sleep,
    ):
        self.clients = clients
        self.fixture = fixture
        self.receive_wait_seconds = receive_wait_seconds
        self.visibility_wait_seconds = visibility_wait_seconds
        self.dlq_wait_seconds = dlq_wait_seconds
        self._sleep = sleep

    def run(self, message: Optional[str] = None) -> PoisonRun:
        """
        Publishes an unprocessable string and asserts it lands on the DLQ
        unchanged. Raises MessageCountError or ContentMismatchError.
        """
        run = PoisonRun(message=message or new_poison_message())
        queue = self.clients.queue

        run.published_message_id = self.clients.topic.publish(self.fixture.topic_arn, run.message)
        run.advance(RedriveState.PUBLISHED)

        # Receive without deleting; this is the only delivery the queue allows.
        first = queue.receive(
            self.fixture.queue_url, max_messages=1, wait_seconds=self.receive_wait_seconds
        )
        if len(first) != 1:
            raise MessageCountError(self.fixture.queue_url, 1, len(first))
        run.first_receive_count = first[0].receive_count
        run.advance(RedriveState.FIRST_DELIVERY)

        self._sleep(self.visibility_wait_seconds)
        run.advance(RedriveState.VISIBILITY_EXPIRED)

        # This receive trips the redrive policy; what it returns is irrelevant.
        queue.receive(self.fixture.queue_url, max_messages=1, wait_seconds=self.receive_wait_seconds)
        run.advance(RedriveState.SECOND_DELIVERY)

        dead = queue.receive(self.fixture.dlq_url, max_messages=1, wait_seconds=self.dlq_wait_seconds)
        if len(dead) != 1:
            raise MessageCountError(self.fixture.dlq_url, 1, len(dead))

        run.dlq_message_id = dead[0].message_id
        run.dlq_body = unwrap_message(dead[0].body)
        if run.dlq_body != run.message:
            raise ContentMismatchError("dead-letter message", run.message, run.dlq_body)

        queue.delete(self.fixture.dlq_url, dead[0].receipt_handle)
        run.advance(RedriveState.MOVED_TO_DLQ)
        logger.info(
            "Poison message redriven to DLQ",
            extra={"poison_message": run.message, "dlq_message_id": run.dlq_message_id},
        )
        return run
