"""Push-based observation of job state changes.

The EventBus lets a presentation layer follow job changes and new
execution records without polling the service. Handlers can be plain
callables or coroutine functions; bounded queues are available for
streaming consumers.
"""

import asyncio
import inspect
import logging
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel, Field

from tickcron.cron.types import CronJob, ExecutionRecord

logger = logging.getLogger(__name__)


class JobEventKind(str, Enum):
    """Kinds of job events."""

    JOB_ADDED = "job_added"
    JOB_UPDATED = "job_updated"
    JOB_DELETED = "job_deleted"
    EXECUTION_STARTED = "execution_started"
    EXECUTION_RECORDED = "execution_recorded"


class JobEvent(BaseModel):
    """A job state change.

    Attributes:
        kind: What happened.
        job: Snapshot of the job after the change.
        record: The new execution record, for ``execution_recorded``.
        timestamp: When the event was published.
    """

    kind: JobEventKind = Field(..., description="What happened")
    job: CronJob = Field(..., description="Job snapshot after the change")
    record: ExecutionRecord | None = Field(
        default=None,
        description="New execution record"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Publication time"
    )


EventHandler = Callable[[JobEvent], Any]


class EventBus:
    """Publish/subscribe bus for job events."""

    def __init__(self, max_history: int = 200) -> None:
        self._handlers: list[tuple[EventHandler, frozenset[JobEventKind] | None]] = []
        self._queues: list[asyncio.Queue[JobEvent]] = []
        self._history: deque[JobEvent] = deque(maxlen=max_history)
        self._pending: set[asyncio.Task] = set()

    def subscribe(
        self,
        handler: EventHandler,
        kinds: set[JobEventKind] | None = None,
    ) -> Callable[[], None]:
        """Register a handler.

        Args:
            handler: Callable or coroutine function receiving each event.
            kinds: Event kinds to receive (None means all).

        Returns:
            A function that removes the subscription.
        """
        entry = (handler, frozenset(kinds) if kinds else None)
        self._handlers.append(entry)

        def unsubscribe() -> None:
            if entry in self._handlers:
                self._handlers.remove(entry)

        return unsubscribe

    def stream(self, maxsize: int = 100) -> asyncio.Queue[JobEvent]:
        """Create a queue receiving every published event.

        Queues that fill up are considered dead and are dropped.
        """
        queue: asyncio.Queue[JobEvent] = asyncio.Queue(maxsize=maxsize)
        self._queues.append(queue)
        return queue

    def close_stream(self, queue: asyncio.Queue[JobEvent]) -> None:
        if queue in self._queues:
            self._queues.remove(queue)

    def publish(self, event: JobEvent) -> None:
        """Deliver an event to all matching handlers and streams.

        Handler errors are logged and never reach the publisher.
        """
        self._history.append(event)

        for handler, kinds in list(self._handlers):
            if kinds is not None and event.kind not in kinds:
                continue
            try:
                outcome = handler(event)
            except Exception:
                logger.exception(f"Event handler failed for {event.kind.value}")
                continue
            if inspect.isawaitable(outcome):
                self._schedule(outcome, event)

        dead: list[asyncio.Queue[JobEvent]] = []
        for queue in self._queues:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                dead.append(queue)
        for queue in dead:
            logger.debug("Dropping full event stream")
            self._queues.remove(queue)

    def _schedule(self, awaitable: Any, event: JobEvent) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running event loop for async handler of {event.kind.value}")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        task = asyncio.ensure_future(awaitable, loop=loop)
        self._pending.add(task)
        task.add_done_callback(self._handler_done)

    def _handler_done(self, task: asyncio.Future) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Async event handler failed: {exc!r}")

    def recent(self, n: int = 50, kind: JobEventKind | None = None) -> list[JobEvent]:
        """Return the most recent events, oldest first."""
        events = list(self._history)
        if kind is not None:
            events = [e for e in events if e.kind == kind]
        return events[-n:]
