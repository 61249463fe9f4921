"""Status event fan-out for workflow runs.

The executor publishes every node status change to a StatusBroadcaster.
Consumers either register a synchronous observer or subscribe a bounded
asyncio.Queue (used by the WebSocket endpoint). A slow queue consumer loses
its oldest events rather than stalling the run.
"""

import asyncio
from typing import Any, Callable, List, Optional, Protocol, Set

from core.logging import get_logger
from .models import NodeExecutionResult, NodeStatus, StatusEvent

logger = get_logger(__name__)

StatusCallback = Callable[[str, NodeStatus, Optional[NodeExecutionResult]], Any]


class StatusObserver(Protocol):
    """Receives status events synchronously, in publish order."""

    def on_event(self, event: StatusEvent) -> None:
        ...


class CallbackObserver:
    """Adapts a plain on_status_update(node_id, status, result) callback."""

    def __init__(self, callback: StatusCallback):
        self._callback = callback

    def on_event(self, event: StatusEvent) -> None:
        self._callback(event.node_id, event.status, event.result)


class StatusBroadcaster:
    """Fans status events out to observers and queue subscribers."""

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._observers: List[StatusObserver] = []
        self._queues: Set[asyncio.Queue] = set()

    def add_observer(self, observer: StatusObserver) -> None:
        self._observers.append(observer)

    def remove_observer(self, observer: StatusObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def subscribe(self) -> asyncio.Queue:
        """Register a bounded queue that receives every future event."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._queues.add(queue)
        logger.info("Status subscriber added", total=len(self._queues))
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._queues.discard(queue)
        logger.info("Status subscriber removed", total=len(self._queues))

    @property
    def subscriber_count(self) -> int:
        return len(self._queues)

    def publish(self, event: StatusEvent,
                extra_observers: Optional[List[StatusObserver]] = None) -> None:
        """Deliver an event to every observer, then every queue.

        Observer exceptions are logged and do not reach the run.
        """
        for observer in list(self._observers) + list(extra_observers or []):
            try:
                observer.on_event(event)
            except Exception as e:
                logger.warning("Status observer failed", node_id=event.node_id,
                               status=event.status.value, error=str(e))

        for queue in list(self._queues):
            if queue.full():
                try:
                    queue.get_nowait()
                except asyncio.QueueEmpty:
                    pass
                logger.debug("Status queue full, dropped oldest event")
            queue.put_nowait(event)
