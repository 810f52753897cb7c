"""
Per-case change channel
=======================

In-process publish/subscribe for case events. A websocket view holds a
subscription for exactly as long as it is open:

    async with get_hub().subscribe(case_id) as subscription:
        event = await subscription.next_event()

Each subscriber owns its own asyncio queue. Publishers may run on any
thread (sync endpoints run in FastAPI's threadpool); events are handed to
the subscriber's event loop with ``call_soon_threadsafe``.
"""

import asyncio
import logging
import threading
from contextlib import asynccontextmanager
from typing import Dict, List, Optional, Any

logger = logging.getLogger(__name__)

MESSAGE_INSERTED = "message_inserted"


class Subscription:
    """One open view on a case channel"""

    def __init__(self, case_id: str, loop: asyncio.AbstractEventLoop):
        self.case_id = case_id
        self._loop = loop
        self._queue: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()

    def _deliver(self, event: Dict[str, Any]) -> None:
        self._loop.call_soon_threadsafe(self._queue.put_nowait, event)

    async def next_event(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout)

    def pending(self) -> int:
        return self._queue.qsize()


class CaseChannelHub:
    """Registry of live subscriptions, keyed by case id"""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: Dict[str, List[Subscription]] = {}

    @asynccontextmanager
    async def subscribe(self, case_id: str):
        subscription = Subscription(case_id, asyncio.get_running_loop())
        with self._lock:
            self._subscriptions.setdefault(case_id, []).append(subscription)
        logger.debug(f"Subscribed to case {case_id}")
        try:
            yield subscription
        finally:
            with self._lock:
                remaining = [s for s in self._subscriptions.get(case_id, []) if s is not subscription]
                if remaining:
                    self._subscriptions[case_id] = remaining
                else:
                    self._subscriptions.pop(case_id, None)
            logger.debug(f"Unsubscribed from case {case_id}")

    def publish(self, case_id: str, event_type: str, payload: Optional[Dict[str, Any]] = None) -> int:
        """Fan an event out to every subscriber of a case. Returns the number reached."""
        with self._lock:
            subscriptions = list(self._subscriptions.get(case_id, []))

        event = {"type": event_type, "case_id": case_id, "payload": payload or {}}
        delivered = 0
        for subscription in subscriptions:
            try:
                subscription._deliver(event)
                delivered += 1
            except RuntimeError as e:
                # Subscriber's loop already closed
                logger.warning(f"Dropping event for closed subscriber on case {case_id}: {e}")
        return delivered

    def subscriber_count(self, case_id: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(case_id, []))


_hub = CaseChannelHub()


def get_hub() -> CaseChannelHub:
    return _hub
