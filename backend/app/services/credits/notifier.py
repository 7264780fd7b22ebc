"""Account-scoped realtime change notifications.

Subscribers (WebSocket handlers) each own an asyncio.Queue bound to their
event loop. Ledger writes publish from whatever thread they run on; delivery
is scheduled onto the subscriber's loop and never blocks or fails the
publisher. Events are hints to re-fetch, not state.
"""

import asyncio
import logging
import threading
import uuid
from collections import defaultdict

logger = logging.getLogger(__name__)

BALANCE_CHANGED = "balance_changed"


class Subscription:
    """A single subscriber's event queue for one account."""

    def __init__(self, account_id: uuid.UUID, max_queue_size: int) -> None:
        self.account_id = account_id
        self.loop = asyncio.get_running_loop()
        self.queue: asyncio.Queue[dict] = asyncio.Queue(maxsize=max_queue_size)
        self.dropped = 0

    def deliver(self, event: dict) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Realtime queue full for account %s, dropped event (%d dropped)",
                self.account_id,
                self.dropped,
            )

    async def get(self, timeout: float | None = None) -> dict:
        return await asyncio.wait_for(self.queue.get(), timeout=timeout)


class RealtimeNotifier:
    """In-process pub/sub keyed by account id.

    Usage::

        notifier = RealtimeNotifier()
        sub = notifier.subscribe(account_id)   # inside the event loop
        try:
            event = await sub.get()
        finally:
            notifier.unsubscribe(sub)

        notifier.publish(account_id, {"event": "balance_changed"})  # any thread
    """

    def __init__(self, max_queue_size: int = 100) -> None:
        self._max_queue_size = max_queue_size
        self._subscribers: dict[uuid.UUID, set[Subscription]] = defaultdict(set)
        self._lock = threading.Lock()

    def subscribe(self, account_id: uuid.UUID) -> Subscription:
        """Register a subscriber. Must be called from a running event loop."""
        subscription = Subscription(account_id, self._max_queue_size)
        with self._lock:
            self._subscribers[account_id].add(subscription)
        logger.info("Realtime subscriber added for account %s", account_id)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscribers.get(subscription.account_id)
            if subscribers is None:
                return
            subscribers.discard(subscription)
            if not subscribers:
                del self._subscribers[subscription.account_id]
        logger.info("Realtime subscriber removed for account %s", subscription.account_id)

    def subscriber_count(self, account_id: uuid.UUID) -> int:
        with self._lock:
            return len(self._subscribers.get(account_id, ()))

    def publish(self, account_id: uuid.UUID, event: dict) -> int:
        """Schedule ``event`` for every subscriber of ``account_id``.

        Returns the number of subscribers the event was handed to. Never raises.
        """
        with self._lock:
            subscribers = list(self._subscribers.get(account_id, ()))

        delivered = 0
        for subscription in subscribers:
            try:
                subscription.loop.call_soon_threadsafe(subscription.deliver, event)
                delivered += 1
            except Exception:
                # Subscriber loop already closed
                logger.exception("Failed to deliver realtime event to account %s", account_id)
        return delivered


def balance_changed_event(account_id: uuid.UUID, transaction_id: uuid.UUID, transaction_type: str) -> dict:
    return {
        "event": BALANCE_CHANGED,
        "account_id": str(account_id),
        "transaction_id": str(transaction_id),
        "transaction_type": transaction_type,
    }
