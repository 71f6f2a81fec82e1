"""Live subscriber registry and broadcast.

Owns:
- registering subscribers and handing each an initial state snapshot
- pushing every applied event and the resulting state to all subscribers
- per-subscriber bounded buffers so a stalled consumer never blocks ingestion

All methods here are loop-confined: call them from the event loop thread.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from collections.abc import Callable

from footfall.exceptions import SubscriptionClosedError
from footfall.models.messages import InitialStateSnapshot, LocationStateUpdate, NewTrafficEvent, RealtimeMessage
from footfall.models.traffic import LocationState, TrafficEvent

_logger = logging.getLogger(__name__)

DEFAULT_MAX_PENDING = 256


class Subscription:
    """Delivery endpoint for one live subscriber.

    Messages are buffered until the consumer reads them with :meth:`get` or
    ``async for``. When the buffer is full the oldest incremental message is
    dropped; an unread initial snapshot is never dropped, so it is always the
    first message a consumer sees.
    """

    def __init__(self, subscription_id: str, *, max_pending: int = DEFAULT_MAX_PENDING) -> None:
        if max_pending < 1:
            raise ValueError("max_pending must be at least 1")
        self.subscription_id = subscription_id
        self._max_pending = max_pending
        self._pending: deque[RealtimeMessage] = deque()
        self._ready = asyncio.Event()
        self._closed = False
        self.delivered = 0
        self.dropped = 0

    def __repr__(self) -> str:
        return f"Subscription({self.subscription_id!r}, pending={len(self._pending)}, closed={self._closed})"

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return len(self._pending)

    def offer(self, message: RealtimeMessage) -> bool:
        """Buffer *message* without waiting.

        Returns False if a message had to be dropped (or the subscription is
        closed).
        """
        if self._closed:
            return False

        lossless = True
        if len(self._pending) >= self._max_pending:
            self.dropped += 1
            lossless = False
            if isinstance(self._pending[0], InitialStateSnapshot):
                if len(self._pending) == 1:
                    # The incoming message is itself the oldest incremental one.
                    return False
                del self._pending[1]
            else:
                self._pending.popleft()

        self._pending.append(message)
        self._ready.set()
        return lossless

    def close(self) -> None:
        """Discard pending messages and wake up any waiting consumer."""
        if self._closed:
            return
        self._closed = True
        self._pending.clear()
        self._ready.set()

    def get_nowait(self) -> RealtimeMessage | None:
        if not self._pending:
            if self._closed:
                raise SubscriptionClosedError(f"Subscription {self.subscription_id} is closed")
            return None
        self.delivered += 1
        return self._pending.popleft()

    async def get(self) -> RealtimeMessage:
        """Wait for the next message.

        Raises
        ------
        SubscriptionClosedError
            Once the subscription has been closed.
        """
        while not self._pending:
            if self._closed:
                raise SubscriptionClosedError(f"Subscription {self.subscription_id} is closed")
            self._ready.clear()
            await self._ready.wait()
        self.delivered += 1
        return self._pending.popleft()

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> RealtimeMessage:
        try:
            return await self.get()
        except SubscriptionClosedError:
            raise StopAsyncIteration from None


class Broadcaster:
    """Registry of live subscribers.

    Parameters
    ----------
    snapshot
        Returns the current state of every known location; called once per
        registration to build the initial snapshot.
    max_pending
        Per-subscriber buffer size.
    """

    def __init__(
        self,
        snapshot: Callable[[], list[LocationState]],
        *,
        max_pending: int = DEFAULT_MAX_PENDING,
    ) -> None:
        self._snapshot = snapshot
        self._max_pending = max_pending
        self._subscriptions: dict[str, Subscription] = {}
        self._closed = False

    def __len__(self) -> int:
        return len(self._subscriptions)

    @property
    def closed(self) -> bool:
        return self._closed

    def subscriptions(self) -> list[Subscription]:
        return list(self._subscriptions.values())

    def register(self, subscription_id: str | None = None) -> Subscription:
        """Register a new subscriber.

        The initial snapshot is buffered before this returns, ahead of any
        message published afterwards.

        Raises
        ------
        SubscriptionClosedError
            If the broadcaster has been shut down.
        ValueError
            If *subscription_id* is already registered.
        """
        if self._closed:
            raise SubscriptionClosedError("Broadcaster is closed")

        sub_id = subscription_id or uuid.uuid4().hex
        if sub_id in self._subscriptions:
            raise ValueError(f"Subscription {sub_id} is already registered")

        subscription = Subscription(sub_id, max_pending=self._max_pending)
        subscription.offer(InitialStateSnapshot(payload=self._snapshot()))
        self._subscriptions[sub_id] = subscription
        _logger.info("Subscriber registered: %s (total=%d)", sub_id, len(self._subscriptions))
        return subscription

    def deregister(self, subscription: Subscription | str) -> bool:
        """Remove a subscriber and release its buffer. Idempotent.

        Returns True if the subscriber was registered. Subscriptions this
        broadcaster does not hold are left untouched.
        """
        sub_id = subscription if isinstance(subscription, str) else subscription.subscription_id
        held = self._subscriptions.get(sub_id)
        if held is None or (isinstance(subscription, Subscription) and held is not subscription):
            return False
        removed = self._subscriptions.pop(sub_id)
        removed.close()
        _logger.info("Subscriber deregistered: %s (total=%d)", sub_id, len(self._subscriptions))
        return True

    def publish(self, event: TrafficEvent, state: LocationState) -> None:
        """Push the raw event, then the updated state, to every subscriber.

        Never waits on a subscriber; slow ones lose their oldest messages.
        """
        messages: tuple[RealtimeMessage, ...] = (
            NewTrafficEvent(payload=event),
            LocationStateUpdate(payload=state),
        )
        for subscription in list(self._subscriptions.values()):
            try:
                for message in messages:
                    if not subscription.offer(message) and subscription.dropped == 1:
                        _logger.warning(
                            "Subscriber %s is lagging; dropping oldest pending messages",
                            subscription.subscription_id,
                        )
            except Exception:
                _logger.exception("Delivery to subscriber %s failed", subscription.subscription_id)

    def close_all(self) -> None:
        """Close every subscription and refuse new registrations."""
        self._closed = True
        subscriptions = list(self._subscriptions.values())
        self._subscriptions.clear()
        for subscription in subscriptions:
            subscription.close()
        if subscriptions:
            _logger.info("Closed %d subscriber(s)", len(subscriptions))
