"""
Event Bus: typed, team-addressed publish/subscribe.

Design:
- Subscribers register per team id (optionally per event class); the
  scheduler publishes without knowing who is listening.
- Plain-function handlers run inline inside `publish`, in subscription order.
- Coroutine handlers are queued and awaited one at a time by a single
  consumer task, so async subscribers see events in publish order and never
  concurrently.
- A failing handler is logged and skipped; the next subscriber still runs.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Iterable, Optional

from matchday.events.types import MatchEvent
from matchday.telemetry.metrics import record_event_dropped, record_event_published

logger = logging.getLogger("matchday.events")

Handler = Callable[[MatchEvent], Any]


class Subscription:
    """Handle returned by `EventBus.subscribe`, used to unsubscribe."""

    __slots__ = ("team_id", "handler", "event_types")

    def __init__(
        self,
        team_id: int,
        handler: Handler,
        event_types: Optional[Iterable[type[MatchEvent]]] = None,
    ):
        self.team_id = team_id
        self.handler = handler
        self.event_types = tuple(event_types) if event_types else None

    def accepts(self, event: MatchEvent) -> bool:
        if event.team_id != self.team_id:
            return False
        return self.event_types is None or isinstance(event, self.event_types)

    def __repr__(self):
        name = getattr(self.handler, "__qualname__", repr(self.handler))
        return f"Subscription(team_id={self.team_id}, handler={name})"


class EventBus:
    """
    In-memory event bus with an async consumer for coroutine handlers.

    `publish` never awaits: inline handlers must return promptly, coroutine
    handlers are deferred to the consumer loop started by `start()`.
    """

    def __init__(self, max_queue_size: int = 0):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self._subscriptions: dict[int, list[Subscription]] = {}
        self._task: Optional[asyncio.Task] = None
        self._running = False

    def subscribe(
        self,
        team_id: int,
        handler: Handler,
        event_types: Optional[Iterable[type[MatchEvent]]] = None,
    ) -> Subscription:
        """Register a handler for events addressed to `team_id`."""
        subscription = Subscription(team_id, handler, event_types)
        self._subscriptions.setdefault(team_id, []).append(subscription)
        logger.info(f"EventBus: subscribed {subscription}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subs = self._subscriptions.get(subscription.team_id)
        if not subs or subscription not in subs:
            return
        subs.remove(subscription)
        if not subs:
            del self._subscriptions[subscription.team_id]
        logger.info(f"EventBus: unsubscribed {subscription}")

    def subscriber_count(self, team_id: int) -> int:
        return len(self._subscriptions.get(team_id, []))

    def publish(self, event: MatchEvent) -> int:
        """
        Deliver an event to the subscribers of its team.

        Returns:
            Number of subscribers the event was delivered or queued to.
        """
        delivered = 0
        for subscription in list(self._subscriptions.get(event.team_id, [])):
            if not subscription.accepts(event):
                continue
            if inspect.iscoroutinefunction(subscription.handler):
                try:
                    self._queue.put_nowait((subscription, event))
                except asyncio.QueueFull:
                    logger.error(
                        f"EventBus: queue full ({self._queue.maxsize}), dropping {event.name} "
                        f"for {subscription}"
                    )
                    record_event_dropped(event.name)
                    continue
            else:
                self._invoke_inline(subscription, event)
            delivered += 1

        if delivered:
            record_event_published(event.name)
            logger.debug(f"EventBus: published {event.name} team={event.team_id} match={event.match_id}")
        return delivered

    def _invoke_inline(self, subscription: Subscription, event: MatchEvent) -> None:
        try:
            result = subscription.handler(event)
            if inspect.isawaitable(result):
                # Sync callable handing back an awaitable: run it via the consumer.
                self._queue.put_nowait((None, result))
        except Exception as e:
            logger.error(f"EventBus: handler {subscription} failed for {event.name}: {e}", exc_info=True)

    async def start(self):
        """Start the background consumer task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._consumer_loop())
        logger.info("EventBus: started consumer loop")

    async def stop(self):
        """Graceful shutdown: drain queue then stop."""
        self._running = False
        if self._task:
            # Sentinel to unblock the consumer
            await self._queue.put(None)
            try:
                await asyncio.wait_for(self._task, timeout=10.0)
            except asyncio.TimeoutError:
                self._task.cancel()
                logger.warning("EventBus: consumer did not finish in 10s, cancelled")
            self._task = None
        logger.info(f"EventBus: stopped (pending={self._queue.qsize()})")

    async def drain(self):
        """Wait until every queued coroutine handler has run."""
        await self._queue.join()

    async def _consumer_loop(self):
        """Process queued deliveries sequentially."""
        while True:
            item = await self._queue.get()
            try:
                if item is None:
                    break
                await self._dispatch(*item)
            except Exception as e:
                logger.error(f"EventBus: consumer loop error: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    async def _dispatch(self, subscription: Optional[Subscription], payload: Any):
        if subscription is None:
            await payload
            return
        try:
            await subscription.handler(payload)
        except Exception as e:
            logger.error(
                f"EventBus: handler {subscription} failed for {payload.name}: {e}",
                exc_info=True,
            )

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()
