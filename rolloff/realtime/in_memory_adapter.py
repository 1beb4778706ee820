"""
In-Memory Broadcast Adapter

Local-only broadcast implementation using callbacks and asyncio.Queue.
This is the event bus observers inside the process subscribe to.
"""
import asyncio
import inspect
import json
import logging
from typing import Any, Dict, List, Set

from .broadcast_adapter import BroadcastAdapter, Handler, Subscription

logger = logging.getLogger(__name__)


class InMemoryAdapter(BroadcastAdapter):
    """
    In-memory broadcast adapter.

    Callback subscribers are invoked in registration order; stream
    subscribers get a bounded queue and drop messages when they fall behind.
    """

    def __init__(self, max_queue_size: int = 100):
        super().__init__()
        self.max_queue_size = max_queue_size
        self._channels: Dict[str, Set[asyncio.Queue]] = {}
        self._handlers: Dict[str, List[Subscription]] = {}
        self._lock = asyncio.Lock()

    async def publish(self, channel: str, message: Dict[str, Any]) -> None:
        """
        Publish message to in-memory channel.

        Args:
            channel: Channel name
            message: Envelope (must have event, event_sequence, payload)
        """
        self.validate_message(message)

        # Serialize deterministically
        serialized = self._serialize_message(message)

        for subscription in list(self._handlers.get(channel, [])):
            if subscription.released:
                continue
            try:
                result = subscription.handler(json.loads(serialized))
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(f"Subscriber on {channel} failed: {e}")

        async with self._lock:
            # Copy to avoid modification during iteration
            queues = list(self._channels.get(channel, ()))
        for queue in queues:
            try:
                queue.put_nowait(serialized)
            except asyncio.QueueFull:
                # Drop if subscriber is slow (backpressure)
                logger.debug(f"Dropped message on {channel} for a slow subscriber")

    async def subscribe(self, channel: str):
        """
        Subscribe to channel and yield messages.

        Args:
            channel: Channel name
        Yields:
            Parsed message dicts
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue_size)

        async with self._lock:
            self._channels.setdefault(channel, set()).add(queue)

        try:
            while True:
                serialized = await queue.get()
                if serialized is None:  # Shutdown signal
                    break
                try:
                    yield json.loads(serialized)
                except json.JSONDecodeError:
                    # Skip corrupted messages
                    continue
        finally:
            # Cleanup on unsubscribe
            async with self._lock:
                if channel in self._channels:
                    self._channels[channel].discard(queue)

    def on(self, channel: str, handler: Handler) -> Subscription:
        subscription = Subscription(self, channel, handler)
        self._handlers.setdefault(channel, []).append(subscription)
        return subscription

    def _remove_subscription(self, subscription: Subscription) -> None:
        handlers = self._handlers.get(subscription.channel, [])
        if subscription in handlers:
            handlers.remove(subscription)
        if not handlers:
            self._handlers.pop(subscription.channel, None)

    def subscriber_count(self, channel: str) -> int:
        return len(self._handlers.get(channel, [])) + len(self._channels.get(channel, ()))

    async def close(self) -> None:
        """Close all channels."""
        async with self._lock:
            for channel in self._channels:
                for queue in self._channels[channel]:
                    try:
                        queue.put_nowait(None)  # Signal shutdown
                    except asyncio.QueueFull:
                        pass
            self._channels.clear()

        for handlers in list(self._handlers.values()):
            for subscription in list(handlers):
                subscription.released = True
        self._handlers.clear()
