"""
Broadcast Adapter Interface

Abstract base class for in-process event fan-out.
Deterministic serialization, sequenced envelopes, explicit subscriptions.
"""
import abc
import hashlib
import itertools
import json
from typing import Any, Awaitable, Callable, Dict, Union

Handler = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]


class Subscription:
    """
    Handle returned by BroadcastAdapter.on().

    Must be released by whoever acquired it; usable as a context manager.
    """

    def __init__(self, adapter: "BroadcastAdapter", channel: str, handler: Handler):
        self.adapter = adapter
        self.channel = channel
        self.handler = handler
        self.released = False

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        self.adapter._remove_subscription(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class BroadcastAdapter(abc.ABC):
    """
    Abstract base class for broadcast adapters.

    Guarantees:
    - Deterministic message serialization (sort_keys=True)
    - Every envelope carries event, event_sequence, event_hash and payload
    - Best-effort delivery: a failing subscriber never fails the publisher
    """

    def __init__(self):
        self._sequence = itertools.count(1)

    @abc.abstractmethod
    async def publish(self, channel: str, message: Dict[str, Any]) -> None:
        """
        Publish message to channel.

        Args:
            channel: Channel name (the event name, e.g. "rolloff.rollUpdate")
            message: Envelope built by build_message()
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def subscribe(self, channel: str):
        """
        Subscribe to channel and yield messages.

        Args:
            channel: Channel name to subscribe to
        Yields:
            Parsed message dict
        """
        raise NotImplementedError

    @abc.abstractmethod
    def on(self, channel: str, handler: Handler) -> Subscription:
        """
        Register a callback for every message on channel.

        Args:
            channel: Channel name
            handler: Sync or async callable receiving the envelope
        Returns:
            Subscription handle; release() it when done
        """
        raise NotImplementedError

    @abc.abstractmethod
    def _remove_subscription(self, subscription: Subscription) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def close(self) -> None:
        """Close adapter and drop every subscriber."""
        raise NotImplementedError

    def build_message(self, event: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Wrap a payload in a sequenced, hashed envelope.

        Args:
            event: Event name
            payload: JSON-serializable payload
        Returns:
            Envelope dict
        """
        message = {
            "event": event,
            "event_sequence": next(self._sequence),
            "payload": payload,
        }
        message["event_hash"] = self._compute_message_hash(message)
        return message

    def _serialize_message(self, message: Dict[str, Any]) -> str:
        """
        Serialize message deterministically.

        Requirements:
        - sort_keys=True for determinism
        - No pretty printing (compact)
        """
        return json.dumps(message, sort_keys=True, separators=(',', ':'), default=str)

    def _compute_message_hash(self, message: Dict[str, Any]) -> str:
        """
        Compute SHA256 hash of message for integrity.

        Args:
            message: Message dict
        Returns:
            Hex digest of SHA256 hash
        """
        serialized = self._serialize_message(message)
        return hashlib.sha256(serialized.encode()).hexdigest()

    def validate_message(self, message: Dict[str, Any]) -> bool:
        """
        Validate message has the envelope fields.

        Required fields:
        - event: str
        - event_sequence: int
        - payload: dict

        Raises:
            ValueError: If required fields missing
        """
        required = ["event", "event_sequence", "payload"]
        missing = [f for f in required if f not in message]
        if missing:
            raise ValueError(f"Message missing required fields: {missing}")
        return True

