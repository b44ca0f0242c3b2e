"""Messaging channel interface.

This is the contract the bridges consume: publish, subscribe, and a
synchronous request/reply primitive that supplies a per-request reply
destination. Implementations own their connection; the bridges never
open or close one.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from ..errors import BridgeTimeout, TransportError


@dataclass(frozen=True)
class Delivery:
    """One inbound message, as handed to a subscriber. *reply* is the
    destination a response should be published to, or None if the sender
    does not expect one."""

    subject: str
    data: bytes
    reply: Optional[str] = None
    correlation_id: Optional[str] = None


Handler = Callable[[Delivery], None]


class Subscription(ABC):
    """Handle returned by :meth:`Channel.subscribe`."""

    subject: str

    @abstractmethod
    def cancel(self) -> None:
        """Stop delivering messages to the handler."""


class PendingReply:
    """Client-side helper that waits for the reply to one request."""

    def __init__(self, id: str):
        self.id = id
        self.data: Optional[bytes] = None
        self.error: Optional[BaseException] = None
        self.event = threading.Event()

    def wait(self, timeout: Optional[float]) -> bytes:
        if not self.event.wait(timeout):
            raise BridgeTimeout(f"no reply to {self.id} in {timeout:.3f} sec")
        if self.error is not None:
            raise self.error
        return self.data

    def _complete(self, data: bytes) -> None:
        self.data = data
        self.event.set()

    def _fail(self, error: BaseException) -> None:
        self.error = error
        self.event.set()


class Channel(ABC):
    """Minimal contract for a messaging channel."""

    @abstractmethod
    def open(self) -> None:
        """Establish the underlying connection."""

    @abstractmethod
    def close(self) -> None:
        """Tear down the underlying connection."""

    @abstractmethod
    def publish(self, subject: str, data: bytes, correlation_id: Optional[str] = None) -> None:
        """Send *data* to *subject* without waiting for anything."""

    @abstractmethod
    def subscribe(self, subject: str, handler: Handler) -> Subscription:
        """Invoke *handler* for each message arriving on *subject*. The
        handler may be called concurrently for different messages."""

    @abstractmethod
    def request(self, subject: str, data: bytes, timeout: float) -> bytes:
        """Send *data* to *subject* with a fresh reply destination and
        block until the reply arrives. Raises
        :class:`mqhttp.errors.BridgeTimeout` if *timeout* seconds elapse
        first, :class:`mqhttp.errors.TransportError` if the channel is
        unusable."""

    def reply(self, delivery: Delivery, data: bytes) -> None:
        """Publish *data* to the reply destination of *delivery*."""

        if delivery.reply is None:
            raise TransportError(f"message on {delivery.subject} has no reply destination")
        self.publish(delivery.reply, data, correlation_id=delivery.correlation_id)

    @property
    def is_open(self) -> bool:
        """Whether the channel is currently connected."""
        return False

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *exc_info):
        self.close()
