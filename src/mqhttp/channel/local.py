"""In-process messaging channel.

Implements the full channel contract without a broker: subjects are
names in a dictionary, reply destinations are ``_INBOX.<uuid>`` names
that exist only while a request is outstanding. Handlers run on a
thread pool, so a handler that blocks does not hold up other messages.
"""

from __future__ import annotations

import concurrent.futures
import itertools
import logging
import threading
import uuid
from typing import Dict, List, Optional

from ..errors import TransportError
from .base import Channel as BaseChannel, Delivery, Handler, PendingReply, Subscription as BaseSubscription


logger = logging.getLogger(__name__)

inbox_prefix = '_INBOX.'


class Subscription(BaseSubscription):

    def __init__(self, channel: 'Channel', subject: str, handler: Handler):
        self.channel = channel
        self.subject = subject
        self.handler = handler

    def cancel(self) -> None:
        self.channel._unsubscribe(self)


class Channel(BaseChannel):
    """Deliver messages between threads of a single process."""

    def __init__(self, workers: int = 8):
        self.workers_max = int(workers)
        self.workers: Optional[concurrent.futures.ThreadPoolExecutor] = None

        self._lock = threading.Lock()
        self._pending: Dict[str, PendingReply] = {}
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self._next = itertools.count()

    @property
    def is_open(self) -> bool:
        return self.workers is not None

    def open(self) -> None:
        if self.workers is None:
            self.workers = concurrent.futures.ThreadPoolExecutor(max_workers=self.workers_max)

    def close(self) -> None:
        with self._lock:
            workers = self.workers
            self.workers = None
            pending = list(self._pending.values())
            self._pending.clear()
            self._subscriptions.clear()

        for waiting in pending:
            waiting._fail(TransportError('channel closed'))

        if workers is not None:
            workers.shutdown(wait=True)

    def publish(self, subject: str, data: bytes, correlation_id: Optional[str] = None) -> None:
        self._deliver(Delivery(subject, bytes(data), None, correlation_id))

    def subscribe(self, subject: str, handler: Handler) -> Subscription:
        if subject.startswith(inbox_prefix):
            raise ValueError('cannot subscribe to a reply destination: ' + subject)

        subscription = Subscription(self, subject, handler)

        with self._lock:
            self._check()
            self._subscriptions.setdefault(subject, []).append(subscription)

        return subscription

    def request(self, subject: str, data: bytes, timeout: float) -> bytes:
        inbox = inbox_prefix + uuid.uuid4().hex
        pending = PendingReply(inbox)

        with self._lock:
            self._check()
            self._pending[inbox] = pending

        try:
            self._deliver(Delivery(subject, bytes(data), inbox, inbox))
            return pending.wait(timeout)
        finally:
            with self._lock:
                self._pending.pop(inbox, None)

    def _check(self) -> None:
        if self.workers is None:
            raise TransportError('channel is not open')

    def _deliver(self, delivery: Delivery) -> None:
        with self._lock:
            self._check()

            pending = self._pending.pop(delivery.subject, None)
            if pending is None:
                subscriptions = self._subscriptions.get(delivery.subject)
                if subscriptions:
                    # Competing consumers: rotate through the subscribers.
                    index = next(self._next) % len(subscriptions)
                    subscription = subscriptions[index]
                    self.workers.submit(self._invoke, subscription, delivery)
                else:
                    logger.debug("no subscriber for %s, message dropped", delivery.subject)
                return

        pending._complete(delivery.data)

    def _invoke(self, subscription: Subscription, delivery: Delivery) -> None:
        try:
            subscription.handler(delivery)
        except Exception:
            logger.exception("handler for %s raised", delivery.subject)

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscriptions = self._subscriptions.get(subscription.subject, [])
            try:
                subscriptions.remove(subscription)
            except ValueError:
                pass
