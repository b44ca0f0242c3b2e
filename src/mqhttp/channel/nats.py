"""NATS messaging channel.

nats-py is asyncio-only, so the client lives on an event loop owned by a
dedicated thread, the way the RabbitMQ channel owns its pika connection.
Callers on other threads submit coroutines with
``asyncio.run_coroutine_threadsafe`` and block on the result. Requests use
the NATS request primitive, which creates a unique ``_INBOX`` reply
subject per call. Subscribers join a queue group named after the subject,
so several executors share the load.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from typing import Optional

import nats
import nats.errors

from .. import config
from ..errors import BridgeTimeout, TransportError
from .base import Channel as BaseChannel, Delivery, Handler, Subscription as BaseSubscription


logger = logging.getLogger(__name__)

default_url = 'nats://localhost:4222'


class Subscription(BaseSubscription):

    def __init__(self, channel: 'Channel', subject: str, handler: Handler):
        self.channel = channel
        self.subject = subject
        self.handler = handler
        self.subscription = None

    def cancel(self) -> None:
        self.channel._unsubscribe(self)


class Channel(BaseChannel):
    """Request/reply and publish/subscribe over a NATS server."""

    connect_timeout = 10

    def __init__(self, url: Optional[str] = None, workers: int = config.default_workers):
        self.url = url or default_url
        self.workers_max = int(workers)
        self.workers: Optional[concurrent.futures.ThreadPoolExecutor] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._client = None

    @property
    def is_open(self) -> bool:
        return self._client is not None and self._client.is_connected

    def open(self) -> None:
        if self._thread is not None:
            return

        self.workers = concurrent.futures.ThreadPoolExecutor(max_workers=self.workers_max)
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

        try:
            self._client = self._call(self._connect(), self.connect_timeout)
        except BridgeTimeout as e:
            self._shutdown()
            raise TransportError(f"no connection to {self.url} in {self.connect_timeout} sec") from e
        except TransportError:
            self._shutdown()
            raise

    def close(self) -> None:
        if self._thread is None:
            return

        client = self._client
        self._client = None

        if client is not None:
            try:
                self._call(client.drain(), self.connect_timeout)
            except (BridgeTimeout, TransportError) as e:
                logger.warning("drain of %s failed: %s", self.url, e)

        self._shutdown()

    def publish(self, subject: str, data: bytes, correlation_id: Optional[str] = None) -> None:
        client = self._check()
        self._call(client.publish(subject, bytes(data)), self.connect_timeout)

    def subscribe(self, subject: str, handler: Handler) -> Subscription:
        client = self._check()
        subscription = Subscription(self, subject, handler)

        async def on_message(msg):
            delivery = Delivery(
                subject=msg.subject,
                data=msg.data,
                reply=msg.reply or None,
            )
            self.workers.submit(self._invoke, subscription, delivery)

        subscription.subscription = self._call(
            client.subscribe(subject, queue=subject, cb=on_message),
            self.connect_timeout,
        )
        return subscription

    def request(self, subject: str, data: bytes, timeout: float) -> bytes:
        client = self._check()

        # The inner timeout is the one that counts; the outer one only
        # guards against a wedged event loop.
        msg = self._call(client.request(subject, bytes(data), timeout=timeout), timeout + 1)
        return msg.data

    # --- internal, any thread ---

    def _check(self):
        client = self._client
        if client is None:
            raise TransportError('channel is not open')
        return client

    def _call(self, coroutine, timeout: float):
        """Run *coroutine* on the event loop thread and wait for it."""

        future = asyncio.run_coroutine_threadsafe(coroutine, self._loop)

        try:
            return future.result(timeout)
        except nats.errors.TimeoutError as e:
            raise BridgeTimeout(f"no reply in {timeout:.3f} sec") from e
        except nats.errors.NoRespondersError as e:
            raise TransportError('no responders on the subject') from e
        except (nats.errors.Error, OSError) as e:
            raise TransportError(f"{self.url}: {e}") from e
        except concurrent.futures.TimeoutError as e:
            future.cancel()
            raise BridgeTimeout(f"no answer from {self.url} in {timeout:.3f} sec") from e

    def _shutdown(self) -> None:
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(self.connect_timeout)
        self._loop.close()
        self._thread = None
        self._loop = None

        if self.workers is not None:
            self.workers.shutdown(wait=True)
            self.workers = None

    def _unsubscribe(self, subscription: Subscription) -> None:
        if subscription.subscription is None:
            return

        nats_subscription = subscription.subscription
        subscription.subscription = None
        self._call(nats_subscription.unsubscribe(), self.connect_timeout)

    def _invoke(self, subscription: Subscription, delivery: Delivery) -> None:
        try:
            subscription.handler(delivery)
        except Exception:
            logger.exception("handler for %s raised", delivery.subject)

    # --- internal, event loop thread only ---

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    async def _connect(self):

        async def on_error(e):
            logger.error("%s: %s", self.url, e)

        async def on_disconnect():
            logger.warning("disconnected from %s", self.url)

        async def on_reconnect():
            logger.info("reconnected to %s", self.url)

        return await nats.connect(
            servers=[self.url],
            connect_timeout=2,
            error_cb=on_error,
            disconnected_cb=on_disconnect,
            reconnected_cb=on_reconnect,
        )
