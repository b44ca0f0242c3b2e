"""RabbitMQ messaging channel.

A pika :class:`~pika.BlockingConnection` is not thread-safe, so the
connection and its channel belong to a dedicated thread. Every other
thread hands work to it with ``add_callback_threadsafe``. Subjects are
queues on the default exchange; each request carries ``reply_to`` (this
connection's exclusive reply queue) and a unique ``correlation_id`` that
ties the reply back to the waiting caller.
"""

from __future__ import annotations

import concurrent.futures
import functools
import logging
import threading
import uuid
from typing import Callable, Dict, Optional

import pika
import pika.exceptions

from .. import config
from ..errors import TransportError
from .base import Channel as BaseChannel, Delivery, Handler, PendingReply, Subscription as BaseSubscription


logger = logging.getLogger(__name__)


class Subscription(BaseSubscription):

    def __init__(self, channel: 'Channel', subject: str, handler: Handler):
        self.channel = channel
        self.subject = subject
        self.handler = handler
        self.consumer_tag: Optional[str] = None

    def cancel(self) -> None:
        self.channel._unsubscribe(self)


class Channel(BaseChannel):
    """Request/reply and publish/subscribe over a RabbitMQ broker."""

    connect_timeout = 10

    def __init__(self, url: Optional[str] = None, workers: int = config.default_workers):
        self.url = url or config.default_broker_url
        self.workers_max = int(workers)
        self.workers: Optional[concurrent.futures.ThreadPoolExecutor] = None

        self._lock = threading.Lock()
        self._pending: Dict[str, PendingReply] = {}
        self._ready = threading.Event()
        self._failure: Optional[BaseException] = None
        self._connection: Optional[pika.BlockingConnection] = None
        self._channel = None
        self._reply_queue: Optional[str] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def is_open(self) -> bool:
        return self._ready.is_set() and self._failure is None and self._connection is not None

    def open(self) -> None:
        if self._thread is not None:
            return

        self.workers = concurrent.futures.ThreadPoolExecutor(max_workers=self.workers_max)
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

        if not self._ready.wait(self.connect_timeout):
            raise TransportError(f"no connection to {self._safe_url()} in {self.connect_timeout} sec")

        if self._failure is not None:
            raise TransportError(f"cannot connect to {self._safe_url()}: {self._failure}") from self._failure

    def close(self) -> None:
        thread = self._thread
        if thread is None:
            return

        try:
            self._call(self._stop)
        except TransportError:
            pass

        thread.join(self.connect_timeout)
        self._thread = None

        if self.workers is not None:
            self.workers.shutdown(wait=True)
            self.workers = None

    def publish(self, subject: str, data: bytes, correlation_id: Optional[str] = None) -> None:
        properties = pika.BasicProperties(correlation_id=correlation_id)
        self._call(functools.partial(self._basic_publish, subject, bytes(data), properties))

    def subscribe(self, subject: str, handler: Handler) -> Subscription:
        subscription = Subscription(self, subject, handler)
        done: concurrent.futures.Future = concurrent.futures.Future()

        def consume():
            try:
                self._channel.queue_declare(queue=subject, durable=False)
                callback = functools.partial(self._on_request, subscription)
                subscription.consumer_tag = self._channel.basic_consume(
                    queue=subject,
                    on_message_callback=callback,
                )
            except Exception as e:
                done.set_exception(e)
            else:
                done.set_result(subscription)

        self._call(consume)

        try:
            return done.result(self.connect_timeout)
        except concurrent.futures.TimeoutError as e:
            raise TransportError(f"subscribe to {subject} timed out") from e
        except pika.exceptions.AMQPError as e:
            raise TransportError(f"cannot subscribe to {subject}: {e}") from e

    def request(self, subject: str, data: bytes, timeout: float) -> bytes:
        correlation_id = uuid.uuid4().hex
        pending = PendingReply(correlation_id)

        with self._lock:
            self._pending[correlation_id] = pending

        try:
            properties = pika.BasicProperties(
                reply_to=self._reply_queue,
                correlation_id=correlation_id,
            )
            self._call(functools.partial(self._basic_publish, subject, bytes(data), properties))
            return pending.wait(timeout)
        finally:
            with self._lock:
                self._pending.pop(correlation_id, None)

    # --- internal, any thread ---

    def _call(self, callback: Callable[[], None]) -> None:
        """Run *callback* on the connection thread."""

        if self._failure is not None:
            raise TransportError(f"connection to {self._safe_url()} lost: {self._failure}")

        connection = self._connection
        if connection is None:
            raise TransportError('channel is not open')

        try:
            connection.add_callback_threadsafe(callback)
        except pika.exceptions.AMQPError as e:
            raise TransportError(f"connection to {self._safe_url()} unusable: {e}") from e

    def _safe_url(self) -> str:
        parameters = pika.URLParameters(self.url)
        return f"{parameters.host}:{parameters.port}"

    def _unsubscribe(self, subscription: Subscription) -> None:

        def cancel():
            if subscription.consumer_tag is not None:
                self._channel.basic_cancel(subscription.consumer_tag)
                subscription.consumer_tag = None

        self._call(cancel)

    # --- internal, connection thread only ---

    def _run(self) -> None:
        try:
            self._connection = pika.BlockingConnection(pika.URLParameters(self.url))
            self._channel = self._connection.channel()

            # Exclusive auto-delete reply queue, shared by every request
            # issued through this connection; correlation ids tell them apart.
            result = self._channel.queue_declare(queue='', exclusive=True)
            self._reply_queue = result.method.queue

            self._channel.basic_consume(
                queue=self._reply_queue,
                on_message_callback=self._on_reply,
                auto_ack=True,
            )
        except pika.exceptions.AMQPError as e:
            self._failure = e
            self._ready.set()
            return

        self._ready.set()

        try:
            self._channel.start_consuming()
        except pika.exceptions.AMQPError as e:
            logger.error("connection to %s lost: %s", self._safe_url(), e)
            self._failure = e
        else:
            self._connection.close()
            self._connection = None
        finally:
            self._fail_pending(self._failure)

    def _stop(self) -> None:
        # start_consuming() returns once every consumer is cancelled; the
        # connection is closed from _run() after that.
        self._channel.stop_consuming()

    def _fail_pending(self, failure: Optional[BaseException]) -> None:
        if failure is None:
            error = TransportError('channel closed')
        else:
            error = TransportError(f"connection to {self._safe_url()} lost: {failure}")

        with self._lock:
            pending = list(self._pending.values())
            self._pending.clear()

        for waiting in pending:
            waiting._fail(error)

    def _basic_publish(self, routing_key: str, body: bytes, properties: pika.BasicProperties) -> None:
        try:
            self._channel.basic_publish(
                exchange='',
                routing_key=routing_key,
                properties=properties,
                body=body,
            )
        except pika.exceptions.AMQPError as e:
            logger.error("publish to %s failed: %s", routing_key, e)
            pending = self._pending.get(properties.correlation_id or '')
            if pending is not None:
                pending._fail(TransportError(f"publish to {routing_key} failed: {e}"))

    def _on_reply(self, _ch, _method, properties, body: bytes) -> None:
        with self._lock:
            pending = self._pending.pop(properties.correlation_id or '', None)

        if pending is None:
            logger.debug("late or unknown reply %r ignored", properties.correlation_id)
            return

        pending._complete(body)

    def _on_request(self, subscription: Subscription, ch, method, properties, body: bytes) -> None:
        ch.basic_ack(delivery_tag=method.delivery_tag)
        delivery = Delivery(
            subject=subscription.subject,
            data=body,
            reply=properties.reply_to or None,
            correlation_id=properties.correlation_id,
        )
        self.workers.submit(self._invoke, subscription, delivery)

    def _invoke(self, subscription: Subscription, delivery: Delivery) -> None:
        try:
            subscription.handler(delivery)
        except Exception:
            logger.exception("handler for %s raised", delivery.subject)
