""" The server bridge, or executor: it listens for request envelopes on a
    subject, performs each HTTP call for real, and publishes the outcome
    to the reply destination that came with the message.

    Every failure along the way becomes an error envelope; nothing a
    caller sends can take the handler down. A caller that gave up waiting
    does not stop an upstream call already under way.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from . import config
from .channel.base import Channel, Delivery, Subscription
from .errors import DecodeError, EncodeError, TransportError
from .protocol import envelope
from .protocol import errors


logger = logging.getLogger(__name__)


class Server:
    """ Execute requests arriving on *subject* of *channel*. Outbound calls
        are made with *client*, an :class:`httpx.Client`; a default client
        is created if none is given, and closed by :func:`stop`. The handler
        keeps no per-message state, so the channel may invoke it
        concurrently.
    """

    def __init__(
        self,
        channel: Channel,
        subject: str = config.default_subject,
        client: Optional[httpx.Client] = None,
    ):
        self.channel = channel
        self.subject = subject
        self.subscription: Optional[Subscription] = None

        if client is None:
            self.client = httpx.Client(follow_redirects=False)
            self._owns_client = True
        else:
            self.client = client
            self._owns_client = False


    def start(self) -> None:
        if self.subscription is not None:
            raise RuntimeError('server already started on ' + self.subject)

        self.subscription = self.channel.subscribe(self.subject, self._on_request)
        logger.info("executing HTTP requests from %s", self.subject)


    def stop(self) -> None:
        subscription = self.subscription
        self.subscription = None

        if subscription is not None:
            subscription.cancel()

        if self._owns_client:
            self.client.close()


    def handle(self, payload: bytes) -> bytes:
        """ Turn one request envelope into an encoded reply envelope. This
            never raises: any failure is reported in an error envelope.
        """

        try:
            reply = self._execute(payload)
            return envelope.encode_response(reply)
        except EncodeError as e:
            logger.error("cannot encode reply: %s", e)
            return errors.encode_error(errors.INTERNAL, 'cannot encode reply', e)
        except Exception as e:
            logger.exception("unexpected failure handling request")
            return errors.encode_error(errors.INTERNAL, 'internal error', e)


    def _execute(self, payload: bytes) -> envelope.Reply:

        try:
            incoming = envelope.decode_request(payload)
        except DecodeError as e:
            logger.warning("%s", e)
            return errors.error_envelope(errors.INVALID_REQUEST, 'invalid request', e)

        try:
            request = self._build(incoming)
        except (httpx.InvalidURL, ValueError, TypeError) as e:
            logger.warning("cannot build %s %s: %s", incoming.method, incoming.url, e)
            return errors.error_envelope(errors.BAD_REQUEST, 'cannot build request', e)

        try:
            response = self.client.send(request, stream=True)
        except httpx.HTTPError as e:
            # No response exists; do not go near one.
            logger.warning("%s %s failed: %s", incoming.method, incoming.url, e)
            return errors.error_envelope(errors.UPSTREAM, 'upstream call failed', e)

        try:
            body = response.read()
        except (httpx.HTTPError, httpx.StreamError) as e:
            logger.warning("%s %s: body read failed: %s", incoming.method, incoming.url, e)
            return errors.error_envelope(errors.BODY_READ, 'cannot read upstream response body', e)
        finally:
            response.close()

        header = envelope.collapse_headers(response.headers.multi_items())

        # The body is buffered and already decoded. A response without a
        # body (HEAD, 204, 304) keeps the upstream framing headers as-is.
        if body or not _bodiless(incoming.method, response.status_code):
            stripped = False
            for name in ('content-encoding', 'transfer-encoding'):
                if header.pop(name, None) is not None:
                    stripped = True
            if stripped or 'content-length' not in header:
                header['content-length'] = str(len(body))

        logger.debug("%s %s: %d, %d bytes", incoming.method, incoming.url, response.status_code, len(body))

        return envelope.ResponseEnvelope(response.status_code, header, body)


    def _build(self, incoming: envelope.RequestEnvelope) -> httpx.Request:

        url = httpx.URL(incoming.url)

        if url.scheme == '' or url.host == '':
            raise ValueError('not an absolute URL: ' + repr(incoming.url))

        return self.client.build_request(
            incoming.method,
            url,
            headers=envelope.header_items(incoming.header),
            content=incoming.body,
        )


    def _on_request(self, delivery: Delivery) -> None:

        if delivery.reply is None:
            logger.warning("message on %s has no reply destination, dropped", delivery.subject)
            return

        reply = self.handle(delivery.data)

        try:
            self.channel.reply(delivery, reply)
        except TransportError as e:
            logger.error("cannot reply to %s: %s", delivery.reply, e)


def _bodiless(method: str, status_code: int) -> bool:
    return method.upper() == 'HEAD' or status_code in (204, 304) or 100 <= status_code < 200


def start(channel: Channel, subject: str = config.default_subject, client: Optional[httpx.Client] = None) -> Server:
    """ Create a :class:`Server` for *subject* and start handling requests.
    """

    server = Server(channel, subject, client)
    server.start()
    return server
