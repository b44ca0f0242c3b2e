""" The client bridge: an httpx transport that carries each request over a
    messaging channel instead of a socket. Plug it into an ordinary client::

        channel = mqhttp.channel.connect('amqp://localhost/')
        client = httpx.Client(transport=mqhttp.Transport(channel))
        response = client.get('https://example.com/')

    Every call is independent: the envelope is built, published with a
    fresh reply destination, and the caller blocks until the reply or the
    timeout. No state is shared between calls other than the channel.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from typing import Optional

import httpx

from . import config
from .channel.base import Channel
from .errors import BodyReadError, BridgeTimeout, DecodeError, TransportError
from .protocol import envelope
from .protocol import errors


logger = logging.getLogger(__name__)


class Transport(httpx.BaseTransport):
    """ Send requests through *channel* to the executor listening on
        *subject*. *timeout* is the default number of seconds to wait for
        a reply; a request's own httpx read timeout, when set, overrides it.
        Note that :class:`httpx.Client` always sets one (five seconds unless
        told otherwise), so with a client the wait is governed by the
        client's ``timeout`` argument. Pass ``timeout=None`` to the client
        to have the transport's *timeout* apply instead.

        Closing the transport leaves the channel open.
    """

    def __init__(
        self,
        channel: Channel,
        subject: str = config.default_subject,
        timeout: float = config.default_timeout,
    ):
        self.channel = channel
        self.subject = subject
        self.timeout = timeout


    def handle_request(self, request: httpx.Request) -> httpx.Response:
        return self.send(request, _request_timeout(request, self.timeout))


    def send(self, request: httpx.Request, timeout: Optional[float] = None) -> httpx.Response:
        """ Perform one round trip for *request*, waiting at most *timeout*
            seconds for the reply.
        """

        if timeout is None:
            timeout = self.timeout

        # BodyReadError and EncodeError come straight out of the codec.
        payload = envelope.encode_request(request)

        logger.debug("%s %s via %s", request.method, request.url, self.subject)
        begin = time.monotonic()

        try:
            data = self.channel.request(self.subject, payload, timeout)
        except BridgeTimeout as e:
            raise BridgeTimeout(
                "%s %s: no reply on %s in %.3f sec" % (request.method, request.url, self.subject, timeout),
                request=request) from e
        except TransportError as e:
            raise TransportError(str(e), request=request) from e

        try:
            reply = envelope.decode_response(data)
        except DecodeError as e:
            raise DecodeError(str(e), request=request) from e

        reply = errors.check(reply, request)

        elapsed = time.monotonic() - begin
        logger.debug("%s %s: %d in %.3f sec", request.method, request.url, reply.status_code, elapsed)

        return httpx.Response(
            reply.status_code,
            headers=envelope.header_items(reply.header),
            stream=httpx.ByteStream(reply.body),
            request=request,
        )


class AsyncTransport(httpx.AsyncBaseTransport):
    """ The asynchronous counterpart of :class:`Transport`. The blocking
        exchange runs on the event loop's default executor, so the awaiting
        task is suspended while other tasks keep running.
    """

    def __init__(
        self,
        channel: Channel,
        subject: str = config.default_subject,
        timeout: float = config.default_timeout,
    ):
        self.transport = Transport(channel, subject, timeout)


    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:

        # The body has to be in memory before the request leaves this
        # thread; an async stream cannot be read from the executor.
        try:
            await request.aread()
        except Exception as e:
            raise BodyReadError('cannot read request body: %s' % (e,)) from e

        timeout = _request_timeout(request, self.transport.timeout)
        call = functools.partial(self.transport.send, request, timeout)

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, call)


def _request_timeout(request: httpx.Request, default: float) -> float:
    """ Pick the reply timeout for *request* from its httpx timeout
        extension, falling back to *default*.
    """

    timeouts = request.extensions.get('timeout') or {}
    timeout = timeouts.get('read')

    if timeout is None:
        return default
    return timeout
