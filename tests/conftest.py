import httpx
import pytest

import mqhttp
from mqhttp.channel import local

from upstream import Upstream


@pytest.fixture
def channel():

    channel = local.Channel(workers=8)
    channel.open()

    yield channel

    channel.close()


@pytest.fixture
def executor(channel):
    """ Start a server on the 'http.request' subject whose outbound calls
        are answered by a handler supplied later, so each test can decide
        what the "real" upstream does. The default upstream answers every
        request with 200 and an empty body.
    """

    upstream = Upstream()
    client = httpx.Client(transport=httpx.MockTransport(upstream))
    server = mqhttp.start(channel, 'http.request', client=client)

    yield upstream

    server.stop()
    client.close()


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
