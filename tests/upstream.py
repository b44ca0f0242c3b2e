""" Stand-ins for the remote side of an outbound HTTP call.
"""

import httpx


class Upstream:
    """ A fake web server for an :class:`httpx.MockTransport`. Requests it
        receives are kept in *seen*; the response comes from *handler*.
    """

    def __init__(self):
        self.seen = list()
        self.handler = lambda request: httpx.Response(200)

    def __call__(self, request):
        self.seen.append(request)
        return self.handler(request)


class BrokenStream(httpx.SyncByteStream):
    """ A body stream that fails part way through.
    """

    def __iter__(self):
        yield b'partial'
        raise OSError('stream went away')


def refused(request):
    raise httpx.ConnectError('[Errno 111] Connection refused', request=request)


def hello(request):
    return httpx.Response(200, headers={'Content-Type': 'text/plain'}, content=b'hello')


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
