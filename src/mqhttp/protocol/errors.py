"""Helpers for building and interpreting error envelopes."""

from __future__ import annotations

from typing import Optional

import httpx

from ..errors import UpstreamError
from .envelope import ErrorEnvelope, Reply, ResponseEnvelope, encode_response


# Categories carried in ErrorEnvelope.code.

INVALID_REQUEST = 'invalid_request'     # payload is not a request envelope
BAD_REQUEST = 'bad_request'             # envelope cannot become an HTTP request
UPSTREAM = 'upstream'                   # the real HTTP call failed
BODY_READ = 'body_read'                 # the upstream body could not be read
INTERNAL = 'internal'                   # anything else

codes = frozenset((INVALID_REQUEST, BAD_REQUEST, UPSTREAM, BODY_READ, INTERNAL))


def error_envelope(code: str, text: str, exception: Optional[BaseException] = None) -> ErrorEnvelope:
    """ Return an :class:`ErrorEnvelope` for the given category. If an
        *exception* is provided its description is appended to *text*.
    """

    if code not in codes:
        raise ValueError('unknown error code: ' + repr(code))

    if exception is not None:
        description = str(exception)
        if description == '':
            description = type(exception).__name__
        text = '%s: %s' % (text, description)

    return ErrorEnvelope(text, code)


def encode_error(code: str, text: str, exception: Optional[BaseException] = None) -> bytes:
    return encode_response(error_envelope(code, text, exception))


def check(reply: Reply, request: Optional[httpx.Request] = None) -> ResponseEnvelope:
    """ Return *reply* if it is a genuine response; raise
        :class:`mqhttp.errors.UpstreamError` if it is an error envelope.
    """

    if isinstance(reply, ErrorEnvelope):
        raise UpstreamError(reply.error, reply.code, request=request)

    return reply
