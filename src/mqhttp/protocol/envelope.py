"""Wire envelopes carrying HTTP requests and responses as message payloads.

A request envelope travels from the client bridge to the executor; the
reply is either a :class:`ResponseEnvelope` or an :class:`ErrorEnvelope`,
told apart by the ``kind`` tag. Byte fields are base64 strings on the
wire, header maps hold one value per (lower case) header name.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple, Union

import httpx
import msgspec

from ..errors import BodyReadError, DecodeError, EncodeError


class RequestEnvelope(msgspec.Struct):
    """ One outbound HTTP call to be performed remotely. The *header* and
        *body* fields are optional on the wire; ``null`` is accepted for
        either of them, since that is how an empty map or byte slice is
        written by some peers.
    """

    method: str
    url: str
    header: Optional[Dict[str, str]] = None
    body: Optional[bytes] = None

    def __post_init__(self):
        if self.header is None:
            self.header = {}
        if self.body is None:
            self.body = b''
        if self.method == '':
            raise ValueError('method must be a non-empty string')


class ResponseEnvelope(msgspec.Struct, tag='response', tag_field='kind'):
    """ The outcome of a successful upstream call.
    """

    status_code: int = msgspec.field(name='statusCode')
    header: Optional[Dict[str, str]] = None
    body: Optional[bytes] = None

    def __post_init__(self):
        if self.header is None:
            self.header = {}
        if self.body is None:
            self.body = b''


class ErrorEnvelope(msgspec.Struct, tag='error', tag_field='kind'):
    """ Sent in place of a :class:`ResponseEnvelope` when the executor could
        not produce a real response. *error* is human-readable, *code* is
        one of the categories in :mod:`mqhttp.protocol.errors`.
    """

    error: str
    code: str = 'internal'


Reply = Union[ResponseEnvelope, ErrorEnvelope]


_encoder = msgspec.json.Encoder()
_request_decoder = msgspec.json.Decoder(RequestEnvelope)
_reply_decoder = msgspec.json.Decoder(Reply)


def collapse_headers(items: Iterable[Tuple[str, str]]) -> Dict[str, str]:
    """ Reduce a sequence of (name, value) pairs to one value per name. The
        first occurrence wins; later values for the same name are dropped.
        Names are compared, and returned, in lower case.
    """

    collapsed = dict()

    for name, value in items:
        name = name.lower()
        if name in collapsed:
            continue
        collapsed[name] = value

    return collapsed


def header_items(header: Dict[str, str]) -> List[Tuple[bytes, bytes]]:
    """ Return *header* as (name, value) byte pairs for httpx. Values are
        encoded as UTF-8; httpx would otherwise insist on ASCII for str
        values, and upstream servers do send non-ASCII ones.
    """

    return [(name.encode('utf-8'), value.encode('utf-8')) for name, value in header.items()]


def request_envelope(request: httpx.Request) -> RequestEnvelope:
    """ Build a :class:`RequestEnvelope` from an in-flight request, reading
        its entire body into memory.
    """

    try:
        body = request.read()
    except Exception as e:
        raise BodyReadError('cannot read request body: %s' % (e,)) from e

    header = collapse_headers(request.headers.multi_items())
    return RequestEnvelope(request.method, str(request.url), header, body)


def encode_request(request: Union[httpx.Request, RequestEnvelope]) -> bytes:

    if isinstance(request, httpx.Request):
        request = request_envelope(request)

    try:
        return _encoder.encode(request)
    except (TypeError, ValueError, msgspec.EncodeError) as e:
        raise EncodeError('cannot encode request envelope: %s' % (e,)) from e


def decode_request(data: bytes) -> RequestEnvelope:

    try:
        return _request_decoder.decode(data)
    except (msgspec.DecodeError, ValueError) as e:
        raise DecodeError('invalid request envelope: %s' % (e,)) from e


def encode_response(reply: Reply) -> bytes:

    try:
        return _encoder.encode(reply)
    except (TypeError, ValueError, msgspec.EncodeError) as e:
        raise EncodeError('cannot encode reply envelope: %s' % (e,)) from e


def decode_response(data: bytes) -> Reply:
    """ Decode a reply payload. The result is either a
        :class:`ResponseEnvelope` or an :class:`ErrorEnvelope`; anything
        else, including an untagged payload, raises :class:`DecodeError`.
    """

    try:
        return _reply_decoder.decode(data)
    except (msgspec.DecodeError, ValueError) as e:
        raise DecodeError('invalid reply envelope: %s' % (e,)) from e
