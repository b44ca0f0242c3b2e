""" The envelope protocol: how HTTP requests and responses are represented
    as message payloads. Nothing in here knows about the messaging channel
    that carries them.
"""

from . import envelope
from . import errors

from .envelope import (
    RequestEnvelope,
    ResponseEnvelope,
    ErrorEnvelope,
    Reply,
    collapse_headers,
    encode_request,
    decode_request,
    encode_response,
    decode_response,
)

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
