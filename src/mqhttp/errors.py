"""Error taxonomy shared by the client and server bridges.

Errors that can reach a caller through the client transport also derive
from the matching httpx exception, so code written against
:class:`httpx.Client` can keep catching :class:`httpx.HTTPError` and
friends without knowing a bridge sits underneath.
"""

from __future__ import annotations

from typing import Optional

import httpx


class BridgeError(Exception):
    """Base class for all mqhttp errors."""


class BodyReadError(BridgeError, httpx.StreamError):
    """A request or response body could not be read in full."""


class EncodeError(BridgeError):
    """An envelope could not be serialized."""


class DecodeError(BridgeError, httpx.DecodingError):
    """A payload is not a well-formed envelope."""


class BridgeTimeout(BridgeError, httpx.TimeoutException):
    """No reply arrived within the configured duration. The remote side
    is not told to give up; any upstream call it started runs to completion.
    """


class TransportError(BridgeError, httpx.TransportError):
    """The messaging channel is unreachable or was lost."""


class UpstreamError(BridgeError, httpx.RequestError):
    """The executor could not produce a real response. *code* is the
    category reported in the error envelope, if any.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        *,
        request: Optional[httpx.Request] = None,
    ):
        super().__init__(message, request=request)
        self.code = code
