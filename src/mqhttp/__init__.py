""" HTTP over a message broker. A caller uses an ordinary httpx client
    with :class:`mqhttp.Transport`; each request is published as an
    envelope, a :class:`mqhttp.Server` somewhere performs the real HTTP
    call, and the response comes back on a per-request reply destination.
"""

# Utility components.

from . import config
from . import errors

# Submodules used by multiple other components.

from . import protocol
from . import channel

# Primary public-facing interfaces.

from .client import Transport, AsyncTransport
from .server import Server, start
connect = channel.connect

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
