"""Messaging channel implementations."""

from __future__ import annotations

from typing import Optional
from urllib.parse import urlsplit

from .. import config
from .base import Channel, Delivery, Subscription
from . import local


def connect(url: Optional[str] = None, workers: int = config.default_workers) -> Channel:
    """Open and return a channel for *url*. The scheme picks the
    implementation: ``amqp``/``amqps`` for RabbitMQ, ``nats``/``tls`` for
    NATS, ``local`` for the in-process channel. The caller is responsible
    for closing it."""

    if url is None:
        url = config.default_broker_url

    scheme = urlsplit(url).scheme

    if scheme == 'local':
        channel = local.Channel(workers=workers)
    elif scheme in ('nats', 'tls'):
        from . import nats
        channel = nats.Channel(url, workers=workers)
    elif scheme in ('amqp', 'amqps'):
        from . import rabbitmq
        channel = rabbitmq.Channel(url, workers=workers)
    else:
        raise ValueError(f"unsupported broker URL scheme: {url!r}")

    channel.open()
    return channel
