"""Deliver rendered events to subscribed channels."""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from relay.models import Fragment
from relay.subscriptions import SubscriptionTable

logger = logging.getLogger(__name__)


class ChatClient(Protocol):
    async def send_fragments(self, channel: str, fragments: list[Fragment]) -> object:
        ...


async def route(
    subscriptions: SubscriptionTable,
    owner_name: str,
    fragments: Sequence[Fragment],
    chat: ChatClient,
) -> int:
    """
    Send ``fragments`` as one message to every matching channel.

    A channel matches when it subscribes to ``*`` or to ``owner_name``
    (case-insensitive). A failure on one channel is logged and the remaining
    channels are still attempted. Returns how many channels accepted the
    message.
    """
    if not fragments:
        return 0

    delivered = 0
    for channel in await subscriptions.matching_channels(owner_name):
        try:
            await chat.send_fragments(channel, list(fragments))
        except Exception:
            logger.exception("Error sending message to Slack channel %s", channel)
            continue
        delivered += 1
    logger.debug("Delivered event for %r to %d channel(s)", owner_name, delivered)
    return delivered
