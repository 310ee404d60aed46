"""Slash-command handling for channel subscriptions."""

from __future__ import annotations

from relay.subscriptions import SubscriptionTable

INVALID_COMMAND = "Invalid command"


async def handle_command(subscriptions: SubscriptionTable, channel: str, text: str) -> str:
    """
    Apply one ``<verb> <arg>`` command for ``channel`` and return the reply.

    Verbs
    -----
    subscribe list  : show the channel's subscriptions
    subscribe NAME  : add an owner name (or ``*`` for everything)
    unsubscribe NAME: remove an owner name
    """
    parts = (text or "").strip().split(" ")
    if len(parts) != 2 or not all(parts):
        return INVALID_COMMAND
    verb, arg = parts

    if verb == "subscribe":
        if arg == "list":
            await subscriptions.ensure_channel(channel)
            names = await subscriptions.names(channel)
            if not names:
                return "This channel has no subscriptions"
            return "This channel is subscribed to: " + ", ".join(names)
        if await subscriptions.subscribe(channel, arg):
            return f"Subscribed to {arg}"
        return f"Already subscribed to {arg}"

    if verb == "unsubscribe":
        if await subscriptions.unsubscribe(channel, arg):
            return f"Unsubscribed from {arg}"
        return f"This channel is not subscribing to {arg}"

    return INVALID_COMMAND
