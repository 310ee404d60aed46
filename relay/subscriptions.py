"""Channel subscription table."""

from __future__ import annotations

import asyncio

WILDCARD = "*"


class SubscriptionTable:
    """
    Channel → owner names the channel wants notifications for.

    Names compare case-insensitively but keep the spelling they were added
    with. A channel stays in the table once it has issued a ``subscribe``
    command, even after its last name is removed. Nothing is persisted.

    Mutations and snapshots are serialized on one ``asyncio.Lock``; readers
    such as the router work on the snapshot, never on the live sets.
    """

    def __init__(self) -> None:
        self._channels: dict[str, dict[str, str]] = {}
        self._lock = asyncio.Lock()

    async def ensure_channel(self, channel: str) -> None:
        async with self._lock:
            self._channels.setdefault(channel, {})

    async def subscribe(self, channel: str, name: str) -> bool:
        """Add ``name``; ``False`` if the channel already had it."""
        async with self._lock:
            names = self._channels.setdefault(channel, {})
            key = name.lower()
            if key in names:
                return False
            names[key] = name
            return True

    async def unsubscribe(self, channel: str, name: str) -> bool:
        """Remove ``name``; ``False`` if the channel did not have it."""
        async with self._lock:
            names = self._channels.get(channel)
            if names is None or name.lower() not in names:
                return False
            del names[name.lower()]
            return True

    async def names(self, channel: str) -> list[str]:
        async with self._lock:
            return list(self._channels.get(channel, {}).values())

    async def snapshot(self) -> dict[str, list[str]]:
        async with self._lock:
            return {channel: list(names.values()) for channel, names in self._channels.items()}

    async def matching_channels(self, owner_name: str) -> list[str]:
        """Channels subscribed to ``*`` or to ``owner_name`` (any case)."""
        wanted = (owner_name or "").lower()
        async with self._lock:
            return [
                channel
                for channel, names in self._channels.items()
                if WILDCARD in names or (wanted and wanted in names)
            ]

    def __len__(self) -> int:
        return len(self._channels)

    def __contains__(self, channel: object) -> bool:
        return channel in self._channels
