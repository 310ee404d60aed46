"""FastAPI dependencies."""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from relay.listener import StreamListener
from relay.subscriptions import SubscriptionTable


def get_subscriptions(request: Request) -> SubscriptionTable:
    """The process-wide table, owned by the app and shared with the listener."""
    return request.app.state.subscriptions


def get_listener(request: Request) -> Optional[StreamListener]:
    return getattr(request.app.state, "listener", None)
