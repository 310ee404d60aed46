"""Ruter Ingfo?"""

from __future__ import annotations

from textwrap import dedent
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from relay.config import settings
from relay.deps import get_listener, get_subscriptions
from relay.listener import ListenerState, StreamListener
from relay.subscriptions import SubscriptionTable
from relay.utils import CMD_HELP

router = APIRouter()

HTTP_HELP_TEXT = dedent(
    f"""
Gitopia → Slack Notifier (HTTP Help)

Endpoints
---------
- GET  /        : This help
- GET  /health  : Listener state & subscription count
- POST /        : Slack slash command (subscribe / unsubscribe)

Slash command
-------------
{CMD_HELP}

Notes
-----
- Event stream: {settings.ws_addr or "(WS_ADDR not set, listener disabled)"}
- Gitopia API: {settings.gitopia_api_url}
- Subscriptions live in memory and are lost on restart.
"""
).strip()


@router.get("/", response_class=PlainTextResponse)
def root() -> str:
    return HTTP_HELP_TEXT


@router.get("/health")
def health(
    subscriptions: SubscriptionTable = Depends(get_subscriptions),
    listener: Optional[StreamListener] = Depends(get_listener),
) -> dict:
    state = listener.state if listener else ListenerState.DISCONNECTED
    return {
        "status": "ok",
        "listener": state.value,
        "listener_enabled": listener is not None,
        "channels": len(subscriptions),
    }
