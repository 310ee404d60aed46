"""the beautiful world start from here."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from relay.config import Settings, settings as default_settings
from relay.listener import FixedDelayRetry, StreamListener
from relay.logs import configure_logging
from relay.routers import commands, info
from relay.services.events import EventInterpreter
from relay.services.gitopia import GitopiaAPI
from relay.services.resolver import AddressResolver, RepositoryFetcher
from relay.services.router import ChatClient
from relay.services.slack import SlackClient
from relay.subscriptions import SubscriptionTable

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    subscriptions: Optional[SubscriptionTable] = None,
    gitopia: Optional[GitopiaAPI] = None,
    chat: Optional[ChatClient] = None,
    start_listener: bool = True,
) -> FastAPI:
    """
    Wire the relay: one subscription table shared by the command routes and
    the stream listener, which runs as a background task for the app's
    lifetime when ``WS_ADDR`` is configured.
    """
    settings = settings or default_settings
    table = subscriptions if subscriptions is not None else SubscriptionTable()
    api = gitopia or GitopiaAPI(
        settings.gitopia_api_url, timeout=settings.http_timeout_seconds
    )
    slack = chat or SlackClient(settings.slack_bot_token, api_url=settings.slack_api_url)

    resolver = AddressResolver(api)
    fetcher = RepositoryFetcher(api, resolver)
    interpreter = EventInterpreter(resolver, fetcher, web_url=settings.gitopia_web_url)

    listener: Optional[StreamListener] = None
    if start_listener and settings.ws_addr:
        listener = StreamListener(
            settings.ws_addr,
            interpreter=interpreter,
            resolver=resolver,
            subscriptions=table,
            chat=slack,
            retry=FixedDelayRetry(settings.reconnect_delay_seconds),
            attributes_base64=settings.attributes_base64,
        )
    elif start_listener:
        logger.warning("WS_ADDR is not set; event listener disabled")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task = asyncio.create_task(listener.run()) if listener else None
        try:
            yield
        finally:
            if task:
                listener.stop()
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            await api.aclose()
            if isinstance(slack, SlackClient):
                await slack.aclose()

    app = FastAPI(title="Gitopia → Slack activity relay", lifespan=lifespan)
    app.state.settings = settings
    app.state.subscriptions = table
    app.state.listener = listener
    app.state.interpreter = interpreter

    app.include_router(info.router)
    app.include_router(commands.router)
    return app


configure_logging(default_settings.log_level)
app = create_app()
