"""Ruter slash commands"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from relay.deps import get_subscriptions
from relay.schemas import CommandResponse, SlashCommand
from relay.services.commands import INVALID_COMMAND, handle_command
from relay.subscriptions import SubscriptionTable

logger = logging.getLogger(__name__)

router = APIRouter(tags=["commands"])


async def _read_command(request: Request) -> SlashCommand | None:
    """Slack posts form data; JSON bodies are accepted too."""
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith("application/json"):
            data = await request.json()
        else:
            data = dict(await request.form())
        return SlashCommand.model_validate(data)
    except (ValueError, ValidationError) as exc:
        logger.info("Unreadable command body: %s", exc)
        return None


@router.post("/", response_model=CommandResponse)
async def slash_command(
    request: Request,
    subscriptions: SubscriptionTable = Depends(get_subscriptions),
) -> CommandResponse:
    """
    Slack slash-command endpoint.

    The command applies to the channel it was typed in; the reply is ephemeral
    and returned in the response body, not posted through the chat API.
    """
    command = await _read_command(request)
    if command is None or not command.channel_name:
        return CommandResponse(text=INVALID_COMMAND)

    text = await handle_command(subscriptions, command.channel_name, command.text)
    logger.info("Command %r from #%s: %s", command.text, command.channel_name, text)
    return CommandResponse(text=text)
