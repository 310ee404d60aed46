"""Wire schemas"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TxEventAttribute(BaseModel):
    """One event attribute; key and value are base64 on older node versions."""

    key: Optional[str] = None
    value: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class TxEvent(BaseModel):
    """
    Minimal model for a Tendermint transaction event.
    Only fields used by this app are included.
    """

    type: str = ""
    attributes: list[TxEventAttribute] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")


class SlashCommand(BaseModel):
    """Fields of a Slack slash-command request the relay cares about."""

    channel_name: str = ""
    text: str = ""

    model_config = ConfigDict(extra="allow")


class CommandResponse(BaseModel):
    response_type: str = "ephemeral"
    text: str
