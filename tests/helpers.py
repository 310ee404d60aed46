"""Builders shared by the test modules."""

from __future__ import annotations

import base64
import dataclasses
import json
import typing as typ

import httpx

from relay.errors import DeliveryError
from relay.models import Fragment

API_URL = "https://api.gitopia.test"
WEB_URL = "https://gitopia.test"

USERS: dict[str, dict[str, typ.Any]] = {
    "gitopia1alice": {"username": "alice", "avatarUrl": "https://img.test/alice.png"},
    "gitopia1bob": {"username": "", "avatarUrl": ""},
}
DAOS: dict[str, dict[str, typ.Any]] = {
    "gitopia1org": {"name": "GitopiaDAO"},
    "gitopia1noname": {"name": ""},
}
REPOSITORIES: dict[str, dict[str, typ.Any]] = {
    "7": {"owner": {"id": "gitopia1alice", "type": "USER"}, "name": "relay"},
    "8": {"owner": {"id": "gitopia1org", "type": "DAO"}, "name": "core"},
    "9": {"owner": {"id": "gitopia1ghost", "type": "DAO"}, "name": "lost"},
    "10": {"name": "ownerless"},
}


def b64(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


def encode_attributes(attrs: typ.Iterable[tuple[str, str]]) -> list[dict[str, str]]:
    return [{"key": b64(key), "value": b64(value)} for key, value in attrs]


def message_event(**attrs: str) -> dict[str, typ.Any]:
    return {"type": "message", "attributes": encode_attributes(attrs.items())}


def tx_frame(*events: dict[str, typ.Any]) -> str:
    return json.dumps(
        {
            "jsonrpc": "2.0",
            "id": 1,
            "result": {
                "query": "tm.event='Tx'",
                "data": {
                    "type": "tendermint/event/Tx",
                    "value": {"TxResult": {"height": "1", "result": {"events": list(events)}}},
                },
            },
        }
    )


@dataclasses.dataclass
class GitopiaRecorder:
    """Collects the paths the fake Gitopia API was asked for."""

    paths: list[str] = dataclasses.field(default_factory=list)
    fail_with: int | None = None


def gitopia_handler(recorder: GitopiaRecorder) -> typ.Callable[[httpx.Request], httpx.Response]:
    """Serve USERS, DAOS and REPOSITORIES the way the chain REST API does."""

    def _handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        recorder.paths.append(path)
        if recorder.fail_with is not None:
            return httpx.Response(status_code=recorder.fail_with, text="boom")

        kind, _, key = path.strip("/").partition("/")
        if kind == "user" and key in USERS:
            return httpx.Response(200, json={"User": USERS[key]})
        if kind == "dao" and key in DAOS:
            return httpx.Response(200, json={"dao": DAOS[key]})
        if kind == "repository" and key in REPOSITORIES:
            return httpx.Response(200, json={"Repository": REPOSITORIES[key]})
        return httpx.Response(404, json={"code": 5, "message": "not found"})

    return _handler


class FakeChat:
    """Records deliveries; channels in ``failing`` raise instead."""

    def __init__(self, failing: typ.Iterable[str] = ()) -> None:
        self.sent: list[tuple[str, list[Fragment]]] = []
        self.attempted: list[str] = []
        self.failing = set(failing)

    async def send_fragments(self, channel: str, fragments: list[Fragment]) -> dict:
        self.attempted.append(channel)
        if channel in self.failing:
            raise DeliveryError(f"Slack error: 404 channel_not_found ({channel})")
        self.sent.append((channel, fragments))
        return {"ok": True}

    @property
    def channels(self) -> list[str]:
        return [channel for channel, _ in self.sent]
