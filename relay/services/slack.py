"""Yet another slack services"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from relay.config import settings
from relay.errors import DeliveryError
from relay.models import Fragment, render_blocks, render_fallback_text

HTTP_TIMEOUT_SECONDS = 15
MAX_BLOCKS_PER_MESSAGE = 50

JSONDict = dict[str, Any]


class SlackClient:
    """Minimal Slack Web API client: just ``chat.postMessage``."""

    def __init__(
        self,
        token: Optional[str] = None,
        *,
        api_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.token = settings.slack_bot_token if token is None else token
        self.api_url = (api_url or settings.slack_api_url).rstrip("/")
        self._client = client
        self._owns_client = client is None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def post_message(
        self, channel: str, blocks: list[JSONDict], *, text: str = ""
    ) -> JSONDict:
        """Post blocks to a channel (name or id). Raises ``DeliveryError``."""
        api = f"{self.api_url}/chat.postMessage"
        payload: JSONDict = {"channel": channel, "blocks": blocks}
        if text:
            payload["text"] = text
        headers = {"Authorization": f"Bearer {self.token}"}

        try:
            resp = await self._http().post(api, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise DeliveryError(f"Slack request failed: {exc}") from exc
        try:
            data = resp.json()
        except ValueError:
            data = {}
        if resp.status_code >= 300 or not data.get("ok", False):
            raise DeliveryError(
                f"Slack error: {resp.status_code} {data.get('error') or resp.text}"
            )
        return data

    async def send_fragments(self, channel: str, fragments: list[Fragment]) -> JSONDict:
        """
        Post one event to ``channel``.

        Slack caps a message at ``MAX_BLOCKS_PER_MESSAGE`` blocks; longer
        renderings continue in follow-up messages, in order. Returns the
        response to the last message.
        """
        blocks = render_blocks(fragments)
        text = render_fallback_text(fragments)
        data: JSONDict = {}
        for start in range(0, max(len(blocks), 1), MAX_BLOCKS_PER_MESSAGE):
            data = await self.post_message(
                channel, blocks[start : start + MAX_BLOCKS_PER_MESSAGE], text=text
            )
        return data
