"""Domain models shared by the interpreter, resolver and router."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Iterator, Mapping, Union
from urllib.parse import quote

from relay.errors import MalformedPayload

SLACK_MAX_SECTION_FIELDS = 10


def escape_mrkdwn(value: Any) -> str:
    """Escape the three characters Slack mrkdwn treats as control sequences."""
    return (
        str(value if value is not None else "")
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
    )


class OwnerKind(str, Enum):
    USER = "USER"
    ORGANIZATION = "ORGANIZATION"

    @classmethod
    def parse(cls, value: OwnerKind | str | None) -> OwnerKind:
        """
        Map an owner-type tag from the chain to an ``OwnerKind``.

        Only ``USER`` resolves through the user lookup; ``DAO``, ``ORGANIZATION``
        and anything unknown go through the organization lookup.
        """
        if isinstance(value, OwnerKind):
            return value
        if (value or "").strip().upper() == cls.USER.value:
            return cls.USER
        return cls.ORGANIZATION


@dataclass(frozen=True)
class OwnerRef:
    """Who owns a repository; resolved to a display name and dropped."""

    id: str
    kind: OwnerKind

    @classmethod
    def of(cls, id: str, kind: OwnerKind | str | None) -> OwnerRef:
        return cls(id=id, kind=OwnerKind.parse(kind))


@dataclass(frozen=True)
class RepositoryDetails:
    """
    Resolved context of a repository.

    Fields
    ------
    owner_name : str
        Display name of the owner (username, organization name or raw address).
    repository_name : str
        Repository name as stored on chain.
    """

    owner_name: str
    repository_name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner_name}/{self.repository_name}"


def _decode_b64(value: str | None) -> str:
    if not value:
        return ""
    try:
        return base64.b64decode(value, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise MalformedPayload(f"attribute is not valid base64: {value!r}") from exc


class EventAttributes(Mapping[str, str]):
    """
    Decoded attributes of one ``message`` event.

    Duplicate keys keep the last value; iteration follows the position of the
    first occurrence of each key.
    """

    def __init__(self, pairs: Iterable[tuple[str, str]] = ()) -> None:
        data: dict[str, str] = {}
        for key, value in pairs:
            data[key] = value
        self._data = data

    @classmethod
    def from_raw(
        cls, attributes: Iterable[Any], *, base64_encoded: bool = True
    ) -> EventAttributes:
        """Build from wire attributes (objects or mappings with ``key``/``value``)."""
        pairs = []
        for attribute in attributes:
            if isinstance(attribute, Mapping):
                key, value = attribute.get("key"), attribute.get("value")
            else:
                key, value = attribute.key, attribute.value
            if base64_encoded:
                pairs.append((_decode_b64(key), _decode_b64(value)))
            else:
                pairs.append((key or "", value or ""))
        return cls(pairs)

    def __getitem__(self, key: str) -> str:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"EventAttributes({self._data!r})"

    @property
    def action(self) -> str:
        return self._data.get("action", "")

    def owner(self) -> OwnerRef | None:
        """Repository owner named by the event, if it carries both owner keys."""
        if not self.has("RepositoryOwnerId", "RepositoryOwnerType"):
            return None
        return OwnerRef.of(self._data["RepositoryOwnerId"], self._data["RepositoryOwnerType"])

    def has(self, *keys: str) -> bool:
        return all(self._data.get(key) for key in keys)

    def require(self, *keys: str) -> None:
        missing = [key for key in keys if not self._data.get(key)]
        if missing:
            raise MalformedPayload.missing(*missing)

    def json(self, key: str) -> Any:
        self.require(key)
        try:
            return json.loads(self._data[key])
        except ValueError as exc:
            raise MalformedPayload.invalid_json(key, exc) from exc

    def json_list(self, key: str) -> list[Any]:
        value = self.json(key)
        if not isinstance(value, list):
            raise MalformedPayload(f"attribute {key} must be a JSON list")
        return value

    def json_records(self, key: str, *fields: str) -> list[dict[str, Any]]:
        """Parse a JSON list of objects, each carrying every name in ``fields``."""
        records = self.json_list(key)
        for record in records:
            if not isinstance(record, dict) or any(f not in record for f in fields):
                raise MalformedPayload(
                    f"attribute {key} entries must be objects with {', '.join(fields)}"
                )
        return records


@dataclass(frozen=True)
class TextFragment:
    """Narrative block, optionally with a small image (e.g. an avatar)."""

    text: str
    image_url: str | None = None
    image_alt: str = ""

    def to_blocks(self) -> list[dict[str, Any]]:
        block: dict[str, Any] = {
            "type": "section",
            "text": {"type": "mrkdwn", "text": self.text},
        }
        if self.image_url:
            block["accessory"] = {
                "type": "image",
                "image_url": self.image_url,
                "alt_text": self.image_alt or "avatar",
            }
        return [block]

    def plain_text(self) -> str:
        return self.text


@dataclass(frozen=True)
class TableFragment:
    """
    Two-column table rendered as section fields, header row first.

    When ``link_base`` is set, each name in the first column links to
    ``{link_base}/{name}``.
    """

    headers: tuple[str, str]
    rows: tuple[tuple[str, str], ...] = field(default_factory=tuple)
    link_base: str | None = None

    def _fields(self) -> list[dict[str, str]]:
        cells = [f"*{self.headers[0]}*", f"*{self.headers[1]}*"]
        for name, value in self.rows:
            label = escape_mrkdwn(name)
            if self.link_base:
                label = f"<{self.link_base}/{quote(name, safe='/')}|{label}>"
            cells.extend((label, escape_mrkdwn(value)))
        return [{"type": "mrkdwn", "text": cell} for cell in cells]

    def to_blocks(self) -> list[dict[str, Any]]:
        fields = self._fields()
        return [
            {"type": "section", "fields": fields[i : i + SLACK_MAX_SECTION_FIELDS]}
            for i in range(0, len(fields), SLACK_MAX_SECTION_FIELDS)
        ]

    def plain_text(self) -> str:
        return "\n".join(f"{name}: {value}" for name, value in self.rows)


Fragment = Union[TextFragment, TableFragment]


def render_blocks(fragments: Iterable[Fragment]) -> list[dict[str, Any]]:
    blocks: list[dict[str, Any]] = []
    for fragment in fragments:
        blocks.extend(fragment.to_blocks())
    return blocks


def render_fallback_text(fragments: Iterable[Fragment]) -> str:
    """Plain text used by Slack for notifications when blocks are present."""
    return "\n".join(f.plain_text() for f in fragments if f.plain_text())
