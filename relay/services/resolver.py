"""Address and repository name resolution."""

from __future__ import annotations

import logging
from typing import Optional

from relay.errors import NotFound, RelayError, UpstreamError
from relay.models import OwnerKind, OwnerRef, RepositoryDetails
from relay.services.gitopia import GitopiaAPI

logger = logging.getLogger(__name__)


class AddressResolver:
    """
    Map an on-chain address to a display name.

    Users fall back to the raw address when they have no username (or the
    lookup fails at all). Organizations have no fallback: a missing record or
    name raises ``NotFound``.
    """

    def __init__(self, api: GitopiaAPI) -> None:
        self.api = api

    async def resolve(self, address: str, kind: OwnerKind | str) -> str:
        if OwnerKind.parse(kind) is OwnerKind.USER:
            return await self.username(address)
        return await self.organization_name(address)

    async def resolve_owner(self, owner: OwnerRef) -> str:
        return await self.resolve(owner.id, owner.kind)

    async def username(self, address: str) -> str:
        try:
            user = await self.api.get_user(address)
        except NotFound:
            return address
        except UpstreamError as exc:
            logger.warning("User lookup failed for %s: %s", address, exc)
            return address
        username = (user or {}).get("username") or ""
        return username or address

    async def organization_name(self, address: str) -> str:
        dao = await self.api.get_dao(address)
        name = (dao or {}).get("name") or ""
        if not name:
            raise NotFound(f"Unable to retrieve organization name for {address}")
        return name

    async def user_avatar(self, address: str) -> Optional[str]:
        try:
            user = await self.api.get_user(address)
        except RelayError as exc:
            logger.debug("Avatar lookup failed for %s: %s", address, exc)
            return None
        return (user or {}).get("avatarUrl") or None


class RepositoryFetcher:
    def __init__(self, api: GitopiaAPI, resolver: AddressResolver) -> None:
        self.api = api
        self.resolver = resolver

    async def fetch(self, repository_id: str) -> RepositoryDetails:
        """Owner display name and repository name for a repository id."""
        repository = await self.api.get_repository(repository_id)
        owner = repository.get("owner")
        if not isinstance(owner, dict) or not owner.get("id") or not owner.get("type"):
            raise UpstreamError(f"Repository {repository_id} has no owner fields")
        name = repository.get("name")
        if not name:
            raise UpstreamError(f"Repository {repository_id} has no name")

        owner_ref = OwnerRef.of(owner["id"], owner["type"])
        owner_name = await self.resolver.resolve_owner(owner_ref)
        return RepositoryDetails(owner_name=owner_name, repository_name=name)
