"""Shared fixtures: a fake Gitopia API, resolver stack and chat client."""

from __future__ import annotations

import typing as typ

import httpx
import pytest
import pytest_asyncio

from relay.services.events import EventInterpreter
from relay.services.gitopia import GitopiaAPI
from relay.services.resolver import AddressResolver, RepositoryFetcher
from relay.subscriptions import SubscriptionTable
from tests.helpers import API_URL, WEB_URL, FakeChat, GitopiaRecorder, gitopia_handler


@pytest.fixture
def gitopia_recorder() -> GitopiaRecorder:
    return GitopiaRecorder()


@pytest_asyncio.fixture
async def gitopia_api(gitopia_recorder: GitopiaRecorder) -> typ.AsyncIterator[GitopiaAPI]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(gitopia_handler(gitopia_recorder)))
    yield GitopiaAPI(API_URL, client=client)
    await client.aclose()


@pytest.fixture
def resolver(gitopia_api: GitopiaAPI) -> AddressResolver:
    return AddressResolver(gitopia_api)


@pytest.fixture
def fetcher(gitopia_api: GitopiaAPI, resolver: AddressResolver) -> RepositoryFetcher:
    return RepositoryFetcher(gitopia_api, resolver)


@pytest.fixture
def interpreter(resolver: AddressResolver, fetcher: RepositoryFetcher) -> EventInterpreter:
    return EventInterpreter(resolver, fetcher, web_url=WEB_URL)


@pytest.fixture
def subscriptions() -> SubscriptionTable:
    return SubscriptionTable()


@pytest.fixture
def chat() -> FakeChat:
    return FakeChat()
