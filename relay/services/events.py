"""Slack messages for Gitopia transaction events."""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence

from relay.config import settings
from relay.errors import MalformedPayload, NotFound, UpstreamError
from relay.models import (
    EventAttributes,
    Fragment,
    OwnerKind,
    RepositoryDetails,
    TableFragment,
    TextFragment,
    escape_mrkdwn,
)
from relay.services.resolver import AddressResolver, RepositoryFetcher

logger = logging.getLogger(__name__)

COMMENT_EXCERPT_LIMIT = 200


_esc = escape_mrkdwn


def _first_line(text: str | None, limit: int = COMMENT_EXCERPT_LIMIT) -> str:
    lines = (text or "").strip().splitlines()
    return lines[0][:limit] if lines else ""


def _format_expiry(raw: str) -> str:
    try:
        ts = int(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedPayload(f"BountyExpireAt is not a timestamp: {raw!r}") from exc
    try:
        when = dt.datetime.fromtimestamp(ts, tz=dt.timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise MalformedPayload(f"BountyExpireAt out of range: {raw!r}") from exc
    return when.strftime("%Y-%m-%d %H:%M UTC")


def _json_strings(attrs: EventAttributes, key: str) -> list[str]:
    values = attrs.json_list(key)
    if not all(isinstance(v, str) for v in values):
        raise MalformedPayload(f"attribute {key} must be a JSON list of strings")
    return values


@dataclass
class EventContext:
    """Everything a rule needs to render one event."""

    attrs: EventAttributes
    resolver: AddressResolver
    fetcher: RepositoryFetcher
    web_url: str
    repo: Optional[RepositoryDetails] = None

    def url(self, *parts: Any) -> str:
        return "/".join([self.web_url, *(str(p) for p in parts)])

    def link(self, label: Any, *parts: Any) -> str:
        return f"<{self.url(*parts)}|{_esc(label)}>"

    async def user_link(self, address: str) -> str:
        name = await self.resolver.resolve(address, OwnerKind.USER)
        return self.link(name, name)

    async def creator(self) -> str:
        return await self.user_link(self.attrs["Creator"])

    @property
    def repo_url(self) -> str:
        return self.url(self.repo.owner_name, self.repo.repository_name)

    def repo_link(self, repo: Optional[RepositoryDetails] = None) -> str:
        repo = repo or self.repo
        return self.link(repo.full_name, repo.owner_name, repo.repository_name)

    def issue_link(self, iid: str, title: str | None = None) -> str:
        label = f"#{iid} {title}" if title else f"#{iid}"
        return f"<{self.repo_url}/issues/{iid}|{_esc(label)}>"

    def pull_link(self, iid: str, title: str | None = None) -> str:
        label = f"#{iid} {title}" if title else f"#{iid}"
        return f"<{self.repo_url}/pulls/{iid}|{_esc(label)}>"


Rule = Callable[[EventContext], Awaitable[Sequence[Fragment]]]


# ---------------------------------------------------------------------------
# Branches & tags
# ---------------------------------------------------------------------------
def _ref_rule(key: str, heading: str, *, linked: bool) -> Rule:
    """Rule for multi-set/multi-delete of branches or tags."""

    async def rule(ev: EventContext) -> list[Fragment]:
        refs = ev.attrs.json_records(key, "name", "sha")
        creator = await ev.creator()
        narrative = TextFragment(f"{heading} by {creator} in {ev.repo_link()}")
        table = TableFragment(
            headers=("Name", "Sha"),
            rows=tuple((str(r["name"]), str(r["sha"])) for r in refs),
            link_base=f"{ev.repo_url}/tree" if linked else None,
        )
        return [narrative, table]

    return rule


# ---------------------------------------------------------------------------
# Accounts & repositories
# ---------------------------------------------------------------------------
async def _create_user(ev: EventContext) -> list[Fragment]:
    username = ev.attrs["UserUsername"]
    return [TextFragment(f"New user created {ev.link(username, username)}")]


async def _create_dao(ev: EventContext) -> list[Fragment]:
    name = ev.attrs["DaoName"]
    return [TextFragment(f"New organization created {ev.link(name, name)}")]


async def _create_repository(ev: EventContext) -> list[Fragment]:
    creator = await ev.creator()
    return [TextFragment(f"New repository created by {creator}\n{ev.repo_link()}")]


async def _fork_repository(ev: EventContext) -> list[Fragment]:
    parent = await ev.fetcher.fetch(ev.attrs["ParentRepositoryId"])
    creator = await ev.creator()
    return [
        TextFragment(
            f"{creator} forked {ev.repo_link(parent)} to {ev.repo_link()}"
        )
    ]


# ---------------------------------------------------------------------------
# Issues
# ---------------------------------------------------------------------------
async def _create_issue(ev: EventContext) -> list[Fragment]:
    creator = await ev.creator()
    issue = ev.issue_link(ev.attrs["IssueIid"], ev.attrs["IssueTitle"])
    return [TextFragment(f"New issue created by {creator} in {ev.repo_link()}\n{issue}")]


async def _add_issue_assignees(ev: EventContext) -> list[Fragment]:
    assignees = _json_strings(ev.attrs, "IssueAssignees")
    creator = await ev.creator()
    names = [await ev.user_link(address) for address in assignees]
    issue = ev.issue_link(ev.attrs["IssueIid"], ev.attrs.get("IssueTitle"))
    return [
        TextFragment(
            f"{creator} assigned {', '.join(names) or 'nobody'} to issue {issue}"
            f" in {ev.repo_link()}"
        )
    ]


async def _toggle_issue_state(ev: EventContext) -> list[Fragment]:
    state = ev.attrs["IssueState"].upper()
    verb = "reopened" if state == "OPEN" else "closed" if state == "CLOSED" else state.lower()
    creator = await ev.creator()
    issue = ev.issue_link(ev.attrs["IssueIid"], ev.attrs.get("IssueTitle"))
    return [TextFragment(f"Issue {issue} {verb} by {creator} in {ev.repo_link()}")]


# ---------------------------------------------------------------------------
# Pull requests
# ---------------------------------------------------------------------------
async def _create_pull_request(ev: EventContext) -> list[Fragment]:
    creator = await ev.creator()
    pull = ev.pull_link(ev.attrs["PullRequestIid"], ev.attrs["PullRequestTitle"])
    return [
        TextFragment(f"New pull request created by {creator} in {ev.repo_link()}\n{pull}")
    ]


async def _add_pull_request_reviewers(ev: EventContext) -> list[Fragment]:
    reviewers = _json_strings(ev.attrs, "PullRequestReviewers")
    creator = await ev.creator()
    names = [await ev.user_link(address) for address in reviewers]
    pull = ev.pull_link(ev.attrs["PullRequestIid"], ev.attrs.get("PullRequestTitle"))
    return [
        TextFragment(
            f"{creator} requested review from {', '.join(names) or 'nobody'}"
            f" on pull request {pull} in {ev.repo_link()}"
        )
    ]


async def _set_pull_request_state(ev: EventContext) -> list[Fragment]:
    state = ev.attrs["PullRequestState"].upper()
    pull = ev.pull_link(ev.attrs["PullRequestIid"], ev.attrs.get("PullRequestTitle"))

    if state == "MERGED":
        head = ev.attrs.json("PullRequestHead")
        if not isinstance(head, dict) or not head.get("repositoryId"):
            raise MalformedPayload("attribute PullRequestHead has no repositoryId")
        head_repo = await ev.fetcher.fetch(str(head["repositoryId"]))
        creator = await ev.creator()
        branch = head.get("branch") or "?"
        return [
            TextFragment(
                f"Pull request {pull} merged by {creator}\n"
                f"{_esc(head_repo.full_name)}:{_esc(branch)} → {ev.repo_link()}"
            )
        ]

    verb = {"CLOSED": "closed", "OPEN": "reopened"}.get(state, f"set to {state.lower()}")
    creator = await ev.creator()
    return [TextFragment(f"Pull request {pull} {verb} by {creator} in {ev.repo_link()}")]


def _issue_link_rule(verb: str, preposition: str) -> Rule:
    async def rule(ev: EventContext) -> list[Fragment]:
        creator = await ev.creator()
        issue = ev.issue_link(ev.attrs["IssueIid"])
        pull = ev.pull_link(ev.attrs["PullRequestIid"])
        return [
            TextFragment(
                f"{creator} {verb} issue {issue} {preposition} pull request {pull}"
                f" in {ev.repo_link()}"
            )
        ]

    return rule


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------
async def _create_comment(ev: EventContext) -> list[Fragment]:
    creator_address = ev.attrs["Creator"]
    creator_name = await ev.resolver.resolve(creator_address, OwnerKind.USER)
    avatar = await ev.resolver.user_avatar(creator_address)

    iid = ev.attrs["CommentParentIid"]
    if "PULL" in ev.attrs["CommentParent"].upper():
        target = f"pull request {ev.pull_link(iid)}"
    else:
        target = f"issue {ev.issue_link(iid)}"

    lines = [
        f"{ev.link(creator_name, creator_name)} commented on {target} in {ev.repo_link()}"
    ]
    excerpt = _first_line(ev.attrs["CommentBody"])
    if excerpt:
        lines.append(f"> {_esc(excerpt)}")
    return [TextFragment("\n".join(lines), image_url=avatar, image_alt=creator_name)]


# ---------------------------------------------------------------------------
# Bounties
# ---------------------------------------------------------------------------
def _bounty_parent(ev: EventContext) -> str:
    iid = ev.attrs.get("BountyParentIid")
    if not iid:
        return ""
    if "PULL" in ev.attrs.get("BountyParent", "").upper():
        return f" on pull request {ev.pull_link(iid)}"
    return f" on issue {ev.issue_link(iid)}"


async def _create_bounty(ev: EventContext) -> list[Fragment]:
    amounts = ev.attrs.json_records("BountyAmount", "denom", "amount")
    expires = _format_expiry(ev.attrs["BountyExpireAt"])
    creator = await ev.creator()
    narrative = TextFragment(
        f"New bounty #{_esc(ev.attrs['BountyId'])} created by {creator}"
        f"{_bounty_parent(ev)} in {ev.repo_link()}\nExpires {expires}"
    )
    table = TableFragment(
        headers=("Denom", "Amount"),
        rows=tuple((str(a["denom"]), str(a["amount"])) for a in amounts),
    )
    return [narrative, table]


async def _update_bounty_expiry(ev: EventContext) -> list[Fragment]:
    expires = _format_expiry(ev.attrs["BountyExpireAt"])
    creator = await ev.creator()
    return [
        TextFragment(
            f"Bounty #{_esc(ev.attrs['BountyId'])} expiry set to {expires}"
            f" by {creator} in {ev.repo_link()}"
        )
    ]


async def _close_bounty(ev: EventContext) -> list[Fragment]:
    creator = await ev.creator()
    return [
        TextFragment(
            f"Bounty #{_esc(ev.attrs['BountyId'])} closed by {creator}"
            f"{_bounty_parent(ev)} in {ev.repo_link()}"
        )
    ]


@dataclass(frozen=True)
class ActionRule:
    """
    Registry entry for one action tag.

    ``requires`` lists attributes that must be present and non-empty;
    ``repository`` marks rules that need the repository context, which comes
    from ``RepositoryOwnerId``/``RepositoryOwnerType``/``RepositoryName`` when
    all three are present, otherwise from a lookup of ``RepositoryId``.
    """

    handler: Rule
    requires: tuple[str, ...] = ()
    repository: bool = True


ACTIONS: dict[str, ActionRule] = {
    "MultiSetRepositoryBranch": ActionRule(
        _ref_rule("RepositoryBranch", "Branches updated", linked=True),
        ("Creator", "RepositoryBranch"),
    ),
    "MultiDeleteRepositoryBranch": ActionRule(
        _ref_rule("RepositoryBranch", "Branches deleted", linked=False),
        ("Creator", "RepositoryBranch"),
    ),
    "MultiSetRepositoryTag": ActionRule(
        _ref_rule("RepositoryTag", "Tags updated", linked=True),
        ("Creator", "RepositoryTag"),
    ),
    "MultiDeleteRepositoryTag": ActionRule(
        _ref_rule("RepositoryTag", "Tags deleted", linked=False),
        ("Creator", "RepositoryTag"),
    ),
    "CreateUser": ActionRule(_create_user, ("UserUsername",), repository=False),
    "CreateDao": ActionRule(_create_dao, ("DaoName",), repository=False),
    "CreateRepository": ActionRule(_create_repository, ("Creator",)),
    "ForkRepository": ActionRule(_fork_repository, ("Creator", "ParentRepositoryId")),
    "CreateIssue": ActionRule(_create_issue, ("Creator", "IssueIid", "IssueTitle")),
    "AddIssueAssignees": ActionRule(
        _add_issue_assignees, ("Creator", "IssueIid", "IssueAssignees")
    ),
    "ToggleIssueState": ActionRule(
        _toggle_issue_state, ("Creator", "IssueIid", "IssueState")
    ),
    "CreatePullRequest": ActionRule(
        _create_pull_request, ("Creator", "PullRequestIid", "PullRequestTitle")
    ),
    "AddPullRequestReviewers": ActionRule(
        _add_pull_request_reviewers,
        ("Creator", "PullRequestIid", "PullRequestReviewers"),
    ),
    "SetPullRequestState": ActionRule(
        _set_pull_request_state, ("Creator", "PullRequestIid", "PullRequestState")
    ),
    "LinkPullRequestIssueByIid": ActionRule(
        _issue_link_rule("linked", "to"), ("Creator", "PullRequestIid", "IssueIid")
    ),
    "UnlinkPullRequestIssueByIid": ActionRule(
        _issue_link_rule("unlinked", "from"), ("Creator", "PullRequestIid", "IssueIid")
    ),
    "CreateComment": ActionRule(
        _create_comment,
        ("Creator", "CommentParentIid", "CommentParent", "CommentBody"),
    ),
    "CreateBounty": ActionRule(
        _create_bounty, ("Creator", "BountyId", "BountyAmount", "BountyExpireAt")
    ),
    "UpdateBountyExpiry": ActionRule(
        _update_bounty_expiry, ("Creator", "BountyId", "BountyExpireAt")
    ),
    "CloseBounty": ActionRule(_close_bounty, ("Creator", "BountyId")),
}

REPOSITORY_CONTEXT_KEYS = ("RepositoryOwnerId", "RepositoryOwnerType", "RepositoryName")


class EventInterpreter:
    """Turn decoded event attributes into Slack message fragments."""

    def __init__(
        self,
        resolver: AddressResolver,
        fetcher: RepositoryFetcher,
        *,
        web_url: Optional[str] = None,
        actions: Optional[dict[str, ActionRule]] = None,
    ) -> None:
        self.resolver = resolver
        self.fetcher = fetcher
        self.web_url = (web_url or settings.gitopia_web_url).rstrip("/")
        self.actions = ACTIONS if actions is None else actions

    def validate(self, attrs: EventAttributes, rule: ActionRule) -> None:
        attrs.require(*rule.requires)
        if rule.repository and not (
            attrs.has(*REPOSITORY_CONTEXT_KEYS) or attrs.has("RepositoryId")
        ):
            raise MalformedPayload.missing("RepositoryId")

    async def repository_context(self, attrs: EventAttributes) -> RepositoryDetails:
        owner = attrs.owner()
        if owner is not None and attrs.has("RepositoryName"):
            owner_name = await self.resolver.resolve_owner(owner)
            return RepositoryDetails(owner_name, attrs["RepositoryName"])
        return await self.fetcher.fetch(attrs["RepositoryId"])

    async def interpret(self, attrs: EventAttributes) -> list[Fragment]:
        """
        Render one event.

        Unknown actions, malformed attributes and failed lookups all yield an
        empty list; the reason is logged.
        """
        action = attrs.action
        rule = self.actions.get(action)
        if rule is None:
            logger.info("Unsupported action %s", action or "<missing>")
            return []

        try:
            self.validate(attrs, rule)
            ev = EventContext(attrs, self.resolver, self.fetcher, self.web_url)
            if rule.repository:
                ev.repo = await self.repository_context(attrs)
            return list(await rule.handler(ev))
        except MalformedPayload as exc:
            logger.warning("Dropping %s event: %s", action, exc)
        except (NotFound, UpstreamError) as exc:
            logger.warning("Lookup failed for %s event: %s", action, exc)
        return []
