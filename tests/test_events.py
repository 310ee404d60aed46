"""Unit tests for the event interpreter rules."""

from __future__ import annotations

import json

import pytest

from relay.models import EventAttributes, TableFragment, TextFragment
from relay.services.events import ACTIONS, EventInterpreter
from tests.helpers import GitopiaRecorder

REPO_BY_ID = {"RepositoryId": "7"}
REPO_BY_OWNER = {
    "RepositoryOwnerId": "gitopia1org",
    "RepositoryOwnerType": "DAO",
    "RepositoryName": "core",
}
ALICE = "gitopia1alice"
BRANCHES = json.dumps([{"name": "main", "sha": "abc123"}, {"name": "dev", "sha": "def456"}])

COMPLETE: dict[str, dict[str, str]] = {
    "MultiSetRepositoryBranch": {"Creator": ALICE, "RepositoryBranch": BRANCHES, **REPO_BY_ID},
    "MultiDeleteRepositoryBranch": {"Creator": ALICE, "RepositoryBranch": BRANCHES, **REPO_BY_ID},
    "MultiSetRepositoryTag": {
        "Creator": ALICE,
        "RepositoryTag": json.dumps([{"name": "v1.0.0", "sha": "aaa"}]),
        **REPO_BY_OWNER,
    },
    "MultiDeleteRepositoryTag": {
        "Creator": ALICE,
        "RepositoryTag": json.dumps([{"name": "v0.9.0", "sha": "bbb"}]),
        **REPO_BY_OWNER,
    },
    "CreateUser": {"UserUsername": "alice"},
    "CreateDao": {"DaoName": "GitopiaDAO"},
    "CreateRepository": {"Creator": ALICE, **REPO_BY_OWNER},
    "ForkRepository": {"Creator": ALICE, "ParentRepositoryId": "8", **REPO_BY_ID},
    "CreateIssue": {"Creator": ALICE, "IssueIid": "3", "IssueTitle": "Crash on start", **REPO_BY_ID},
    "AddIssueAssignees": {
        "Creator": ALICE,
        "IssueIid": "3",
        "IssueAssignees": json.dumps(["gitopia1bob", ALICE]),
        **REPO_BY_ID,
    },
    "ToggleIssueState": {"Creator": ALICE, "IssueIid": "3", "IssueState": "CLOSED", **REPO_BY_ID},
    "CreatePullRequest": {
        "Creator": ALICE,
        "PullRequestIid": "12",
        "PullRequestTitle": "Add relay",
        **REPO_BY_ID,
    },
    "AddPullRequestReviewers": {
        "Creator": ALICE,
        "PullRequestIid": "12",
        "PullRequestReviewers": json.dumps(["gitopia1bob"]),
        **REPO_BY_ID,
    },
    "SetPullRequestState": {
        "Creator": ALICE,
        "PullRequestIid": "12",
        "PullRequestState": "CLOSED",
        **REPO_BY_ID,
    },
    "LinkPullRequestIssueByIid": {
        "Creator": ALICE,
        "PullRequestIid": "12",
        "IssueIid": "3",
        **REPO_BY_ID,
    },
    "UnlinkPullRequestIssueByIid": {
        "Creator": ALICE,
        "PullRequestIid": "12",
        "IssueIid": "3",
        **REPO_BY_ID,
    },
    "CreateComment": {
        "Creator": ALICE,
        "CommentParentIid": "3",
        "CommentParent": "COMMENT_PARENT_ISSUE",
        "CommentBody": "Looks good to me\nsecond line",
        **REPO_BY_ID,
    },
    "CreateBounty": {
        "Creator": ALICE,
        "BountyId": "1",
        "BountyAmount": json.dumps([{"denom": "ulore", "amount": "1000"}]),
        "BountyExpireAt": "1700000000",
        "BountyParentIid": "3",
        "BountyParent": "BOUNTY_PARENT_ISSUE",
        **REPO_BY_ID,
    },
    "UpdateBountyExpiry": {
        "Creator": ALICE,
        "BountyId": "1",
        "BountyExpireAt": "1700000000",
        **REPO_BY_ID,
    },
    "CloseBounty": {"Creator": ALICE, "BountyId": "1", **REPO_BY_ID},
}

JSON_FIELDS = {
    "MultiSetRepositoryBranch": "RepositoryBranch",
    "MultiDeleteRepositoryBranch": "RepositoryBranch",
    "MultiSetRepositoryTag": "RepositoryTag",
    "MultiDeleteRepositoryTag": "RepositoryTag",
    "AddIssueAssignees": "IssueAssignees",
    "AddPullRequestReviewers": "PullRequestReviewers",
    "CreateBounty": "BountyAmount",
}


def attrs_for(action: str, **overrides: str) -> EventAttributes:
    values = {"action": action, **COMPLETE[action], **overrides}
    return EventAttributes(values.items())


def texts(fragments: list) -> list[str]:
    return [f.text for f in fragments if isinstance(f, TextFragment)]


def test_every_registered_action_has_a_fixture() -> None:
    """The completeness table below covers the whole registry."""
    assert set(COMPLETE) == set(ACTIONS)


@pytest.mark.parametrize("action", sorted(COMPLETE))
async def test_complete_event_renders(interpreter: EventInterpreter, action: str) -> None:
    """Every recognised action with complete attributes renders something."""
    fragments = await interpreter.interpret(attrs_for(action))
    assert len(fragments) >= 1


@pytest.mark.parametrize("action", ["", "Transfer", "DeleteRepository"])
async def test_unknown_action_renders_nothing(
    interpreter: EventInterpreter, action: str
) -> None:
    """Unsupported actions yield no fragments and do not raise."""
    attrs = EventAttributes([("action", action), ("Creator", ALICE)])
    assert await interpreter.interpret(attrs) == []


@pytest.mark.parametrize(("action", "field"), sorted(JSON_FIELDS.items()))
async def test_malformed_json_aborts_event(
    interpreter: EventInterpreter, action: str, field: str
) -> None:
    """Unparsable embedded JSON yields zero fragments, no exception."""
    attrs = attrs_for(action, **{field: '[{"name": "main", "sha"'})
    assert await interpreter.interpret(attrs) == []


async def test_missing_required_key_aborts_event(interpreter: EventInterpreter) -> None:
    """A missing required attribute never produces a partial message."""
    attrs = EventAttributes(
        (k, v) for k, v in attrs_for("CreateIssue").items() if k != "IssueTitle"
    )
    assert await interpreter.interpret(attrs) == []


async def test_missing_repository_context_aborts_event(interpreter: EventInterpreter) -> None:
    """Repository-scoped rules need RepositoryId or the owner triple."""
    attrs = EventAttributes([("action", "CreateRepository"), ("Creator", ALICE)])
    assert await interpreter.interpret(attrs) == []


class TestBranchesAndTags:
    """Multi-set/multi-delete rules."""

    async def test_single_branch_table(self, interpreter: EventInterpreter) -> None:
        """One branch gives a narrative and a one-row table."""
        attrs = attrs_for(
            "MultiSetRepositoryBranch",
            RepositoryBranch='[{"name":"main","sha":"abc123"}]',
        )
        narrative, table = await interpreter.interpret(attrs)
        assert isinstance(narrative, TextFragment)
        assert narrative.text.startswith("Branches updated by <https://gitopia.test/alice|alice>")
        assert "<https://gitopia.test/alice/relay|alice/relay>" in narrative.text
        assert isinstance(table, TableFragment)
        assert table.rows == (("main", "abc123"),)
        assert table.link_base == "https://gitopia.test/alice/relay/tree"

    async def test_rows_keep_input_order(self, interpreter: EventInterpreter) -> None:
        """Name/sha pairing follows the list order."""
        _, table = await interpreter.interpret(attrs_for("MultiDeleteRepositoryBranch"))
        assert table.rows == (("main", "abc123"), ("dev", "def456"))
        assert table.link_base is None

    async def test_owner_attributes_skip_repository_lookup(
        self, interpreter: EventInterpreter, gitopia_recorder: GitopiaRecorder
    ) -> None:
        """Owner id/type/name in the attributes avoid the repository fetch."""
        narrative, _ = await interpreter.interpret(attrs_for("MultiSetRepositoryTag"))
        assert "GitopiaDAO/core" in narrative.text
        assert not any(p.startswith("/repository/") for p in gitopia_recorder.paths)

    async def test_wrong_entry_shape_aborts(self, interpreter: EventInterpreter) -> None:
        """Entries without a sha are malformed."""
        attrs = attrs_for("MultiSetRepositoryTag", RepositoryTag='[{"name": "v1"}]')
        assert await interpreter.interpret(attrs) == []


class TestAccountsAndRepositories:
    async def test_create_user(self, interpreter: EventInterpreter) -> None:
        """The new username is linked."""
        (fragment,) = await interpreter.interpret(attrs_for("CreateUser"))
        assert fragment.text == "New user created <https://gitopia.test/alice|alice>"

    async def test_create_dao(self, interpreter: EventInterpreter) -> None:
        (fragment,) = await interpreter.interpret(attrs_for("CreateDao"))
        assert "GitopiaDAO" in fragment.text

    async def test_create_repository(self, interpreter: EventInterpreter) -> None:
        (fragment,) = await interpreter.interpret(attrs_for("CreateRepository"))
        assert fragment.text == (
            "New repository created by <https://gitopia.test/alice|alice>\n"
            "<https://gitopia.test/GitopiaDAO/core|GitopiaDAO/core>"
        )

    async def test_fork_resolves_both_repositories(self, interpreter: EventInterpreter) -> None:
        (fragment,) = await interpreter.interpret(attrs_for("ForkRepository"))
        assert "forked <https://gitopia.test/GitopiaDAO/core|GitopiaDAO/core>" in fragment.text
        assert fragment.text.endswith("to <https://gitopia.test/alice/relay|alice/relay>")

    async def test_unresolvable_owner_drops_event(self, interpreter: EventInterpreter) -> None:
        """A failed organization lookup yields nothing, without raising."""
        attrs = attrs_for("CreateRepository", RepositoryOwnerId="gitopia1ghost")
        assert await interpreter.interpret(attrs) == []

    async def test_unknown_repository_drops_event(self, interpreter: EventInterpreter) -> None:
        attrs = attrs_for("CreateIssue", RepositoryId="404")
        assert await interpreter.interpret(attrs) == []


class TestIssuesAndPullRequests:
    async def test_create_issue(self, interpreter: EventInterpreter) -> None:
        (fragment,) = await interpreter.interpret(attrs_for("CreateIssue"))
        assert "<https://gitopia.test/alice/relay/issues/3|#3 Crash on start>" in fragment.text

    async def test_assignees_resolve_with_fallback(self, interpreter: EventInterpreter) -> None:
        """Assignees without a username show their address."""
        (fragment,) = await interpreter.interpret(attrs_for("AddIssueAssignees"))
        assert "gitopia1bob" in fragment.text
        assert "<https://gitopia.test/alice|alice> to issue" in fragment.text

    @pytest.mark.parametrize(("state", "verb"), [("OPEN", "reopened"), ("CLOSED", "closed")])
    async def test_toggle_issue_state(
        self, interpreter: EventInterpreter, state: str, verb: str
    ) -> None:
        (fragment,) = await interpreter.interpret(attrs_for("ToggleIssueState", IssueState=state))
        assert f" {verb} by " in fragment.text

    async def test_create_pull_request(self, interpreter: EventInterpreter) -> None:
        (fragment,) = await interpreter.interpret(attrs_for("CreatePullRequest"))
        assert "<https://gitopia.test/alice/relay/pulls/12|#12 Add relay>" in fragment.text

    async def test_merged_pull_request_resolves_head(
        self, interpreter: EventInterpreter, gitopia_recorder: GitopiaRecorder
    ) -> None:
        """Merged pull requests name the head repository and branch."""
        attrs = attrs_for(
            "SetPullRequestState",
            PullRequestState="MERGED",
            PullRequestHead=json.dumps({"repositoryId": 8, "branch": "feature"}),
        )
        (fragment,) = await interpreter.interpret(attrs)
        assert "merged by <https://gitopia.test/alice|alice>" in fragment.text
        assert "GitopiaDAO/core:feature → " in fragment.text
        assert "/repository/8" in gitopia_recorder.paths

    async def test_merged_without_head_is_malformed(self, interpreter: EventInterpreter) -> None:
        attrs = attrs_for("SetPullRequestState", PullRequestState="MERGED")
        assert await interpreter.interpret(attrs) == []

    async def test_closed_pull_request(self, interpreter: EventInterpreter) -> None:
        (fragment,) = await interpreter.interpret(attrs_for("SetPullRequestState"))
        assert "closed by" in fragment.text

    async def test_link_and_unlink(self, interpreter: EventInterpreter) -> None:
        (linked,) = await interpreter.interpret(attrs_for("LinkPullRequestIssueByIid"))
        (unlinked,) = await interpreter.interpret(attrs_for("UnlinkPullRequestIssueByIid"))
        assert "linked issue <https://gitopia.test/alice/relay/issues/3|#3> to pull request" in linked.text
        assert "unlinked issue" in unlinked.text and "from pull request" in unlinked.text


class TestComments:
    async def test_comment_with_avatar(self, interpreter: EventInterpreter) -> None:
        """The creator's avatar is attached and only the first line is quoted."""
        (fragment,) = await interpreter.interpret(attrs_for("CreateComment"))
        assert fragment.image_url == "https://img.test/alice.png"
        assert fragment.image_alt == "alice"
        assert "commented on issue" in fragment.text
        assert fragment.text.endswith("> Looks good to me")

    async def test_comment_on_pull_request_without_avatar(
        self, interpreter: EventInterpreter
    ) -> None:
        attrs = attrs_for(
            "CreateComment",
            Creator="gitopia1bob",
            CommentParent="COMMENT_PARENT_PULL_REQUEST",
            CommentBody="<b>hi</b>",
        )
        (fragment,) = await interpreter.interpret(attrs)
        assert fragment.image_url is None
        assert "commented on pull request" in fragment.text
        assert "&lt;b&gt;hi&lt;/b&gt;" in fragment.text

    @pytest.mark.parametrize("body", ["\n", "   "])
    async def test_blank_comment_body(self, interpreter: EventInterpreter, body: str) -> None:
        """A whitespace-only body still yields the comment line, without a quote."""
        (fragment,) = await interpreter.interpret(attrs_for("CreateComment", CommentBody=body))
        assert "commented on issue" in fragment.text
        assert not any(line.startswith(">") for line in fragment.text.splitlines())


class TestBounties:
    async def test_create_bounty_table(self, interpreter: EventInterpreter) -> None:
        """Bounty amounts become denom/amount rows."""
        narrative, table = await interpreter.interpret(attrs_for("CreateBounty"))
        assert "New bounty #1 created by" in narrative.text
        assert "Expires 2023-11-14 22:13 UTC" in narrative.text
        assert table.headers == ("Denom", "Amount")
        assert table.rows == (("ulore", "1000"),)

    async def test_bad_expiry_is_malformed(self, interpreter: EventInterpreter) -> None:
        attrs = attrs_for("UpdateBountyExpiry", BountyExpireAt="tomorrow")
        assert await interpreter.interpret(attrs) == []

    async def test_close_bounty(self, interpreter: EventInterpreter) -> None:
        (fragment,) = await interpreter.interpret(attrs_for("CloseBounty"))
        assert texts([fragment]) == [
            "Bounty #1 closed by <https://gitopia.test/alice|alice>"
            " in <https://gitopia.test/alice/relay|alice/relay>"
        ]
