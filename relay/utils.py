"""the beautiful world start from here."""

from __future__ import annotations

CMD_HELP = """Manage this channel's notifications with the slash command:
- subscribe <owner>   : relay events for repositories owned by <owner>
- subscribe *         : relay every event
- subscribe list      : show this channel's subscriptions
- unsubscribe <owner> : stop relaying events for <owner>

<owner> is a Gitopia username, organization name or address; case does not matter."""
