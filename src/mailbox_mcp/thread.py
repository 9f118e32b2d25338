# src/mailbox_mcp/thread.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List

import structlog

from mailbox_mcp.imap.fetch import FetchAggregator
from mailbox_mcp.imap.planner import uid_search
from mailbox_mcp.imap.query import IMAPQuery
from mailbox_mcp.imap.session import ConnectionSession
from mailbox_mcp.models import MessageRecord
from mailbox_mcp.records import record_builder

logger = structlog.get_logger(__name__)


def _bare_id(message_id: str) -> str:
    return message_id.strip().strip("<>").strip()


def collect_related_ids(target: str, records: Iterable[MessageRecord]) -> List[str]:
    """
    Target first, then each record's Message-ID, In-Reply-To and References
    tokens; duplicates dropped, first occurrence wins.
    """
    seen = {target: None}
    for rec in records:
        for mid in rec.related_ids():
            seen.setdefault(mid, None)
    return list(seen)


@dataclass
class ThreadResult:
    message_id: str
    records: List[MessageRecord] = field(default_factory=list)
    related_ids: List[str] = field(default_factory=list)


class ThreadResolver:
    """
    Finds the message(s) whose Message-ID header equals the target and returns
    them oldest first.

    The related-id set is accumulated from the fetched headers but is not
    used for a second search pass, so replies elsewhere in the conversation
    are not pulled in.
    """

    def __init__(self, session: ConnectionSession) -> None:
        self._session = session

    async def resolve(self, message_id: str) -> ThreadResult:
        q = IMAPQuery().header("Message-ID", message_id)
        uids = await uid_search(self._session, q)
        if not uids:
            return ThreadResult(message_id=message_id, related_ids=[message_id])

        aggregator = FetchAggregator(record_builder(include_html=True))
        fetched = await aggregator.fetch(self._session, uids)
        # HEADER search is a substring match; keep only the exact id
        records = [r for r in fetched if r.message_id and _bare_id(r.message_id) == _bare_id(message_id)]
        records.sort(key=lambda r: r.sort_key)

        related = collect_related_ids(message_id, records)
        logger.info(
            "thread_resolved",
            message_id=message_id,
            count=len(records),
            related=len(related),
        )
        return ThreadResult(message_id=message_id, records=records, related_ids=related)
