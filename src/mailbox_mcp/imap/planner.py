# src/mailbox_mcp/imap/planner.py
"""Progressive time-window SEARCH.

Without a caller-supplied lower date bound we search the last month, then
the last two, and so on up to one year, stopping as soon as a window holds
enough messages. A short result is acceptable; an unbounded scan is not.
"""
from __future__ import annotations

import calendar
import imaplib
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, List, Optional, Sequence

import structlog

from mailbox_mcp.errors import ProtocolError
from mailbox_mcp.imap.query import DateLike, IMAPQuery, SearchFilter, _as_date
from mailbox_mcp.imap.session import ConnectionSession

logger = structlog.get_logger(__name__)

MONTHS_BACK_START = 1
MONTHS_BACK_STEP = 1
MONTHS_BACK_CEILING = 12


def months_ago(anchor: DateLike, months: int) -> date:
    """Calendar-month subtraction; the day is clamped to the target month's length."""
    d = _as_date(anchor)
    total = d.year * 12 + (d.month - 1) - months
    year, month0 = divmod(total, 12)
    month = month0 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def select_most_recent(uids: Sequence[int], limit: int) -> List[int]:
    """
    SEARCH returns ascending (oldest first) ids; the newest ``limit`` are the
    tail of that sequence.
    """
    if limit <= 0:
        return []
    return list(uids[-limit:])


def window_query(flt: SearchFilter, months_back: int, *, now: DateLike) -> IMAPQuery:
    """Filter predicates AND (date >= anchor - months_back)."""
    anchor = flt.upper_bound or now
    return flt.base_query().since(months_ago(anchor, months_back))


def bounded_query(flt: SearchFilter) -> IMAPQuery:
    bound = flt.lower_bound
    q = flt.base_query()
    if bound is not None:
        q.since(bound)
    return q


async def uid_search(session: ConnectionSession, query: IMAPQuery) -> List[int]:
    criteria = query.build()
    cmd = query.command()

    def _impl(conn: imaplib.IMAP4) -> List[int]:
        if cmd.literal is not None:
            conn.literal = cmd.literal
        typ, data = conn.uid("SEARCH", *cmd.args())
        if typ != "OK":
            raise ProtocolError(f"SEARCH {criteria!r} failed: {data}")
        raw = (data[0] if data else b"") or b""
        return [int(x) for x in raw.split() if x]

    return await session.run(_impl)


@dataclass
class SearchOutcome:
    uids: List[int]
    criteria: str
    months_back: Optional[int] = None
    rounds: List[int] = field(default_factory=list)

    def most_recent(self, limit: int) -> List[int]:
        return select_most_recent(self.uids, limit)


class SearchPlanner:
    def __init__(
        self,
        session: ConnectionSession,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        ceiling: int = MONTHS_BACK_CEILING,
    ) -> None:
        self._session = session
        self._clock = clock
        self._ceiling = max(MONTHS_BACK_START, ceiling)

    async def search(self, flt: SearchFilter, *, limit: int) -> SearchOutcome:
        if flt.lower_bound is not None:
            # never widen a caller-specified bound
            q = bounded_query(flt)
            uids = await uid_search(self._session, q)
            logger.info(
                "search_bounded",
                mailbox=flt.mailbox,
                criteria=q.build(),
                found=len(uids),
            )
            return SearchOutcome(uids=uids, criteria=q.build())

        now = self._clock()
        months_back = MONTHS_BACK_START
        rounds: List[int] = []

        while True:
            q = window_query(flt, months_back, now=now)
            uids = await uid_search(self._session, q)
            rounds.append(months_back)
            logger.info(
                "search_window",
                mailbox=flt.mailbox,
                months_back=months_back,
                criteria=q.build(),
                found=len(uids),
                wanted=limit,
            )

            if len(uids) >= limit or months_back >= self._ceiling:
                break
            months_back = min(months_back + MONTHS_BACK_STEP, self._ceiling)

        # successive windows are supersets; only the widest result is kept
        return SearchOutcome(
            uids=uids,
            criteria=q.build(),
            months_back=months_back,
            rounds=rounds,
        )
