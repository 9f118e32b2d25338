# src/mailbox_mcp/imap/query.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional, Tuple, Union

DateLike = Union[date, datetime, str]


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    # ISO 8601, date or date-time ("2025-06-01", "2025-06-01T12:00:00Z")
    s = value.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(s).date()
    except ValueError:
        return datetime.strptime(s[:10], "%Y-%m-%d").date()


def _imap_date(value: DateLike) -> str:
    return _as_date(value).strftime("%d-%b-%Y")


def _q(s: str) -> str:
    """
    Quote/escape a string for IMAP SEARCH.
    IMAP uses double quotes for string literals; backslash can escape quotes.
    """
    s = s.replace("\\", "\\\\").replace('"', r"\"")
    return f'"{s}"'


def _unq(token: str) -> str:
    """Inverse of :func:`_q`."""
    return re.sub(r"\\(.)", r"\1", token[1:-1], flags=re.S)


# number of argument tokens following each search key
_ARITY = {
    "FROM": 1,
    "TO": 1,
    "SUBJECT": 1,
    "TEXT": 1,
    "BODY": 1,
    "HEADER": 2,
    "SINCE": 1,
    "BEFORE": 1,
    "LARGER": 1,
    "SMALLER": 1,
}


@dataclass(frozen=True)
class SearchCommand:
    """
    Arguments for one ``UID SEARCH``. ``literal``, when set, is sent by
    imaplib after every other argument as an IMAP literal.
    """
    charset: Optional[str]
    criteria: Union[str, bytes]
    literal: Optional[bytes] = None

    def args(self) -> Tuple:
        if self.charset is None:
            return (None, self.criteria)
        return ("CHARSET", self.charset, self.criteria)


@dataclass
class IMAPQuery:
    parts: List[str] = field(default_factory=list)

    # --- basic fields ---
    def from_(self, s: str) -> "IMAPQuery":
        self.parts += ["FROM", _q(s)]
        return self

    def to(self, s: str) -> "IMAPQuery":
        self.parts += ["TO", _q(s)]
        return self

    def subject(self, s: str) -> "IMAPQuery":
        self.parts += ["SUBJECT", _q(s)]
        return self

    def text(self, s: str) -> "IMAPQuery":
        """
        Match in headers OR body text.
        """
        self.parts += ["TEXT", _q(s)]
        return self

    def body(self, s: str) -> "IMAPQuery":
        """
        Match only in body text.
        """
        self.parts += ["BODY", _q(s)]
        return self

    def header(self, name: str, value: str) -> "IMAPQuery":
        self.parts += ["HEADER", _q(name), _q(value)]
        return self

    # --- date filters ---
    def since(self, d: DateLike) -> "IMAPQuery":
        self.parts += ["SINCE", _imap_date(d)]
        return self

    def before(self, d: DateLike) -> "IMAPQuery":
        self.parts += ["BEFORE", _imap_date(d)]
        return self

    # --- size filters (octets) ---
    def larger(self, n: int) -> "IMAPQuery":
        self.parts += ["LARGER", str(int(n))]
        return self

    def smaller(self, n: int) -> "IMAPQuery":
        self.parts += ["SMALLER", str(int(n))]
        return self

    # --- flags/status ---
    def unseen(self) -> "IMAPQuery":
        self.parts += ["UNSEEN"]
        return self

    def flagged(self) -> "IMAPQuery":
        self.parts += ["FLAGGED"]
        return self

    # --- composition helpers ---
    def all(self) -> "IMAPQuery":
        self.parts += ["ALL"]
        return self

    def clone(self) -> "IMAPQuery":
        return IMAPQuery(parts=list(self.parts))

    def has(self, token: str) -> bool:
        return token.upper() in (p.upper() for p in self.parts)

    def build(self) -> str:
        return " ".join(self.parts) if self.parts else "ALL"

    def _groups(self) -> List[List[str]]:
        groups: List[List[str]] = []
        i = 0
        while i < len(self.parts):
            n = _ARITY.get(self.parts[i].upper(), 0)
            groups.append(self.parts[i : i + 1 + n])
            i += 1 + n
        return groups

    def command(self) -> SearchCommand:
        """
        ASCII queries go out as one string. Anything else is sent with
        ``CHARSET UTF-8``; imaplib allows a single literal per command, so the
        last non-ASCII value moves to the end (search keys are AND-ed) and
        travels as that literal, while any others stay quoted UTF-8.
        """
        text = self.build()
        if text.isascii():
            return SearchCommand(charset=None, criteria=text)

        groups = self._groups()
        last = max(
            (i for i, g in enumerate(groups) if len(g) > 1 and not g[-1].isascii()),
            default=None,
        )
        if last is None:
            return SearchCommand(charset="UTF-8", criteria=text.encode("utf-8"))

        moved = groups.pop(last)
        tokens = [t for g in groups for t in g] + moved[:-1]
        return SearchCommand(
            charset="UTF-8",
            criteria=" ".join(tokens).encode("utf-8"),
            literal=_unq(moved[-1]).encode("utf-8"),
        )


@dataclass(frozen=True)
class SearchCriteria:
    """
    Structured predicate for advanced search. Every field is optional;
    set fields are AND-ed together.
    """
    from_: Optional[str] = None
    to: Optional[str] = None
    subject: Optional[str] = None
    body: Optional[str] = None
    since: Optional[DateLike] = None
    before: Optional[DateLike] = None
    unseen: bool = False
    flagged: bool = False
    larger: Optional[int] = None
    smaller: Optional[int] = None

    def apply(self, q: IMAPQuery, *, include_since: bool = True) -> IMAPQuery:
        if self.from_:
            q.from_(self.from_)
        if self.to:
            q.to(self.to)
        if self.subject:
            q.subject(self.subject)
        if self.body:
            q.body(self.body)
        if include_since and self.since:
            q.since(self.since)
        if self.before:
            q.before(self.before)
        if self.unseen:
            q.unseen()
        if self.flagged:
            q.flagged()
        if self.larger:
            q.larger(self.larger)
        if self.smaller:
            q.smaller(self.smaller)
        return q


@dataclass(frozen=True)
class SearchFilter:
    mailbox: str = "INBOX"
    unseen_only: bool = False
    since: Optional[DateLike] = None
    criteria: Optional[SearchCriteria] = None

    @property
    def lower_bound(self) -> Optional[DateLike]:
        """Caller-supplied lower date bound, from either the filter or its criteria."""
        if self.since:
            return self.since
        if self.criteria is not None and self.criteria.since:
            return self.criteria.since
        return None

    @property
    def upper_bound(self) -> Optional[DateLike]:
        if self.criteria is not None and self.criteria.before:
            return self.criteria.before
        return None

    def base_query(self) -> IMAPQuery:
        """Every predicate except the search window; SINCE is added by the planner."""
        q = IMAPQuery()
        if self.unseen_only:
            q.unseen()
        if self.criteria is not None:
            self.criteria.apply(q, include_since=False)
            if self.unseen_only and self.criteria.unseen:
                # avoid a duplicated UNSEEN token
                q.parts.remove("UNSEEN")
        return q
