# src/mailbox_mcp/imap/fetch_response.py
"""Helpers for picking apart what ``imaplib`` returns from ``UID FETCH``.

imaplib hands back a flat list mixing ``(meta, literal)`` tuples with bare
``bytes`` continuation lines, e.g.::

    [(b'1 (UID 10 FLAGS (\\Seen) BODY[] {312}', b'...312 bytes...'), b')',
     (b'2 (UID 11 BODY[] {98}', b'...'), b' FLAGS ())']

Attributes may sit before or after the literal, so each message's meta and
trailing continuation are read together.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence, Tuple

SEQ_RE = re.compile(r"^\s*(\d+)\s+\(")
UID_RE = re.compile(r"UID\s+(\d+)", re.IGNORECASE)
FLAGS_RE = re.compile(r"FLAGS\s*\(([^)]*)\)", re.IGNORECASE)
BODY_RE = re.compile(r"BODY\[\]", re.IGNORECASE)


def _text(raw) -> str:
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw).decode("utf-8", errors="replace")
    return str(raw)


def parse_uid(meta: str) -> Optional[int]:
    m = UID_RE.search(meta)
    return int(m.group(1)) if m else None


def parse_flags(meta: str) -> Optional[Tuple[str, ...]]:
    m = FLAGS_RE.search(meta)
    if not m:
        return None
    return tuple(f for f in m.group(1).split() if f)


@dataclass
class FetchedRaw:
    """One message's worth of a FETCH response."""
    seqno: int
    meta: str = ""
    body: Optional[bytes] = None
    extra: List[str] = field(default_factory=list)

    @property
    def attributes(self) -> str:
        return " ".join([self.meta, *self.extra])

    @property
    def uid(self) -> Optional[int]:
        return parse_uid(self.attributes)

    @property
    def flags(self) -> Tuple[str, ...]:
        return parse_flags(self.attributes) or ()


def iter_fetch_messages(data: Sequence) -> Iterator[FetchedRaw]:
    current: Optional[FetchedRaw] = None

    for item in data or []:
        if item is None:
            continue

        if isinstance(item, tuple):
            meta = _text(item[0]) if item else ""
            m = SEQ_RE.match(meta)
            if m:
                if current is not None:
                    yield current
                current = FetchedRaw(seqno=int(m.group(1)), meta=meta)
            elif current is None:
                continue
            else:
                current.extra.append(meta)

            payload = item[1] if len(item) > 1 else None
            if isinstance(payload, (bytes, bytearray)) and BODY_RE.search(meta):
                current.body = bytes(payload)
            continue

        line = _text(item)
        m = SEQ_RE.match(line)
        if m:
            # attribute-only response (no literal), e.g. an unsolicited FLAGS update
            if current is not None:
                yield current
            current = FetchedRaw(seqno=int(m.group(1)), meta=line)
        elif current is not None:
            current.extra.append(line)

    if current is not None:
        yield current
