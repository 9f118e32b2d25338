# src/mailbox_mcp/records.py
from __future__ import annotations

from typing import Callable

from mailbox_mcp.errors import ParseError
from mailbox_mcp.imap.fetch import RawMessage
from mailbox_mcp.mime import ParsedMail, parse_message
from mailbox_mcp.models import AttachmentSummary, MessageRecord


def record_from_parsed(raw: RawMessage, parsed: ParsedMail, *, include_html: bool = True) -> MessageRecord:
    return MessageRecord(
        uid=raw.uid if raw.uid is not None else raw.seqno,
        seqno=raw.seqno,
        from_email=parsed.from_email,
        to=parsed.to,
        subject=parsed.subject,
        date=parsed.date,
        text=parsed.text,
        html=parsed.html if include_html else None,
        flags=tuple(raw.flags),
        attachments=tuple(
            AttachmentSummary(filename=a.filename, content_type=a.content_type, size=a.size)
            for a in parsed.attachments
        ),
        message_id=parsed.message_id,
        in_reply_to=parsed.in_reply_to,
        references=parsed.references,
    )


def build_record(raw: RawMessage, *, include_html: bool = True) -> MessageRecord:
    """Raw FETCH payload -> MessageRecord. Raises ParseError on malformed input."""
    if not raw.body:
        raise ParseError(f"message seqno={raw.seqno} has no body")
    return record_from_parsed(raw, parse_message(raw.body), include_html=include_html)


def record_builder(*, include_html: bool) -> Callable[[RawMessage], MessageRecord]:
    def _build(raw: RawMessage) -> MessageRecord:
        return build_record(raw, include_html=include_html)

    return _build
