# src/mailbox_mcp/attachments.py
from __future__ import annotations

import base64

import structlog

from mailbox_mcp.errors import (
    AttachmentIndexError,
    AttachmentNotFoundError,
    ParseError,
)
from mailbox_mcp.imap.fetch import FetchAggregator, RawMessage
from mailbox_mcp.imap.session import ConnectionSession
from mailbox_mcp.mime import ParsedMail, parse_message
from mailbox_mcp.models import AttachmentPayload

logger = structlog.get_logger(__name__)


def _parse_raw(raw: RawMessage) -> ParsedMail:
    if not raw.body:
        raise ParseError(f"message uid={raw.uid} has no body")
    return parse_message(raw.body)


def pick_attachment(parsed: ParsedMail, index: int) -> AttachmentPayload:
    if not parsed.attachments:
        raise AttachmentNotFoundError("No attachments found in this email")
    if index < 0 or index >= len(parsed.attachments):
        raise AttachmentIndexError(f"Attachment index {index} out of range")

    att = parsed.attachments[index]
    return AttachmentPayload(
        filename=att.filename,
        content_type=att.content_type,
        size=att.size,
        content_base64=base64.b64encode(att.payload).decode("ascii"),
    )


class AttachmentExtractor:
    def __init__(self, session: ConnectionSession) -> None:
        self._session = session

    async def extract(self, uid: int, index: int) -> AttachmentPayload:
        aggregator: FetchAggregator[ParsedMail] = FetchAggregator(_parse_raw)
        parsed = await aggregator.fetch(self._session, [uid])

        if not parsed:
            failures = list(aggregator.session.failures.values())
            if failures:
                # a single requested message that cannot be parsed is fatal here
                raise failures[0]
            raise AttachmentNotFoundError(f"Message {uid} not found in {self._session.mailbox!r}")

        payload = pick_attachment(parsed[0], index)
        logger.info(
            "attachment_extracted",
            uid=uid,
            index=index,
            filename=payload.filename,
            size=payload.size,
        )
        return payload
