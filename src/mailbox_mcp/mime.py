"""MIME parsing: raw RFC 822 bytes -> ParsedMail.

This is the only place that touches ``email.message`` objects; everything
downstream works on the plain dataclasses below.
"""

from __future__ import annotations

import email.utils
from dataclasses import dataclass, field
from datetime import datetime
from email.message import EmailMessage as PyEmailMessage
from email.parser import BytesParser
from email.policy import default as default_policy
from typing import List, Optional, Tuple

from mailbox_mcp.errors import ParseError


@dataclass(frozen=True)
class ParsedAttachment:
    filename: Optional[str]
    content_type: str
    payload: bytes

    @property
    def size(self) -> int:
        return len(self.payload)


@dataclass(frozen=True)
class ParsedMail:
    from_email: str
    to: str
    subject: str
    date: Optional[datetime]
    text: str
    html: Optional[str]
    attachments: List[ParsedAttachment] = field(default_factory=list)
    message_id: Optional[str] = None
    in_reply_to: Optional[str] = None
    references: Tuple[str, ...] = ()


def _header_text(msg: PyEmailMessage, name: str) -> str:
    value = msg.get(name)
    if value is None:
        return ""
    return str(value).strip()


def _parse_date(msg: PyEmailMessage) -> Optional[datetime]:
    header = msg.get("Date")
    if header is None:
        return None
    dt = getattr(header, "datetime", None)
    if dt is not None:
        return dt
    try:
        return email.utils.parsedate_to_datetime(str(header))
    except (TypeError, ValueError):
        return None


def _is_attachment(part: PyEmailMessage) -> bool:
    if part.get_content_maintype() == "multipart":
        return False
    disposition = str(part.get("Content-Disposition", "")).lower()
    return "attachment" in disposition or bool(part.get_filename())


def _decode_text(part: PyEmailMessage) -> str:
    try:
        content = part.get_content()
    except (LookupError, UnicodeError):
        # unknown charset: fall back to a lossy decode of the raw payload
        raw = part.get_payload(decode=True) or b""
        return raw.decode("utf-8", errors="replace")
    return content if isinstance(content, str) else ""


def _extract_bodies(msg: PyEmailMessage) -> Tuple[str, Optional[str]]:
    text: Optional[str] = None
    html: Optional[str] = None

    for part in msg.walk():
        if part.get_content_maintype() == "multipart" or _is_attachment(part):
            continue
        ctype = part.get_content_type()
        if ctype == "text/plain" and text is None:
            text = _decode_text(part)
        elif ctype == "text/html" and html is None:
            html = _decode_text(part)

    return text or "", html


def _extract_attachments(msg: PyEmailMessage) -> List[ParsedAttachment]:
    out: List[ParsedAttachment] = []
    for part in msg.walk():
        if not _is_attachment(part):
            continue
        payload = part.get_payload(decode=True)
        if payload is None:
            # message/rfc822 and friends: keep the serialized sub-message
            inner = part.get_payload()
            if isinstance(inner, list) and inner:
                payload = inner[0].as_bytes()
            else:
                payload = b""
        out.append(
            ParsedAttachment(
                filename=part.get_filename(),
                content_type=part.get_content_type(),
                payload=payload,
            )
        )
    return out


def _split_references(value: str) -> Tuple[str, ...]:
    return tuple(tok.strip() for tok in value.split() if tok.strip())


def parse_message(raw: bytes) -> ParsedMail:
    """
    Parse one raw message. Raises ParseError on anything the stdlib parser
    or our header handling chokes on.
    """
    if not isinstance(raw, (bytes, bytearray)):
        raise ParseError(f"expected bytes, got {type(raw).__name__}")
    if not raw.strip():
        raise ParseError("empty message buffer")

    try:
        msg = BytesParser(policy=default_policy).parsebytes(bytes(raw))
        text, html = _extract_bodies(msg)

        return ParsedMail(
            from_email=_header_text(msg, "From"),
            to=_header_text(msg, "To"),
            subject=_header_text(msg, "Subject"),
            date=_parse_date(msg),
            text=text,
            html=html,
            attachments=_extract_attachments(msg),
            message_id=_header_text(msg, "Message-ID") or None,
            in_reply_to=_header_text(msg, "In-Reply-To") or None,
            references=_split_references(_header_text(msg, "References")),
        )
    except ParseError:
        raise
    except Exception as e:
        raise ParseError(f"could not parse message: {e}") from e
