from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Sequence, Tuple

from mailbox_mcp.models.attachment import AttachmentSummary

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def iso_timestamp(dt: Optional[datetime]) -> str:
    """UTC, millisecond precision, trailing ``Z``; empty string when unknown."""
    if dt is None:
        return ""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class MessageRecord:
    uid: int
    seqno: int
    from_email: str
    to: str
    subject: str
    date: Optional[datetime] = None
    text: str = ""
    html: Optional[str] = None
    flags: Tuple[str, ...] = ()
    attachments: Tuple[AttachmentSummary, ...] = ()

    # threading headers
    message_id: Optional[str] = None
    in_reply_to: Optional[str] = None
    references: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def sort_key(self) -> datetime:
        if self.date is None:
            return _EPOCH
        if self.date.tzinfo is None:
            return self.date.replace(tzinfo=timezone.utc)
        return self.date

    def related_ids(self) -> Sequence[str]:
        """Own Message-ID, In-Reply-To and every References token, in that order."""
        out = []
        if self.message_id:
            out.append(self.message_id)
        if self.in_reply_to:
            out.append(self.in_reply_to)
        out.extend(r for r in self.references if r)
        return out

    def to_dict(self) -> dict:
        return {
            "uid": self.uid,
            "seqno": self.seqno,
            "messageId": self.message_id or "",
            "inReplyTo": self.in_reply_to or "",
            "references": " ".join(self.references),
            "from": self.from_email,
            "to": self.to,
            "subject": self.subject,
            "date": iso_timestamp(self.date),
            "text": self.text,
            "html": self.html or "",
            "flags": list(self.flags),
            "attachments": [a.to_dict() for a in self.attachments],
        }
