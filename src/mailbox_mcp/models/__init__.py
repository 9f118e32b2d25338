from mailbox_mcp.models.attachment import AttachmentPayload, AttachmentSummary
from mailbox_mcp.models.mailbox import MailboxInfo, SendResult
from mailbox_mcp.models.message import MessageRecord, iso_timestamp

__all__ = [
    "AttachmentPayload",
    "AttachmentSummary",
    "MailboxInfo",
    "MessageRecord",
    "SendResult",
    "iso_timestamp",
]
