# src/mailbox_mcp/tools.py
"""Tool registry and dispatcher.

Every tool is a request model plus an async handler over :class:`EmailManager`.
:func:`dispatch` validates the arguments, runs the handler and turns the
outcome into the text result handed back to the client. Errors are caught
here once and nowhere else.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Type

import structlog
from pydantic import ValidationError

from mailbox_mcp.email_manager import EmailManager
from mailbox_mcp.errors import MailError
from mailbox_mcp.schemas import (
    AdvancedSearchRequest,
    DownloadAttachmentRequest,
    EmptyRequest,
    FetchEmailsRequest,
    GetThreadRequest,
    MailboxNameRequest,
    MarkEmailRequest,
    Request,
    SaveDraftRequest,
    SearchEmailsRequest,
    SendEmailRequest,
    SMTPConfigTestRequest,
    TransferRequest,
)
from mailbox_mcp.smtp import OutgoingAttachment

logger = structlog.get_logger(__name__)

Handler = Callable[[EmailManager, Any], Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    request: Type[Request]
    handler: Handler

    def input_schema(self) -> Dict[str, Any]:
        return self.request.model_json_schema(by_alias=True)


@dataclass(frozen=True)
class ToolResult:
    text: str
    is_error: bool = False


TOOLS: Dict[str, ToolSpec] = {}


def tool(name: str, request: Type[Request], description: str) -> Callable[[Handler], Handler]:
    def register(fn: Handler) -> Handler:
        TOOLS[name] = ToolSpec(name=name, description=description, request=request, handler=fn)
        return fn

    return register


def _dumps(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False)


# -----------------
# Outbound
# -----------------

@tool(
    "send_email",
    SendEmailRequest,
    "Send an email via SMTP. Supports HTML and plain text content, attachments, and CC/BCC recipients.",
)
async def send_email(m: EmailManager, req: SendEmailRequest) -> Dict[str, Any]:
    result = await m.send_email(
        to=req.to,
        subject=req.subject,
        text=req.text,
        html=req.html,
        from_email=req.from_email,
        cc=req.cc,
        bcc=req.bcc,
        attachments=[
            OutgoingAttachment(filename=a.filename, content=a.content, encoding=a.encoding)
            for a in req.attachments or []
        ],
    )
    return {"success": True, **result.to_dict(), "to": req.to, "subject": req.subject}


@tool(
    "verify_connection",
    EmptyRequest,
    "Verify the SMTP connection and authentication using configured credentials.",
)
async def verify_connection(m: EmailManager, req: EmptyRequest) -> Dict[str, Any]:
    await m.verify_connection()
    return {
        "success": True,
        "message": "SMTP connection and authentication verified successfully",
        "host": m.smtp.host,
        "port": m.smtp.port,
        "user": m.smtp.username,
    }


@tool(
    "test_smtp_config",
    SMTPConfigTestRequest,
    "Test SMTP configuration with custom credentials without modifying the server configuration.",
)
async def test_smtp_config(m: EmailManager, req: SMTPConfigTestRequest) -> Dict[str, Any]:
    cfg = await m.test_smtp_config(
        host=req.host,
        port=req.port,
        user=req.user,
        password=req.password,
        secure=req.secure,
    )
    return {
        "success": True,
        "message": "SMTP configuration test successful",
        "host": cfg.host,
        "port": cfg.port,
        "secure": cfg.use_ssl,
        "user": cfg.username,
    }


@tool(
    "get_smtp_info",
    EmptyRequest,
    "Get information about the current SMTP configuration (without revealing credentials).",
)
async def get_smtp_info(m: EmailManager, req: EmptyRequest) -> Dict[str, Any]:
    return m.smtp_info()


# -----------------
# Retrieval
# -----------------

@tool("list_mailboxes", EmptyRequest, "List all available mailboxes/folders in the IMAP account.")
async def list_mailboxes(m: EmailManager, req: EmptyRequest) -> Dict[str, Any]:
    boxes = await m.list_mailboxes()
    return {"success": True, "mailboxes": [b.to_dict() for b in boxes], "count": len(boxes)}


@tool(
    "fetch_emails",
    FetchEmailsRequest,
    "Fetch emails from a specific mailbox. Returns email metadata and content.",
)
async def fetch_emails(m: EmailManager, req: FetchEmailsRequest) -> Dict[str, Any]:
    records = await m.fetch_emails(
        mailbox=req.mailbox,
        limit=req.limit,
        unseen=req.unseen,
        since=req.since,
        include_html=req.include_html,
    )
    return {
        "success": True,
        "mailbox": req.mailbox,
        "count": len(records),
        "emails": [r.to_dict() for r in records],
    }


@tool(
    "search_emails",
    SearchEmailsRequest,
    "Search recent emails by subject, sender or body text.",
)
async def search_emails(m: EmailManager, req: SearchEmailsRequest) -> Dict[str, Any]:
    records = await m.search_emails(query=req.query, mailbox=req.mailbox, limit=req.limit)
    return {
        "success": True,
        "mailbox": req.mailbox,
        "query": req.query,
        "count": len(records),
        "emails": [r.to_dict() for r in records],
    }


@tool(
    "advanced_search",
    AdvancedSearchRequest,
    "Search emails with multiple criteria (sender, recipient, subject, body, date range, flags, size).",
)
async def advanced_search(m: EmailManager, req: AdvancedSearchRequest) -> Dict[str, Any]:
    records = await m.advanced_search(req.criteria.to_criteria(), mailbox=req.mailbox, limit=req.limit)
    return {
        "success": True,
        "mailbox": req.mailbox,
        "criteria": req.criteria.model_dump(by_alias=True, exclude_none=True),
        "count": len(records),
        "emails": [r.to_dict() for r in records],
    }


@tool(
    "get_thread",
    GetThreadRequest,
    "Get the email thread for a message, identified by its Message-ID header.",
)
async def get_thread(m: EmailManager, req: GetThreadRequest) -> Dict[str, Any]:
    result = await m.get_thread(req.message_id, mailbox=req.mailbox)
    return {
        "success": True,
        "mailbox": req.mailbox,
        "messageId": req.message_id,
        "count": len(result.records),
        "thread": [r.to_dict() for r in result.records],
    }


@tool(
    "download_attachment",
    DownloadAttachmentRequest,
    "Download an attachment from an email. Content is returned base64 encoded.",
)
async def download_attachment(m: EmailManager, req: DownloadAttachmentRequest) -> Dict[str, Any]:
    payload = await m.download_attachment(
        uid=req.uid,
        attachment_index=req.attachment_index,
        mailbox=req.mailbox,
    )
    return {"success": True, "message": "Attachment downloaded successfully", **payload.to_dict()}


# -----------------
# Mailbox administration
# -----------------

@tool("mark_email", MarkEmailRequest, "Mark an email as read, unread, flagged, or unflagged.")
async def mark_email(m: EmailManager, req: MarkEmailRequest) -> Dict[str, Any]:
    await m.mark_email(uid=req.uid, flag=req.flag, mailbox=req.mailbox)
    return {
        "success": True,
        "message": f"Email {req.uid} marked as {req.flag}",
        "mailbox": req.mailbox,
        "uid": req.uid,
        "flag": req.flag,
    }


@tool("create_mailbox", MailboxNameRequest, "Create a new mailbox/folder.")
async def create_mailbox(m: EmailManager, req: MailboxNameRequest) -> Dict[str, Any]:
    await m.create_mailbox(req.name)
    return {"success": True, "message": f"Mailbox '{req.name}' created successfully", "name": req.name}


@tool("delete_mailbox", MailboxNameRequest, "Delete a mailbox/folder.")
async def delete_mailbox(m: EmailManager, req: MailboxNameRequest) -> Dict[str, Any]:
    await m.delete_mailbox(req.name)
    return {"success": True, "message": f"Mailbox '{req.name}' deleted successfully", "name": req.name}


@tool("move_message", TransferRequest, "Move an email from one mailbox to another.")
async def move_message(m: EmailManager, req: TransferRequest) -> Dict[str, Any]:
    await m.move_message(uid=req.uid, target_mailbox=req.target_mailbox, source_mailbox=req.source_mailbox)
    return {
        "success": True,
        "message": f"Email {req.uid} moved from '{req.source_mailbox}' to '{req.target_mailbox}'",
        "uid": req.uid,
        "sourceMailbox": req.source_mailbox,
        "targetMailbox": req.target_mailbox,
    }


@tool("copy_message", TransferRequest, "Copy an email to another mailbox.")
async def copy_message(m: EmailManager, req: TransferRequest) -> Dict[str, Any]:
    await m.copy_message(uid=req.uid, target_mailbox=req.target_mailbox, source_mailbox=req.source_mailbox)
    return {
        "success": True,
        "message": f"Email {req.uid} copied from '{req.source_mailbox}' to '{req.target_mailbox}'",
        "uid": req.uid,
        "sourceMailbox": req.source_mailbox,
        "targetMailbox": req.target_mailbox,
    }


@tool("save_draft", SaveDraftRequest, "Save an email as a draft in the Drafts folder.")
async def save_draft(m: EmailManager, req: SaveDraftRequest) -> Dict[str, Any]:
    await m.save_draft(
        to=req.to,
        subject=req.subject,
        text=req.text,
        html=req.html,
        from_email=req.from_email,
        cc=req.cc,
        bcc=req.bcc,
    )
    return {
        "success": True,
        "message": "Draft saved successfully to Drafts folder",
        "to": req.to,
        "subject": req.subject,
    }


# -----------------
# Dispatch
# -----------------

def list_tools() -> List[ToolSpec]:
    return list(TOOLS.values())


async def dispatch(manager: EmailManager, name: str, arguments: Optional[Mapping[str, Any]]) -> ToolResult:
    log = logger.bind(tool=name)
    try:
        spec = TOOLS.get(name)
        if spec is None:
            raise ValueError(f"Unknown tool: {name}")
        req = spec.request.model_validate(dict(arguments or {}))
        log.debug("tool_called")
        payload = await spec.handler(manager, req)
    except ValidationError as e:
        log.info("tool_validation_failed", errors=e.error_count())
        return ToolResult(f"Validation error: {e.json(indent=2, include_url=False)}", is_error=True)
    except (MailError, ValueError) as e:
        log.warning("tool_failed", error=str(e), error_type=type(e).__name__)
        return ToolResult(f"Error: {e}", is_error=True)
    except Exception as e:
        log.exception("tool_crashed")
        return ToolResult(f"Error: {e}", is_error=True)

    return ToolResult(_dumps(payload))
