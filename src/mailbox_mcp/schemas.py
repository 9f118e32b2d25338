# src/mailbox_mcp/schemas.py
"""Request models for every tool. Validation happens here, before any I/O."""
from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from mailbox_mcp.imap.query import SearchCriteria, _as_date

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

MIN_LIMIT = 1
MAX_LIMIT = 100
DEFAULT_LIMIT = 10


class Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def _check_date(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    _as_date(value)
    return value


class AttachmentIn(Request):
    filename: str
    content: str
    encoding: Literal["base64", "utf-8"] = "utf-8"


class SendEmailRequest(Request):
    to: str = Field(pattern=EMAIL_PATTERN)
    subject: str
    text: Optional[str] = None
    html: Optional[str] = None
    from_email: Optional[str] = Field(default=None, alias="from", pattern=EMAIL_PATTERN)
    cc: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN)
    bcc: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN)
    attachments: Optional[List[AttachmentIn]] = None


class SaveDraftRequest(Request):
    to: str = Field(pattern=EMAIL_PATTERN)
    subject: str
    text: Optional[str] = None
    html: Optional[str] = None
    from_email: Optional[str] = Field(default=None, alias="from", pattern=EMAIL_PATTERN)
    cc: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN)
    bcc: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN)


class SMTPConfigTestRequest(Request):
    host: str
    port: int
    secure: Optional[bool] = None
    user: str
    password: str


class EmptyRequest(Request):
    pass


class FetchEmailsRequest(Request):
    mailbox: str = "INBOX"
    limit: int = Field(default=DEFAULT_LIMIT, ge=MIN_LIMIT, le=MAX_LIMIT)
    since: Optional[str] = None
    unseen: bool = False
    include_html: bool = Field(default=False, alias="includeHtml")

    @field_validator("since")
    @classmethod
    def check_since(cls, v: Optional[str]) -> Optional[str]:
        return _check_date(v)


class SearchEmailsRequest(Request):
    mailbox: str = "INBOX"
    query: str
    limit: int = Field(default=DEFAULT_LIMIT, ge=MIN_LIMIT, le=MAX_LIMIT)


class CriteriaIn(Request):
    from_: Optional[str] = Field(default=None, alias="from")
    to: Optional[str] = None
    subject: Optional[str] = None
    body: Optional[str] = None
    since: Optional[str] = None
    before: Optional[str] = None
    unseen: Optional[bool] = None
    flagged: Optional[bool] = None
    larger: Optional[int] = Field(default=None, ge=0)
    smaller: Optional[int] = Field(default=None, ge=0)

    @field_validator("since", "before")
    @classmethod
    def check_dates(cls, v: Optional[str]) -> Optional[str]:
        return _check_date(v)

    def to_criteria(self) -> SearchCriteria:
        return SearchCriteria(
            from_=self.from_,
            to=self.to,
            subject=self.subject,
            body=self.body,
            since=self.since,
            before=self.before,
            unseen=bool(self.unseen),
            flagged=bool(self.flagged),
            larger=self.larger,
            smaller=self.smaller,
        )


class AdvancedSearchRequest(Request):
    mailbox: str = "INBOX"
    criteria: CriteriaIn
    limit: int = Field(default=DEFAULT_LIMIT, ge=MIN_LIMIT, le=MAX_LIMIT)


class MarkEmailRequest(Request):
    mailbox: str = "INBOX"
    uid: int
    flag: Literal["read", "unread", "flagged", "unflagged"]


class MailboxNameRequest(Request):
    name: str = Field(min_length=1)


class TransferRequest(Request):
    source_mailbox: str = Field(default="INBOX", alias="sourceMailbox")
    target_mailbox: str = Field(alias="targetMailbox", min_length=1)
    uid: int


class GetThreadRequest(Request):
    mailbox: str = "INBOX"
    message_id: str = Field(alias="messageId", min_length=1)


class DownloadAttachmentRequest(Request):
    mailbox: str = "INBOX"
    uid: int
    attachment_index: int = Field(alias="attachmentIndex")
