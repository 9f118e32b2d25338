# src/mailbox_mcp/smtp/client.py
from __future__ import annotations

import base64
import binascii
import copy
import mimetypes
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage as PyEmailMessage
from email.utils import getaddresses, make_msgid, parseaddr
from typing import Optional, Sequence

import structlog

from mailbox_mcp.auth import AuthContext
from mailbox_mcp.config import SMTPConfig
from mailbox_mcp.errors import ConfigError, SendError
from mailbox_mcp.models import SendResult

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class OutgoingAttachment:
    filename: str
    content: str
    encoding: str = "utf-8"  # "base64" | "utf-8"

    def payload(self) -> bytes:
        if self.encoding == "base64":
            try:
                return base64.b64decode(self.content, validate=True)
            except (binascii.Error, ValueError) as e:
                raise SendError(f"attachment {self.filename!r} is not valid base64: {e}") from e
        return self.content.encode("utf-8")


def build_message(
    *,
    from_email: str,
    to: str,
    subject: str,
    text: Optional[str] = None,
    html: Optional[str] = None,
    cc: Optional[str] = None,
    bcc: Optional[str] = None,
    attachments: Sequence[OutgoingAttachment] = (),
) -> PyEmailMessage:
    msg = PyEmailMessage()
    msg["From"] = from_email
    msg["To"] = to
    if cc:
        msg["Cc"] = cc
    if bcc:
        msg["Bcc"] = bcc
    msg["Subject"] = subject
    domain = from_email.rsplit("@", 1)[-1] if "@" in from_email else None
    msg["Message-ID"] = make_msgid(domain=domain)

    msg.set_content(text or "")
    if html:
        msg.add_alternative(html, subtype="html")

    for att in attachments:
        ctype, _ = mimetypes.guess_type(att.filename)
        maintype, subtype = (ctype or "application/octet-stream").split("/", 1)
        msg.add_attachment(att.payload(), maintype=maintype, subtype=subtype, filename=att.filename)

    return msg


@dataclass(frozen=True)
class SMTPClient:
    config: SMTPConfig

    @classmethod
    def from_config(cls, config: SMTPConfig) -> "SMTPClient":
        if not config.host:
            raise ConfigError("SMTP host required")
        if not config.port:
            raise ConfigError("SMTP port required")
        return cls(config)

    def _connect(self) -> smtplib.SMTP:
        cfg = self.config
        try:
            if cfg.use_ssl:
                server: smtplib.SMTP = smtplib.SMTP_SSL(
                    cfg.host, cfg.port, timeout=cfg.timeout, context=ssl.create_default_context()
                )
            else:
                server = smtplib.SMTP(cfg.host, cfg.port, timeout=cfg.timeout)
                server.ehlo()
                if server.has_extn("starttls"):
                    server.starttls(context=ssl.create_default_context())
                    server.ehlo()
        except (smtplib.SMTPException, OSError) as e:
            raise SendError(f"SMTP connection to {cfg.host}:{cfg.port} failed: {e}") from e

        if cfg.auth is not None:
            try:
                cfg.auth.apply_smtp(server, AuthContext(host=cfg.host, port=cfg.port))
            except BaseException:
                server.close()
                raise
        return server

    def verify(self) -> None:
        server = self._connect()
        try:
            server.noop()
        except smtplib.SMTPException as e:
            raise SendError(f"SMTP NOOP failed: {e}") from e
        finally:
            try:
                server.quit()
            except smtplib.SMTPException:
                server.close()

    def send(self, msg: PyEmailMessage) -> SendResult:
        """
        Run the MAIL / RCPT / DATA exchange and report the server's reply to
        DATA. Refused recipients are reported; the send fails only when every
        recipient is refused.
        """
        sender = parseaddr(str(msg.get("From", "")))[1]
        recipients = [
            addr
            for _, addr in getaddresses([str(v) for f in ("To", "Cc", "Bcc") for v in msg.get_all(f, [])])
            if addr
        ]
        wire = copy.copy(msg)
        del wire["Bcc"]
        payload = wire.as_bytes(policy=wire.policy.clone(linesep="\r\n"))

        server = self._connect()
        try:
            server.ehlo_or_helo_if_needed()
            code, resp = server.mail(sender)
            if code != 250:
                raise smtplib.SMTPSenderRefused(code, resp, sender)

            refused = {}
            for rcpt in recipients:
                rcode, rresp = server.rcpt(rcpt)
                if rcode not in (250, 251):
                    refused[rcpt] = (rcode, rresp)
            if len(refused) == len(recipients):
                raise smtplib.SMTPRecipientsRefused(refused)

            code, resp = server.data(payload)
            if code != 250:
                raise smtplib.SMTPDataError(code, resp)
        except smtplib.SMTPException as e:
            raise SendError(f"SMTP send failed: {e}") from e
        finally:
            try:
                server.quit()
            except smtplib.SMTPException:
                server.close()

        response = resp.decode(errors="replace") if isinstance(resp, bytes) else str(resp)
        rejected = tuple(sorted(refused))
        accepted = tuple(r for r in recipients if r not in refused)

        logger.info(
            "email_sent",
            message_id=msg.get("Message-ID"),
            accepted=len(accepted),
            rejected=len(rejected),
        )
        return SendResult(
            message_id=msg.get("Message-ID"),
            response=f"{code} {response}".strip(),
            accepted=accepted,
            rejected=rejected,
        )
