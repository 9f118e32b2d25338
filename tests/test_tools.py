"""Tests for mailbox_mcp.tools."""

from __future__ import annotations

import base64
import json

import pytest

from mailbox_mcp.config import SMTPConfig
from mailbox_mcp.email_manager import EmailManager
from mailbox_mcp.tools import TOOLS, dispatch

EXPECTED_TOOLS = {
    "send_email",
    "verify_connection",
    "test_smtp_config",
    "get_smtp_info",
    "list_mailboxes",
    "fetch_emails",
    "search_emails",
    "mark_email",
    "create_mailbox",
    "delete_mailbox",
    "move_message",
    "copy_message",
    "advanced_search",
    "save_draft",
    "get_thread",
    "download_attachment",
}


def test_registry_is_complete():
    assert set(TOOLS) == EXPECTED_TOOLS


def test_input_schemas_use_wire_names():
    props = TOOLS["move_message"].input_schema()["properties"]
    assert {"sourceMailbox", "targetMailbox", "uid"} <= set(props)
    assert "from" in TOOLS["send_email"].input_schema()["properties"]


async def test_fetch_emails_result_shape(manager, fake_imap, make_eml, days_ago):
    fake_imap.add_message("INBOX", make_eml(subject="one", date=days_ago(1)))

    result = await dispatch(manager, "fetch_emails", {"limit": 5})

    assert not result.is_error
    payload = json.loads(result.text)
    assert payload["success"] is True
    assert payload["mailbox"] == "INBOX"
    assert payload["count"] == 1
    assert payload["emails"][0]["subject"] == "one"


@pytest.mark.parametrize(
    "args",
    [
        {"limit": 0},
        {"limit": 101},
        {"since": "not a date"},
    ],
)
async def test_validation_errors(manager, fake_imap, args):
    result = await dispatch(manager, "fetch_emails", args)

    assert result.is_error
    assert result.text.startswith("Validation error: ")
    errors = json.loads(result.text[len("Validation error: "):])
    assert errors and "loc" in errors[0]
    assert fake_imap.logouts == 0


async def test_missing_required_field(manager):
    result = await dispatch(manager, "mark_email", {"uid": 1})

    assert result.is_error
    assert "flag" in result.text


async def test_bad_email_address(manager):
    result = await dispatch(manager, "save_draft", {"to": "not-an-address", "subject": "s"})
    assert result.text.startswith("Validation error: ")


async def test_operation_error_shape(manager, fake_imap, make_eml):
    uid = fake_imap.add_message("INBOX", make_eml())

    result = await dispatch(manager, "download_attachment", {"uid": uid, "attachmentIndex": 0})

    assert result.is_error
    assert result.text == "Error: No attachments found in this email"


async def test_unknown_tool(manager):
    result = await dispatch(manager, "explode", {})
    assert result.is_error
    assert result.text == "Error: Unknown tool: explode"


async def test_download_attachment(manager, fake_imap, make_eml):
    uid = fake_imap.add_message("INBOX", make_eml(attachments=[("n.txt", b"note")]))

    result = await dispatch(manager, "download_attachment", {"uid": uid, "attachmentIndex": 0})

    payload = json.loads(result.text)
    assert payload["message"] == "Attachment downloaded successfully"
    assert payload["filename"] == "n.txt"
    assert payload["encoding"] == "base64"
    assert base64.b64decode(payload["content"]) == b"note"


async def test_admin_messages(manager, fake_imap, make_eml):
    fake_imap.mailboxes["Archive"] = {}
    uid = fake_imap.add_message("INBOX", make_eml())

    marked = json.loads((await dispatch(manager, "mark_email", {"uid": uid, "flag": "unread"})).text)
    copied = json.loads(
        (await dispatch(manager, "copy_message", {"uid": uid, "targetMailbox": "Archive"})).text
    )
    created = json.loads((await dispatch(manager, "create_mailbox", {"name": "Later"})).text)

    assert marked["message"] == f"Email {uid} marked as unread"
    assert copied["message"] == f"Email {uid} copied from 'INBOX' to 'Archive'"
    assert copied["sourceMailbox"] == "INBOX"
    assert created["message"] == "Mailbox 'Later' created successfully"


async def test_list_mailboxes(manager):
    payload = json.loads((await dispatch(manager, "list_mailboxes", None)).text)

    assert payload["count"] == 2
    assert payload["mailboxes"][0] == {"name": "INBOX", "delimiter": "/", "children": 0}


async def test_advanced_search_echoes_criteria(manager, fake_imap, make_eml, days_ago):
    fake_imap.add_message("INBOX", make_eml(subject="Budget", from_addr="cfo@corp.com", date=days_ago(2)))

    result = await dispatch(
        manager,
        "advanced_search",
        {"criteria": {"from": "cfo@corp.com", "since": "2025-06-01"}, "limit": 5},
    )

    payload = json.loads(result.text)
    assert payload["criteria"] == {"from": "cfo@corp.com", "since": "2025-06-01"}
    assert payload["count"] == 1
    assert fake_imap.searches == ['FROM "cfo@corp.com" SINCE 01-Jun-2025']


async def test_get_smtp_info(manager):
    payload = json.loads((await dispatch(manager, "get_smtp_info", {})).text)
    assert payload["defaultFrom"] == "sender@test.com"
    assert "password" not in payload


async def test_send_email_without_sender(imap_config):
    mgr = EmailManager(imap=imap_config, smtp=SMTPConfig(host="smtp.test.com"))
    result = await dispatch(mgr, "send_email", {"to": "you@x.com", "subject": "s"})

    assert result.is_error
    assert result.text.startswith("Error: Sender email address must be provided")
