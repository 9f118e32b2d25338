"""Tests for mailbox_mcp.admin."""

from __future__ import annotations

import pytest

from mailbox_mcp.admin import Draft, MailboxAdminOps, flatten_mailboxes, parse_list_line
from mailbox_mcp.errors import MailboxError, ProtocolError


class TestListParsing:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            (b'(\\HasNoChildren) "/" "INBOX"', ("INBOX", "/")),
            (b'(\\HasChildren) "." Archive', ("Archive", ".")),
            (b'(\\Noselect) NIL "Shared \\"Box\\""', ('Shared "Box"', None)),
            ((b'(\\HasNoChildren) "/" {11}', b"Caf\xc3\xa9 Notes"), ("Café Notes", "/")),
        ],
    )
    def test_parse_list_line(self, raw, expected):
        assert parse_list_line(raw) == expected

    def test_garbage_line_is_skipped(self):
        assert parse_list_line(b"nonsense") is None

    def test_flatten_counts_direct_children(self):
        boxes = flatten_mailboxes(
            [("Work", "/"), ("Work/2024", "/"), ("Work/2025", "/"), ("Work/2025/Q1", "/"), ("INBOX", "/")]
        )
        children = {b.name: b.children for b in boxes}
        assert children == {"Work": 2, "Work/2024": 0, "Work/2025": 1, "Work/2025/Q1": 0, "INBOX": 0}


class TestMark:
    async def test_unread_removes_seen(self, session, fake_imap, make_eml):
        uid = fake_imap.add_message("INBOX", make_eml(), flags={r"\Seen"})

        await MailboxAdminOps(session).mark("INBOX", uid, "unread")

        assert fake_imap.commands[-1] == ("STORE", str(uid), "-FLAGS", r"(\Seen)")
        assert r"\Seen" not in fake_imap.flags_of("INBOX", uid)
        assert fake_imap.readonly is False

    @pytest.mark.parametrize(
        "flag, mode, imap_flag",
        [
            ("read", "+FLAGS", r"\Seen"),
            ("flagged", "+FLAGS", r"\Flagged"),
            ("unflagged", "-FLAGS", r"\Flagged"),
        ],
    )
    async def test_flag_translation(self, session, fake_imap, make_eml, flag, mode, imap_flag):
        uid = fake_imap.add_message("INBOX", make_eml())

        await MailboxAdminOps(session).mark("INBOX", uid, flag)

        assert fake_imap.commands[-1] == ("STORE", str(uid), mode, f"({imap_flag})")

    async def test_unknown_flag(self, session):
        with pytest.raises(ValueError):
            await MailboxAdminOps(session).mark("INBOX", 1, "starred")

    async def test_missing_mailbox(self, session):
        with pytest.raises(MailboxError):
            await MailboxAdminOps(session).mark("Nope", 1, "read")


class TestMailboxOps:
    async def test_list(self, session, fake_imap):
        fake_imap.mailboxes["Work"] = {}
        fake_imap.mailboxes["Work/Clients"] = {}

        boxes = await MailboxAdminOps(session).list_mailboxes()

        assert [b.to_dict() for b in boxes] == [
            {"name": "INBOX", "delimiter": "/", "children": 0},
            {"name": "Drafts", "delimiter": "/", "children": 0},
            {"name": "Work", "delimiter": "/", "children": 1},
            {"name": "Work/Clients", "delimiter": "/", "children": 0},
        ]

    async def test_create_and_delete(self, session, fake_imap):
        ops = MailboxAdminOps(session)

        await ops.create_mailbox("Receipts 2025")
        assert "Receipts 2025" in fake_imap.mailboxes

        await ops.delete_mailbox("Receipts 2025")
        assert "Receipts 2025" not in fake_imap.mailboxes

    async def test_create_existing_fails(self, session):
        with pytest.raises(ProtocolError):
            await MailboxAdminOps(session).create_mailbox("INBOX")


class TestTransfer:
    async def test_move(self, session, fake_imap, make_eml):
        fake_imap.mailboxes["Archive"] = {}
        uid = fake_imap.add_message("INBOX", make_eml(subject="m"))

        await MailboxAdminOps(session).move("INBOX", "Archive", uid)

        assert fake_imap.mailboxes["INBOX"] == {}
        assert len(fake_imap.mailboxes["Archive"]) == 1
        assert fake_imap.commands[-1] == ("MOVE", str(uid), '"Archive"')

    async def test_move_falls_back_without_extension(self, session, fake_imap, make_eml):
        fake_imap.supports_move = False
        fake_imap.mailboxes["Archive"] = {}
        uid = fake_imap.add_message("INBOX", make_eml(subject="m"))

        await MailboxAdminOps(session).move("INBOX", "Archive", uid)

        assert [c[0] for c in fake_imap.commands] == ["MOVE", "COPY", "STORE", "EXPUNGE"]
        assert fake_imap.mailboxes["INBOX"] == {}
        assert len(fake_imap.mailboxes["Archive"]) == 1

    async def test_copy_keeps_source(self, session, fake_imap, make_eml):
        fake_imap.mailboxes["Archive"] = {}
        uid = fake_imap.add_message("INBOX", make_eml())

        await MailboxAdminOps(session).copy("INBOX", "Archive", uid)

        assert uid in fake_imap.mailboxes["INBOX"]
        assert len(fake_imap.mailboxes["Archive"]) == 1

    async def test_copy_to_missing_mailbox(self, session, fake_imap, make_eml):
        uid = fake_imap.add_message("INBOX", make_eml())

        with pytest.raises(ProtocolError):
            await MailboxAdminOps(session).copy("INBOX", "Nowhere", uid)


class TestDrafts:
    def test_plain_draft_bytes(self):
        raw = Draft(from_email="me@x.com", to="you@x.com", subject="Hi", text="body").as_bytes()

        head, body = raw.split(b"\r\n\r\n", 1)
        assert head.split(b"\r\n") == [
            b"From: me@x.com",
            b"To: you@x.com",
            b"Subject: Hi",
            b"MIME-Version: 1.0",
            b'Content-Type: text/plain; charset="UTF-8"',
        ]
        assert body == b"body"

    def test_html_wins_over_text(self):
        raw = Draft(
            from_email="me@x.com",
            to="you@x.com",
            subject="Hi",
            text="plain",
            html="<b>rich</b>",
            cc="c@x.com",
            bcc="b@x.com",
        ).as_bytes()

        assert b"Cc: c@x.com\r\nBcc: b@x.com\r\n" in raw
        assert b'Content-Type: text/html; charset="UTF-8"' in raw
        assert raw.endswith(b"\r\n\r\n<b>rich</b>")

    async def test_append_to_drafts(self, session, fake_imap):
        draft = Draft(from_email="me@x.com", to="you@x.com", subject="Later", text="...")

        await MailboxAdminOps(session).append_draft(draft)

        (stored,) = fake_imap.mailboxes["Drafts"].values()
        assert stored.flags == {r"\Draft"}
        assert b"Subject: Later" in stored.raw
