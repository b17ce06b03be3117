"""
Tests for the IMAP message source (no network; imaplib is mocked).
"""

import imaplib
from unittest.mock import MagicMock

import pytest

import imap_scraper
from contact_extractor import ContactExtractionPipeline, FetchCriteria
from imap_scraper import IMAPAuthenticationError, IMAPMessageSource, build_search_criteria, parse_message
from models.entities import MessageHeader
from newsletter_detector import DetectionCache, NewsletterDetector

MULTIPART = b"""From: John Smith <John@Acme.com>
To: Me <me@mine.com>, other@mine.com
Cc: cc@acme.com
Subject: =?utf-8?q?Caf=C3=A9_meeting?=
Date: Mon, 15 Jan 2024 10:00:00 +0000
Message-ID: <abc123@acme.com>
List-Unsubscribe: <mailto:u@acme.com>
MIME-Version: 1.0
Content-Type: multipart/mixed; boundary="outer"

--outer
Content-Type: multipart/alternative; boundary="inner"

--inner
Content-Type: text/plain; charset="UTF-8"

Plain version.

--inner
Content-Type: text/html; charset="UTF-8"

<html><body><p>HTML version.</p></body></html>

--inner--
--outer
Content-Type: application/pdf
Content-Disposition: attachment; filename="deck.pdf"
Content-Transfer-Encoding: base64

JVBERi0=
--outer--
"""


UNKNOWN_CHARSET = (
    b"From: odd@example.com\r\n"
    b"Subject: Odd charset\r\n"
    b"Content-Type: text/plain; charset=\"unknown-8bit\"\r\n\r\n"
    b"Caf\xc3\xa9 2\r\n"
)


def simple_message(uid):
    return (
        "From: sender%s@example.com\r\n"
        "Subject: Message %s\r\n"
        "Content-Type: text/plain\r\n\r\n"
        "Body %s\r\n" % (uid, uid, uid)
    ).encode()


def mock_connection(uids=b"1 2 3", raw=None):
    raw = raw or {}
    conn = MagicMock()
    conn.select.return_value = ("OK", [b"3"])

    def uid(command, *args):
        if command == "search":
            return "OK", [uids]
        if command == "fetch":
            message_uid = args[0].decode()
            body = raw.get(message_uid) or simple_message(message_uid)
            return "OK", [(b"%s (RFC822 {100}" % args[0], body), b")"]
        raise AssertionError(command)

    conn.uid.side_effect = uid
    return conn


class TestBuildSearchCriteria:
    def test_defaults_to_all(self):
        assert build_search_criteria(FetchCriteria()) == ["ALL"]

    def test_text_and_dates(self):
        criteria = FetchCriteria(search_query='say "hi"', start_date="2024-01-15", end_date="2024-01-31")

        assert build_search_criteria(criteria) == [
            "TEXT", '"say \\"hi\\""',
            "SINCE", "15-Jan-2024",
            "BEFORE", "01-Feb-2024",
        ]


class TestParseMessage:
    def test_multipart_message(self):
        message = parse_message("7", MULTIPART)

        assert message.id == "<abc123@acme.com>"
        assert message.subject == "Café meeting"
        assert message.received_at == "2024-01-15T10:00:00+00:00"
        assert message.sender.address == "john@acme.com"
        assert message.sender.name == "John Smith"
        assert [r.address for r in message.to_recipients] == ["me@mine.com", "other@mine.com"]
        assert [r.address for r in message.cc_recipients] == ["cc@acme.com"]
        assert message.bcc_recipients == ()
        assert "HTML version" in message.body
        assert "Plain version" not in message.body
        assert message.has_attachments is True
        assert MessageHeader("List-Unsubscribe", "<mailto:u@acme.com>") in message.headers

    def test_plain_message_uses_uid_as_id(self):
        message = parse_message("42", simple_message("42"))

        assert message.id == "42"
        assert message.body.strip() == "Body 42"
        assert message.has_attachments is False
        assert message.received_at is None

    def test_unknown_charset_falls_back_to_utf8(self):
        message = parse_message("2", UNKNOWN_CHARSET)

        assert message.subject == "Odd charset"
        assert message.body.strip() == "Café 2"


class TestIMAPMessageSource:
    def test_pages_newest_first(self):
        conn = mock_connection()
        source = IMAPMessageSource("me@mine.com", "pw", "imap.test", connection_factory=MagicMock(return_value=conn))
        criteria = FetchCriteria(page_size=2)

        first = source.fetch_messages(criteria)
        second = source.fetch_messages(criteria, first.next_cursor)

        assert [m.id for m in first.messages] == ["3", "2"]
        assert first.next_cursor == "2"
        assert [m.id for m in second.messages] == ["1"]
        assert second.next_cursor is None
        conn.login.assert_called_once_with("me@mine.com", "pw")
        conn.select.assert_called_once_with("inbox", readonly=True)

    def test_empty_mailbox(self):
        conn = mock_connection(uids=b"")
        source = IMAPMessageSource("me@mine.com", "pw", "imap.test", connection_factory=MagicMock(return_value=conn))

        page = source.fetch_messages(FetchCriteria())

        assert page.messages == []
        assert page.next_cursor is None

    def test_authentication_failure(self):
        conn = mock_connection()
        conn.login.side_effect = imaplib.IMAP4.error("invalid credentials")
        source = IMAPMessageSource("me@mine.com", "bad", "imap.test", connection_factory=MagicMock(return_value=conn))

        with pytest.raises(IMAPAuthenticationError, match="Authentication failed for me@mine.com"):
            source.connect()

        conn.logout.assert_called_once()

    def test_search_failure(self):
        conn = mock_connection()
        conn.uid.side_effect = None
        conn.uid.return_value = ("NO", [None])
        source = IMAPMessageSource("me@mine.com", "pw", "imap.test", connection_factory=MagicMock(return_value=conn))

        with pytest.raises(RuntimeError, match="Failed to search emails"):
            source.fetch_messages(FetchCriteria())

    def test_context_manager_logs_out(self):
        conn = mock_connection()
        with IMAPMessageSource("me@mine.com", "pw", "imap.test", connection_factory=MagicMock(return_value=conn)) as source:
            source.fetch_messages(FetchCriteria())

        conn.logout.assert_called_once()

    def test_unparseable_message_is_skipped(self, monkeypatch):
        real = imap_scraper.parse_message

        def flaky(message_id, raw_email):
            if message_id == "2":
                raise ValueError("malformed MIME")
            return real(message_id, raw_email)

        monkeypatch.setattr(imap_scraper, "parse_message", flaky)
        conn = mock_connection()
        source = IMAPMessageSource("me@mine.com", "pw", "imap.test", connection_factory=MagicMock(return_value=conn))

        page = source.fetch_messages(FetchCriteria())

        assert [m.id for m in page.messages] == ["3", "1"]
        assert page.next_cursor is None


class TestPipelineOverIMAP:
    def run_fetch(self, conn):
        source = IMAPMessageSource("me@mine.com", "pw", "imap.test", connection_factory=MagicMock(return_value=conn))
        pipeline = ContactExtractionPipeline(source, detector=NewsletterDetector(DetectionCache()), rules_loader=lambda: None)
        return pipeline.fetch_messages(FetchCriteria(page_size=1))

    def test_unknown_charset_does_not_stop_the_fetch(self):
        messages, error = self.run_fetch(mock_connection(raw={"2": UNKNOWN_CHARSET}))

        assert [m.id for m in messages] == ["3", "2", "1"]
        assert error is None

    def test_page_of_skipped_messages_does_not_stop_the_fetch(self, monkeypatch):
        real = imap_scraper.parse_message

        def flaky(message_id, raw_email):
            if message_id == "2":
                raise ValueError("malformed MIME")
            return real(message_id, raw_email)

        monkeypatch.setattr(imap_scraper, "parse_message", flaky)

        messages, error = self.run_fetch(mock_connection())

        assert [m.id for m in messages] == ["3", "1"]
        assert error is None
