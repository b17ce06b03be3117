# imap_scraper.py
"""
IMAP message source: logs in, searches a mailbox newest-first and hands the
pipeline pages of RawMessage. The cursor is the offset into the search result.
"""

import email
import imaplib
import logging
from datetime import timedelta
from email.header import decode_header
from email.utils import getaddresses, parsedate_to_datetime
from typing import Callable, List, Optional, Tuple

from contact_extractor import FetchCriteria, MessagePage, parse_date_filter
from models.entities import EmailAddress, MessageHeader, RawMessage

logger = logging.getLogger(__name__)


class IMAPAuthenticationError(RuntimeError):
    pass


def _text(raw: bytes, charset: Optional[str]) -> str:
    try:
        return raw.decode(charset or "utf-8", errors="ignore")
    except LookupError:
        logger.debug("Unknown charset %r, decoding as utf-8", charset)
        return raw.decode("utf-8", errors="ignore")


def _decode(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    pieces = []
    for part, encoding in decode_header(value):
        if isinstance(part, bytes):
            pieces.append(_text(part, encoding))
        else:
            pieces.append(str(part))
    return "".join(pieces).strip() or None


def _addresses(msg, header: str) -> Tuple[EmailAddress, ...]:
    values = [str(v) for v in msg.get_all(header, [])]
    return tuple(
        EmailAddress(address=addr.strip().lower(), name=_decode(name))
        for name, addr in getaddresses(values)
        if addr
    )


def _quote(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _imap_date(moment) -> str:
    return moment.strftime("%d-%b-%Y")


def build_search_criteria(criteria: FetchCriteria) -> List[str]:
    """IMAP SEARCH keys for the fetch criteria; END date is inclusive."""
    keys: List[str] = []
    if criteria.search_query:
        keys += ["TEXT", _quote(criteria.search_query)]
    start = parse_date_filter(criteria.start_date)
    if start:
        keys += ["SINCE", _imap_date(start)]
    end = parse_date_filter(criteria.end_date)
    if end:
        keys += ["BEFORE", _imap_date(end + timedelta(days=1))]
    return keys or ["ALL"]


def parse_message(message_id: str, raw_email: bytes) -> RawMessage:
    msg = email.message_from_bytes(raw_email)

    received_at = None
    if msg["Date"]:
        try:
            received_at = parsedate_to_datetime(msg["Date"]).isoformat()
        except (TypeError, ValueError):
            logger.warning("Unparseable Date header on message %s", message_id)

    html_body, text_body, has_attachments = "", "", False
    for part in msg.walk():
        if part.is_multipart():
            continue
        if part.get_filename() or part.get_content_disposition() == "attachment":
            has_attachments = True
            continue
        content_type = part.get_content_type()
        if content_type not in ("text/html", "text/plain"):
            continue
        payload = part.get_payload(decode=True)
        if not payload:
            continue
        text = _text(payload, part.get_content_charset())
        if content_type == "text/html":
            html_body += text
        else:
            text_body += text

    senders = _addresses(msg, "From")
    return RawMessage(
        id=(msg["Message-ID"] or "").strip() or message_id,
        received_at=received_at,
        sender=senders[0] if senders else None,
        to_recipients=_addresses(msg, "To"),
        cc_recipients=_addresses(msg, "Cc"),
        bcc_recipients=_addresses(msg, "Bcc"),
        subject=_decode(msg["Subject"]),
        body=html_body or text_body,
        headers=tuple(MessageHeader(k, _decode(str(v)) or "") for k, v in msg.items()),
        has_attachments=has_attachments,
    )


class IMAPMessageSource:
    def __init__(
        self,
        user_email: str,
        password: str,
        imap_host: str,
        imap_port: int = 993,
        mailbox: str = "inbox",
        connection_factory: Callable[[str, int], imaplib.IMAP4] = imaplib.IMAP4_SSL,
    ):
        self.user_email = user_email
        self.password = password
        self.imap_host = imap_host
        self.imap_port = imap_port
        self.mailbox = mailbox
        self.connection_factory = connection_factory
        self._mail: Optional[imaplib.IMAP4] = None
        self._uids: List[bytes] = []

    def connect(self) -> imaplib.IMAP4:
        if self._mail is not None:
            return self._mail
        mail = self.connection_factory(self.imap_host, self.imap_port)
        try:
            mail.login(self.user_email, self.password)
        except imaplib.IMAP4.error as e:
            self._logout(mail)
            raise IMAPAuthenticationError(
                f"Authentication failed for {self.user_email}. "
                f"Check host/port and use App Password if 2FA is enabled. ({str(e)})"
            )
        status, _ = mail.select(self.mailbox, readonly=True)
        if status != "OK":
            self._logout(mail)
            raise RuntimeError(f"Failed to select mailbox {self.mailbox}")
        self._mail = mail
        return mail

    def _search(self, mail: imaplib.IMAP4, criteria: FetchCriteria) -> List[bytes]:
        status, data = mail.uid("search", None, *build_search_criteria(criteria))
        if status != "OK":
            raise RuntimeError("Failed to search emails")
        uids = data[0].split() if data and data[0] else []
        return list(reversed(uids))

    def fetch_messages(self, criteria: FetchCriteria, cursor: Optional[str] = None) -> MessagePage:
        mail = self.connect()
        if cursor is None:
            self._uids = self._search(mail, criteria)
            logger.info("IMAP search matched %d messages", len(self._uids))

        offset = int(cursor or 0)
        batch = self._uids[offset:offset + criteria.page_size]
        messages = []
        for uid in batch:
            status, msg_data = mail.uid("fetch", uid, "(RFC822)")
            if status != "OK" or not msg_data or not isinstance(msg_data[0], tuple):
                logger.warning("Skipping IMAP message %s: fetch returned %s", uid, status)
                continue
            try:
                messages.append(parse_message(uid.decode(), msg_data[0][1]))
            except Exception:
                logger.warning("Skipping IMAP message %s: could not be parsed", uid, exc_info=True)

        end = offset + len(batch)
        return MessagePage(messages, str(end) if end < len(self._uids) else None)

    @staticmethod
    def _logout(mail: imaplib.IMAP4) -> None:
        try:
            mail.logout()
        except (imaplib.IMAP4.error, OSError):
            logger.warning("IMAP logout failed", exc_info=True)

    def close(self) -> None:
        if self._mail is None:
            return
        try:
            self._logout(self._mail)
        finally:
            self._mail = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
