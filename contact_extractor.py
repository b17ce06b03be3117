# contact_extractor.py
"""
Contact extraction pipeline.

    fetch -> classify/filter -> extract -> normalize -> dedupe -> cross-reference -> serialize

The mail store and the known-contacts store are collaborators behind two
small protocols (MessageSource, KnownContactsSource); imap_scraper.py and
db.py provide the concrete ones. Everything between the two fetches is
synchronous and isolated per message.
"""
from __future__ import annotations

import calendar
import logging
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Protocol, Set, Tuple

import config
from csv_generator import build_newsletter_report, write_contacts_to_csv, write_newsletter_report
from contact_parser import ContactParser
from deduplicator import deduplicate_contacts, normalize_contact
from models.entities import Contact, ContactSource, RawMessage
from newsletter_detector import NewsletterDetector
from newsletter_rules import NewsletterRules, apply_rules, load_rules
from signature_extractor import SignatureExtractor

logger = logging.getLogger(__name__)

PROGRESS_EVERY = 100
RELATIVE_DATE = re.compile(r"^(\d+)([dwmy])$")


# ---------- collaborators ----------
@dataclass(frozen=True)
class FetchCriteria:
    """
    search_query: free text matched by the mail store
    start_date / end_date: ISO-8601 or relative ("30d", "2w", "6m", "1y")
    """
    search_query: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    max_emails: int = config.MAX_EMAILS
    page_size: int = config.PAGE_SIZE


class MessagePage(NamedTuple):
    messages: List[RawMessage]
    next_cursor: Optional[str] = None


class MessageSource(Protocol):
    def fetch_messages(self, criteria: FetchCriteria, cursor: Optional[str] = None) -> MessagePage:
        ...


class KnownContactsSource(Protocol):
    def fetch_known_contact_addresses(self) -> Set[str]:
        ...


def _shift_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 - months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def parse_date_filter(value: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """
    ISO-8601 date/datetime, or a relative offset into the past
    ("7d", "2w", "3m", "1y"). Naive values are taken as UTC.
    Anything else gives None.
    """
    if not value:
        return None
    value = value.strip()

    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    except ValueError:
        pass

    match = RELATIVE_DATE.match(value)
    if not match:
        logger.warning("Ignoring unparseable date filter %r", value)
        return None

    amount, unit = int(match.group(1)), match.group(2)
    now = now or datetime.now(timezone.utc)
    if unit == "d":
        return now - timedelta(days=amount)
    if unit == "w":
        return now - timedelta(weeks=amount)
    if unit == "m":
        return _shift_months(now, amount)
    return _shift_months(now, amount * 12)


# ---------- per-message extraction ----------
_parser = ContactParser()
_signatures = SignatureExtractor()


def extract_contacts_from_email(
    message: RawMessage,
    include_body: bool = True,
    parser: Optional[ContactParser] = None,
    signatures: Optional[SignatureExtractor] = None,
) -> List[Dict[str, Any]]:
    """
    Raw contacts for one message: sender/To/Cc addresses first, then emails
    found in the signature, then any other email in the body. Each address
    appears once; the first (highest-confidence) sighting is kept.
    """
    parser = parser or _parser
    signatures = signatures or _signatures
    first_seen = message.received_at or datetime.now(timezone.utc).isoformat()

    contacts: List[Dict[str, Any]] = []
    seen: Set[str] = set()

    addresses = ([message.sender] if message.sender else []) + list(message.to_recipients) + list(message.cc_recipients)
    for address in addresses:
        contact = parser.contact_from_address(address)
        if contact and contact["email"] not in seen:
            contact["first_seen_date"] = first_seen
            contact["extraction_confidence"] = "high"
            contacts.append(contact)
            seen.add(contact["email"])

    if not include_body or not message.body:
        return contacts

    plain_text, signature = signatures.process_html_body(message.body)

    if signature:
        # a bare tail of the body (no sign-off) is not trusted for a name
        signed_off = signatures.find_signature_start(signature) != -1 or signatures.has_signature(signature)
        name = parser.extract_name_from_signature(signature) if signed_off else None
        first_name, last_name = parser.parse_display_name(name) if name else (None, None)
        found = parser.extract_contacts_from_body(signature)
        for email in found.get("emails", []):
            if email in seen:
                continue
            contacts.append({
                "email": email,
                "display_name": name,
                "first_name": first_name,
                "last_name": last_name,
                "phone_numbers": found["phone_numbers"],
                "linkedin_urls": found["linkedin_urls"],
                "company_name": found["company_name"],
                "job_title": found["job_title"],
                "source": ContactSource.SIGNATURE.value,
                "first_seen_date": first_seen,
                "extraction_confidence": "medium",
            })
            seen.add(email)

    found = parser.extract_contacts_from_body(plain_text)
    for email in found.get("emails", []):
        if email in seen:
            continue
        contacts.append({
            "email": email,
            "phone_numbers": found["phone_numbers"],
            "linkedin_urls": found["linkedin_urls"],
            "company_name": found["company_name"],
            "job_title": found["job_title"],
            "source": ContactSource.BODY.value,
            "first_seen_date": first_seen,
            "extraction_confidence": "low",
        })
        seen.add(email)

    return contacts


# ---------- run ----------
@dataclass
class ExtractionOptions:
    include_body: bool = True
    exclude_newsletters: bool = True
    newsletter_threshold: int = config.NEWSLETTER_THRESHOLD
    save_newsletter_report: bool = False
    write_csv: bool = True
    output_path: Optional[str] = None


@dataclass
class ExtractionStats:
    total_fetched: int = 0
    newsletters_filtered: int = 0
    processed: int = 0
    unique_contacts: int = 0
    new_contacts: int = 0
    with_linkedin: int = 0
    with_phones: int = 0
    duplicates_removed: int = 0


@dataclass
class ExtractionResult:
    contacts: List[Contact] = field(default_factory=list)
    stats: ExtractionStats = field(default_factory=ExtractionStats)
    newsletter_report: Optional[Dict[str, Any]] = None
    csv_path: Optional[str] = None
    report_path: Optional[str] = None
    fetch_error: Optional[str] = None

    def summary(self) -> str:
        s = self.stats
        lines = [f"Total emails fetched: {s.total_fetched}"]
        if s.newsletters_filtered:
            lines.append(f"Newsletters filtered: {s.newsletters_filtered}")
        lines += [
            f"Emails processed for contacts: {s.processed}",
            f"Unique contacts found: {s.unique_contacts}",
            f"New contacts (not known): {s.new_contacts}",
            f"Contacts with LinkedIn: {s.with_linkedin}",
            f"Contacts with phone numbers: {s.with_phones}",
            f"Duplicates removed: {s.duplicates_removed}",
        ]
        if self.csv_path:
            lines.append(f"CSV exported to: {self.csv_path}")
        if self.report_path:
            lines.append(f"Newsletter report saved to: {self.report_path}")
        if self.fetch_error:
            lines.append(f"Fetching stopped early: {self.fetch_error}")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": asdict(self.stats),
            "contacts": [c.to_dict() for c in self.contacts],
            "newsletter_report": self.newsletter_report,
            "csv_path": self.csv_path,
            "report_path": self.report_path,
            "fetch_error": self.fetch_error,
        }


class ContactExtractionPipeline:
    def __init__(
        self,
        message_source: MessageSource,
        known_contacts: Optional[KnownContactsSource] = None,
        detector: Optional[NewsletterDetector] = None,
        rules_loader: Callable[[], Optional[NewsletterRules]] = load_rules,
        parser: Optional[ContactParser] = None,
        signatures: Optional[SignatureExtractor] = None,
    ):
        self.message_source = message_source
        self.known_contacts = known_contacts
        self.detector = detector or NewsletterDetector()
        self.rules_loader = rules_loader
        self.parser = parser or ContactParser()
        self.signatures = signatures or SignatureExtractor()

    def fetch_messages(self, criteria: FetchCriteria) -> Tuple[List[RawMessage], Optional[str]]:
        """
        Pull pages until the cursor runs out or max_emails is reached; an
        empty page with a cursor does not end the fetch.
        A source failure stops fetching; messages already fetched are kept
        and the error text is returned alongside them.
        """
        messages: List[RawMessage] = []
        cursor: Optional[str] = None
        while len(messages) < criteria.max_emails:
            try:
                page = self.message_source.fetch_messages(criteria, cursor)
            except Exception as e:
                logger.error("Fetching messages failed after %d messages", len(messages), exc_info=True)
                return messages[:criteria.max_emails], str(e)
            messages.extend(page.messages)
            cursor = page.next_cursor
            if not cursor:
                break
        return messages[:criteria.max_emails], None

    def fetch_known_addresses(self) -> Set[str]:
        if self.known_contacts is None:
            return set()
        try:
            addresses = self.known_contacts.fetch_known_contact_addresses()
        except Exception:
            logger.error("Fetching known contacts failed; treating as empty", exc_info=True)
            return set()
        known = {a.strip().lower() for a in addresses if a}
        logger.info("Found %d known contact addresses", len(known))
        return known

    def filter_newsletters(
        self,
        messages: List[RawMessage],
        threshold: int,
        rules: Optional[NewsletterRules],
    ) -> Tuple[List[RawMessage], List[Dict[str, Any]]]:
        """Split messages into (to_process, filtered-newsletter report entries)."""
        kept: List[RawMessage] = []
        filtered: List[Dict[str, Any]] = []
        for message in messages:
            detection = apply_rules(message, self.detector.detect(message, threshold), rules)
            if not detection.is_newsletter:
                kept.append(message)
                continue
            filtered.append({
                "from": message.sender_address or "unknown",
                "subject": message.subject or "no subject",
                "received_date_time": message.received_at,
                "confidence": detection.confidence,
                "signals": list(detection.signals),
                "reason": detection.reason,
            })
        logger.info("Filtered %d newsletters, processing %d emails", len(filtered), len(kept))
        return kept, filtered

    def extract(self, messages: List[RawMessage], include_body: bool) -> List[Contact]:
        raw: List[Dict[str, Any]] = []
        for index, message in enumerate(messages):
            if index % PROGRESS_EVERY == 0:
                logger.info("Processing email %d/%d", index + 1, len(messages))
            try:
                raw.extend(extract_contacts_from_email(message, include_body, self.parser, self.signatures))
            except Exception:
                logger.warning("Skipping message %s: extraction failed", message.id, exc_info=True)

        logger.info("Extracted %d contacts (before deduplication)", len(raw))
        contacts = []
        for item in raw:
            contact = normalize_contact(item)
            if contact is not None:
                contacts.append(contact)
        return contacts

    def run(self, criteria: Optional[FetchCriteria] = None, options: Optional[ExtractionOptions] = None) -> ExtractionResult:
        criteria = criteria or FetchCriteria()
        options = options or ExtractionOptions()
        result = ExtractionResult()

        messages, result.fetch_error = self.fetch_messages(criteria)
        result.stats.total_fetched = len(messages)
        logger.info("Fetched %d emails", len(messages))
        if not messages:
            logger.info("No emails found matching the criteria")
            return result

        to_process = messages
        filtered: List[Dict[str, Any]] = []
        if options.exclude_newsletters:
            to_process, filtered = self.filter_newsletters(messages, options.newsletter_threshold, self.rules_loader())
        result.stats.newsletters_filtered = len(filtered)
        result.stats.processed = len(to_process)

        deduplicated, result.stats.duplicates_removed = deduplicate_contacts(
            self.extract(to_process, options.include_body)
        )
        logger.info("After deduplication: %d unique contacts", len(deduplicated))

        known = self.fetch_known_addresses()
        for contact in deduplicated:
            contact.is_in_outlook = contact.email in known

        result.contacts = deduplicated
        result.stats.unique_contacts = len(deduplicated)
        result.stats.new_contacts = sum(1 for c in deduplicated if not c.is_in_outlook)
        result.stats.with_linkedin = sum(1 for c in deduplicated if c.linkedin_urls)
        result.stats.with_phones = sum(1 for c in deduplicated if c.phone_numbers)

        if options.save_newsletter_report:
            result.newsletter_report = build_newsletter_report(filtered, options.newsletter_threshold)

        if options.write_csv:
            result.csv_path = write_contacts_to_csv(deduplicated, options.output_path)
            if result.newsletter_report and filtered:
                try:
                    result.report_path = write_newsletter_report(result.newsletter_report, result.csv_path)
                except OSError:
                    logger.error("Error saving newsletter report", exc_info=True)

        return result
