# entities.py
"""
Plain data structures shared by the detector, the extractors and the pipeline.

RawMessage and DetectionResult are frozen: a message belongs to the mail
source, and detection results are cached and shared, so overrides build a
new instance instead of mutating one. Contact stays mutable because the
pipeline fills `is_in_outlook` after cross-referencing.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class EmailAddress:
    address: Optional[str]
    name: Optional[str] = None


@dataclass(frozen=True)
class MessageHeader:
    name: str
    value: str


@dataclass(frozen=True)
class RawMessage:
    """
    One inbound message as handed over by a message source.

    Attributes:
        id: Source identifier (None marks a malformed record)
        received_at: ISO 8601 timestamp when the message was received
        sender: From address
        to_recipients / cc_recipients / bcc_recipients: Recipient lists
        subject: Subject line
        body: Body content, usually HTML
        headers: Internet message headers in wire order
        has_attachments: Whether the message carries attachments
    """
    id: Optional[str]
    received_at: Optional[str] = None
    sender: Optional[EmailAddress] = None
    to_recipients: Tuple[EmailAddress, ...] = ()
    cc_recipients: Tuple[EmailAddress, ...] = ()
    bcc_recipients: Tuple[EmailAddress, ...] = ()
    subject: Optional[str] = None
    body: str = ""
    headers: Tuple[MessageHeader, ...] = ()
    has_attachments: bool = False

    @property
    def sender_address(self) -> str:
        """Lower-cased sender address, empty string when unknown."""
        if self.sender is None or not self.sender.address:
            return ""
        return self.sender.address.strip().lower()


@dataclass(frozen=True)
class DetectionResult:
    is_newsletter: bool
    confidence: int
    signals: Tuple[str, ...] = ()
    reason: str = "no-signals"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isNewsletter": self.is_newsletter,
            "confidence": self.confidence,
            "signals": list(self.signals),
            "reason": self.reason,
        }


class ContactSource(str, Enum):
    METADATA = "metadata"
    SIGNATURE = "signature"
    BODY = "body"


# lowest first; merge conflicts go to the later entry
SOURCE_RANKING: Tuple[ContactSource, ...] = (
    ContactSource.BODY,
    ContactSource.SIGNATURE,
    ContactSource.METADATA,
)

CONFIDENCE_TIERS: Tuple[str, ...] = ("low", "medium", "high")


def source_priority(source: Optional[str]) -> int:
    """Rank of a contact source; unknown sources rank below all known ones."""
    for rank, known in enumerate(SOURCE_RANKING, start=1):
        if source == known.value:
            return rank
    return 0


def confidence_rank(tier: Optional[str]) -> int:
    if tier in CONFIDENCE_TIERS:
        return CONFIDENCE_TIERS.index(tier) + 1
    return 0


@dataclass
class Contact:
    """
    Normalized contact record. Identity is the lower-cased, trimmed email.
    """
    email: str
    display_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_numbers: List[str] = field(default_factory=list)
    linkedin_urls: List[str] = field(default_factory=list)
    company_name: Optional[str] = None
    job_title: Optional[str] = None
    source: str = "unknown"
    is_in_outlook: bool = False
    first_seen_date: Optional[str] = None
    extraction_confidence: str = "low"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
