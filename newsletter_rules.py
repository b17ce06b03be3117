# newsletter_rules.py
"""
Operator rules that override the newsletter detector.

Evaluation order, first match wins:
  1. whitelist  (domain or sender)  -> never a newsletter
  2. blacklist  (domain or sender)  -> always a newsletter, confidence 100
  3. custom sender patterns         -> newsletter, confidence >= 75
  4. custom subject patterns        -> newsletter, confidence >= 75
"""
from __future__ import annotations

import logging
import os
import re
from dataclasses import replace
from typing import Any, List, Optional, Pattern, Set

import tldextract
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError, field_validator

import config
from models.entities import DetectionResult, RawMessage

logger = logging.getLogger(__name__)

CUSTOM_PATTERN_CONFIDENCE = 75

# offline: bundled public-suffix snapshot, no disk cache
_domain_extract = tldextract.TLDExtract(cache_dir=False, suffix_list_urls=None)


class SenderList(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    domains: List[str] = Field(default_factory=list)
    senders: List[str] = Field(default_factory=list)

    @field_validator("domains", "senders", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("domains", "senders")
    @classmethod
    def _lower(cls, value: List[str]) -> List[str]:
        return [v.strip().lower() for v in value if v and v.strip()]

    def matches(self, sender: str, domains: Set[str]) -> bool:
        return sender in self.senders or any(d in self.domains for d in domains)


class CustomPatterns(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sender_patterns: List[str] = Field(default_factory=list, alias="senderPatterns")
    subject_patterns: List[str] = Field(default_factory=list, alias="subjectPatterns")

    @field_validator("sender_patterns", "subject_patterns", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class NewsletterRules(BaseModel):
    """
    Rules file model. Accepts the camelCase JSON layout:
    {"whitelist": {...}, "blacklist": {...}, "customPatterns": {"senderPatterns": [...], ...}}
    """
    model_config = ConfigDict(populate_by_name=True)

    whitelist: SenderList = Field(default_factory=SenderList)
    blacklist: SenderList = Field(default_factory=SenderList)
    custom_patterns: CustomPatterns = Field(default_factory=CustomPatterns, alias="customPatterns")

    _sender_regexes: List[Pattern[str]] = PrivateAttr(default_factory=list)
    _subject_regexes: List[Pattern[str]] = PrivateAttr(default_factory=list)

    @field_validator("whitelist", "blacklist", "custom_patterns", mode="before")
    @classmethod
    def _none_is_default(cls, value: Any) -> Any:
        return {} if value is None else value

    def model_post_init(self, __context: Any) -> None:
        self._sender_regexes = _compile_patterns(self.custom_patterns.sender_patterns, "sender")
        self._subject_regexes = _compile_patterns(self.custom_patterns.subject_patterns, "subject")

    @property
    def sender_regexes(self) -> List[Pattern[str]]:
        return self._sender_regexes

    @property
    def subject_regexes(self) -> List[Pattern[str]]:
        return self._subject_regexes


def _compile_patterns(patterns: List[str], kind: str) -> List[Pattern[str]]:
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern, re.IGNORECASE))
        except re.error as e:
            logger.warning("Invalid %s pattern %r skipped: %s", kind, pattern, e)
    return compiled


def load_rules(path: Optional[str] = None) -> Optional[NewsletterRules]:
    """
    Read the rules JSON file. A missing, unreadable or invalid file gives None.
    """
    if path is None:
        path = config.NEWSLETTER_RULES_PATH
    if not path or not os.path.exists(path):
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            return NewsletterRules.model_validate_json(f.read())
    except (OSError, ValidationError) as e:
        logger.error("Error loading newsletter rules from %s: %s", path, e)
        return None


def sender_domains(address: str) -> Set[str]:
    """The sender's domain plus its registered domain (mail.acme.co.uk -> acme.co.uk)."""
    domain = address.split("@", 1)[1] if "@" in address else ""
    if not domain:
        return set()
    domains = {domain}
    ext = _domain_extract(domain)
    if ext.suffix and ext.domain:
        domains.add(f"{ext.domain}.{ext.suffix}")
    return domains


def _override(detection: DetectionResult, tag: str, is_newsletter: bool, confidence: int) -> DetectionResult:
    return replace(
        detection,
        is_newsletter=is_newsletter,
        confidence=confidence,
        signals=detection.signals + (tag,),
        reason=tag,
    )


def apply_rules(
    message: RawMessage,
    detection: DetectionResult,
    rules: Optional[NewsletterRules],
) -> DetectionResult:
    """
    Return the detection adjusted by `rules`; the input is never mutated.
    Listed domains match the sender's exact domain or its registered domain,
    so a whitelisted or blacklisted example.com also covers mail.example.com.
    """
    if rules is None:
        return detection
    sender = message.sender_address
    if not sender:
        return detection

    domains = sender_domains(sender)

    if rules.whitelist.matches(sender, domains):
        return _override(detection, "whitelisted", False, detection.confidence)

    if rules.blacklist.matches(sender, domains):
        return _override(detection, "blacklisted", True, 100)

    boosted = max(detection.confidence, CUSTOM_PATTERN_CONFIDENCE)
    if any(regex.search(sender) for regex in rules.sender_regexes):
        return _override(detection, "custom-sender-pattern", True, boosted)

    subject = message.subject or ""
    if any(regex.search(subject) for regex in rules.subject_regexes):
        return _override(detection, "custom-subject-pattern", True, boosted)

    return detection
