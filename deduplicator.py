# deduplicator.py
"""
Contact normalization and cross-message deduplication.

Field conflicts are settled by source rank (metadata > signature > body, see
models.entities.SOURCE_RANKING). deduplicate_contacts folds each email's
sightings best rank first, so the merged fields do not depend on arrival order.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional

from models.entities import CONFIDENCE_TIERS, Contact, ContactSource, confidence_rank, source_priority

logger = logging.getLogger(__name__)

MERGED_SCALAR_FIELDS = ("display_name", "first_name", "last_name", "company_name", "job_title")

# completeness points -> tier
HIGH_TIER_POINTS = 7
MEDIUM_TIER_POINTS = 4


class DedupeResult(NamedTuple):
    deduplicated: List[Contact]
    duplicates_removed: int


def canonical_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def _clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _as_list(values: Any, legacy: Any) -> List[str]:
    if isinstance(values, (list, tuple)):
        return [str(v).strip() for v in values if v is not None and str(v).strip()]
    if legacy:
        return [str(legacy).strip()]
    return []


def calculate_confidence(contact: Contact) -> str:
    """
    Completeness score mapped to a tier. Every populated field only adds
    points, so a more complete record never lands in a lower tier.
    """
    score = 1.0   # email

    if contact.display_name:
        score += 2
    if contact.first_name and contact.last_name:
        score += 2

    if contact.phone_numbers:
        score += 1
    if contact.linkedin_urls:
        score += 1
    if contact.company_name:
        score += 1
    if contact.job_title:
        score += 1

    if contact.source == ContactSource.METADATA.value:
        score += 1
    elif contact.source == ContactSource.SIGNATURE.value:
        score += 0.5

    if score >= HIGH_TIER_POINTS:
        return "high"
    if score >= MEDIUM_TIER_POINTS:
        return "medium"
    return "low"


def normalize_contact(raw: Mapping[str, Any]) -> Optional[Contact]:
    """
    Canonical Contact from a loosely shaped raw contact dict, or None when
    there is no email. Singular legacy keys (phone_number, linkedin_url) are
    accepted when the list keys are absent.
    """
    email = canonical_email(raw.get("email"))
    if not email:
        return None

    source = raw.get("source") or "unknown"
    if isinstance(source, ContactSource):
        source = source.value

    contact = Contact(
        email=email,
        display_name=_clean_str(raw.get("display_name")),
        first_name=_clean_str(raw.get("first_name")),
        last_name=_clean_str(raw.get("last_name")),
        phone_numbers=_as_list(raw.get("phone_numbers"), raw.get("phone_number")),
        linkedin_urls=_as_list(raw.get("linkedin_urls"), raw.get("linkedin_url")),
        company_name=_clean_str(raw.get("company_name")),
        job_title=_clean_str(raw.get("job_title")),
        source=source,
        is_in_outlook=bool(raw.get("is_in_outlook", False)),
        first_seen_date=raw.get("first_seen_date") or datetime.now(timezone.utc).isoformat(),
    )

    tier = raw.get("extraction_confidence")
    contact.extraction_confidence = tier if tier in CONFIDENCE_TIERS else calculate_confidence(contact)
    return contact


def _union(first: Iterable[str], second: Iterable[str]) -> List[str]:
    return list(dict.fromkeys([*first, *second]))


def _earlier(a: Optional[str], b: Optional[str]) -> Optional[str]:
    if not a or not b:
        return a or b
    try:
        da = datetime.fromisoformat(a.replace("Z", "+00:00"))
        db = datetime.fromisoformat(b.replace("Z", "+00:00"))
        if (da.tzinfo is None) == (db.tzinfo is None):
            return a if da <= db else b
    except ValueError:
        logger.debug("Unparseable first_seen_date %r / %r, comparing as text", a, b)
    return min(a, b)


def merge_contacts(existing: Contact, incoming: Contact) -> Contact:
    """
    Merge a new sighting into an existing record with the same email.
    Neither input is modified. A set field is only replaced by a sighting
    from a strictly higher-ranked source; see deduplicate_contacts for how
    several sightings are ordered.
    """
    incoming_wins = source_priority(incoming.source) > source_priority(existing.source)

    updates: Dict[str, Any] = {}
    for name in MERGED_SCALAR_FIELDS:
        current = getattr(existing, name)
        candidate = getattr(incoming, name)
        if candidate and (not current or incoming_wins):
            updates[name] = candidate

    if incoming_wins:
        updates["source"] = incoming.source

    updates["phone_numbers"] = _union(existing.phone_numbers, incoming.phone_numbers)
    updates["linkedin_urls"] = _union(existing.linkedin_urls, incoming.linkedin_urls)

    if confidence_rank(incoming.extraction_confidence) > confidence_rank(existing.extraction_confidence):
        updates["extraction_confidence"] = incoming.extraction_confidence

    updates["first_seen_date"] = _earlier(existing.first_seen_date, incoming.first_seen_date)
    updates["is_in_outlook"] = existing.is_in_outlook or incoming.is_in_outlook

    return replace(existing, **updates)


def _by_rank(sightings: List[Contact]) -> List[Contact]:
    # stable: equal ranks keep encounter order
    return sorted(sightings, key=lambda c: source_priority(c.source), reverse=True)


def deduplicate_contacts(contacts: Iterable[Contact]) -> DedupeResult:
    """
    Group contacts by canonical email, in order of first encounter, and fold
    each group highest source rank first. Lower-ranked sightings can then only
    fill fields that are still empty, so every field ends up with the value of
    the best-ranked sighting that carries it whatever the input order.
    """
    contacts = list(contacts or [])
    groups: Dict[str, List[Contact]] = {}

    for contact in contacts:
        key = canonical_email(contact.email)
        if not key:
            logger.warning("Skipping contact without email")
            continue
        groups.setdefault(key, []).append(contact)

    deduplicated: List[Contact] = []
    for key, sightings in groups.items():
        first, *rest = _by_rank(sightings)
        merged = replace(first, email=key) if first.email != key else first
        for sighting in rest:
            merged = merge_contacts(merged, sighting)
        deduplicated.append(merged)

    return DedupeResult(deduplicated, len(contacts) - len(deduplicated))
