# csv_generator.py
"""
Tabular export of merged contacts and the filtered-newsletter report.
"""
from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Iterable, List, Optional, Sequence

import config
from models.entities import Contact

logger = logging.getLogger(__name__)

# column name -> Contact attribute
CSV_COLUMNS = (
    ("email", "email"),
    ("displayName", "display_name"),
    ("firstName", "first_name"),
    ("lastName", "last_name"),
    ("phoneNumbers", "phone_numbers"),
    ("linkedInUrls", "linkedin_urls"),
    ("companyName", "company_name"),
    ("jobTitle", "job_title"),
    ("source", "source"),
    ("isInOutlook", "is_in_outlook"),
    ("firstSeenDate", "first_seen_date"),
    ("extractionConfidence", "extraction_confidence"),
)
CSV_HEADERS = tuple(column for column, _ in CSV_COLUMNS)
LIST_SEPARATOR = ";"
NEWSLETTER_REPORT_SUFFIX = "_newsletters.json"


def escape_csv_field(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        value = "true" if value else "false"
    text = str(value)
    if "," in text or '"' in text or "\n" in text:
        return '"' + text.replace('"', '""') + '"'
    return text


def list_to_csv_field(values: Optional[Sequence[str]], separator: str = LIST_SEPARATOR) -> str:
    if not values:
        return ""
    return separator.join(values)


def contact_row(contact: Contact) -> str:
    cells = []
    for _, attr in CSV_COLUMNS:
        value = getattr(contact, attr)
        if isinstance(value, (list, tuple)):
            value = list_to_csv_field(value)
        cells.append(escape_csv_field(value))
    return ",".join(cells)


def generate_csv(contacts: Iterable[Contact]) -> str:
    """Header line plus one line per contact, joined by '\\n' (no trailing newline)."""
    rows = [",".join(CSV_HEADERS)]
    rows.extend(contact_row(contact) for contact in contacts or [])
    return "\n".join(rows)


def write_contacts_to_csv(contacts: Iterable[Contact], file_path: Optional[str] = None) -> str:
    """
    Write the CSV and return its absolute path. The parent directory is
    created when missing; OSError from the filesystem propagates.
    """
    file_path = file_path or config.CSV_OUTPUT_PATH
    directory = os.path.dirname(os.path.abspath(file_path))
    os.makedirs(directory, exist_ok=True)

    with open(file_path, "w", encoding="utf-8", newline="") as f:
        f.write(generate_csv(contacts))

    absolute_path = os.path.abspath(file_path)
    logger.info("CSV written to: %s", absolute_path)
    return absolute_path


def newsletter_report_path(csv_path: str) -> str:
    root, ext = os.path.splitext(csv_path)
    if ext.lower() == ".csv":
        return root + NEWSLETTER_REPORT_SUFFIX
    return csv_path + NEWSLETTER_REPORT_SUFFIX


def build_newsletter_report(entries: List[Dict[str, Any]], threshold: int) -> Dict[str, Any]:
    return {
        "total_filtered": len(entries),
        "threshold": threshold,
        "newsletters": entries,
    }


def write_newsletter_report(report: Dict[str, Any], csv_path: str) -> str:
    """Write `report` as JSON next to the CSV and return the report path."""
    path = newsletter_report_path(os.path.abspath(csv_path))
    with open(path, "w", encoding="utf-8") as f:
        json.dump(report, f, indent=2, ensure_ascii=False)
    logger.info("Newsletter report saved to: %s", path)
    return path
