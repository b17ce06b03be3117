# contact_parser.py
"""
Pattern-based contact entity extraction (English & French).

Every recognizer works on plain text; pattern tables below are compiled once
at import and grouped per entity type.
"""
from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Tuple

from models.entities import ContactSource, EmailAddress


EMAIL_PATTERN = re.compile(r"[\w.+-]+@[\w.-]+\.\w{2,}")

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg", ".bmp")
NO_REPLY_MARKERS = ("noreply", "no-reply", "donotreply", "do-not-reply")

PHONE_PATTERNS: Dict[str, Tuple[str, ...]] = {
    "generic": (
        # (123) 456-7890, 123-456-7890, 123.456.7890
        r"\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}",
        # +1-234-567-8900, +44 20 1234 5678
        r"\+\d{1,3}[\s.-]?\(?\d{1,4}\)?[\s.-]?\d{1,4}[\s.-]?\d{1,9}",
        # 1234567890
        r"\b\d{10}\b",
    ),
    "fr": (
        # 06 12 34 56 78, 01.23.45.67.89, +33 6 12 34 56 78, +33 (0)1 23 45 67 89
        r"(?:\+33[\s.-]?(?:\(0\)[\s.-]?)?|(?<![\d+])0)[1-9](?:[\s.-]?\d{2}){4}(?!\d)",
    ),
}
PHONE_REGEXES = [re.compile(p) for patterns in PHONE_PATTERNS.values() for p in patterns]
PHONE_SEPARATORS = re.compile(r"[\s.()+-]")
MIN_PHONE_DIGITS = 9

LINKEDIN_PATTERN = re.compile(r"(?:https?://)?(?:www\.)?linkedin\.com/in/[\w-]+/?", re.IGNORECASE)

CLOSING_PHRASES = (
    r"best regards?", r"kind regards?", r"warm regards?", r"regards?", r"sincerely",
    r"thanks?", r"thank you", r"cheers",
    r"bien cordialement", r"cordialement", r"salutations(?: distingu[ée]es)?",
    r"amicalement", r"amiti[ée]s", r"respectueusement", r"bonne journ[ée]e", r"bonne soir[ée]e",
)
CLOSING_RE = re.compile(r"^(?:%s)\b" % "|".join(CLOSING_PHRASES), re.IGNORECASE)

NAME_WORD = r"[A-ZÀ-Ý][a-zà-ÿ]+(?:[-'][A-ZÀ-Ýa-zà-ÿ][a-zà-ÿ]+)?"
NAME = rf"{NAME_WORD}(?:[ \t]+{NAME_WORD})+"
NAME_PATTERNS = (
    # "Best regards,\nJohn Doe"
    re.compile(rf"(?i:{'|'.join(CLOSING_PHRASES)})[ \t]*[,!.]?[ \t]*\n\s*({NAME})[ \t]*$", re.MULTILINE),
    # "John Doe\nCEO"
    re.compile(rf"^({NAME})[ \t]*\n", re.MULTILINE),
    # a line on its own
    re.compile(rf"^({NAME})[ \t]*$", re.MULTILINE),
)
NAME_MAX_LENGTH = 50
NAME_WORDS_RANGE = (2, 4)

LEGAL_SUFFIXES = (
    "Inc", "LLC", "Ltd", "Corp", "Corporation", "Company", "Co", "GmbH", "LLP", "PLC",
    "Pvt", "Private Limited", "BV", "AG", "AB", "Oy",
    "SARL", "SASU", "SAS", "SA", "EURL", "SNC", "SCI", "S.A.", "S.A.S.",
)
COMPANY_WORD = r"[\w&.'-]+"

# English heads are case-sensitive so ordinary prose does not match
TITLE_HEADS_EN = (
    "Vice President", "President", "Co-Founder", "Founder", "Owner", "Partner",
    "Director", "Manager", "Engineer", "Developer", "Designer", "Architect", "Consultant",
    "Analyst", "Specialist", "Coordinator", "Administrator", "Officer", "Executive",
    "Supervisor", "Recruiter", "Accountant", "Attorney", "Counsel", "Lead",
    "Associate", "Assistant",
)
TITLE_SENIORITY_EN = r"(?:Senior|Sr\.|Junior|Jr\.|Lead|Principal|Head of|Chief|Staff|Associate|Assistant)"
TITLE_HEADS_FR = (
    "Directeur", "Directrice", "Responsable", "Cheffe", "Chef", "Chargée", "Chargé",
    "Ingénieure", "Ingénieur", "Gérante", "Gérant", "Présidente", "Président",
    "Fondatrice", "Fondateur", "Co-fondatrice", "Co-fondateur",
    "Consultante", "Consultant", "Associée", "Assistante", "Développeuse", "Développeur",
    "Commerciale", "Comptable", "Avocate", "Avocat", "Conseillère", "Conseiller",
    "Technicienne", "Technicien",
)
C_SUITE = (
    "CEO", "CTO", "CFO", "COO", "CMO", "CIO", "CDO", "CPO", "CISO", "CHRO", "VP",
    "PDG", "DG", "DRH", "DSI", "DAF",
)

TITLE_PATTERNS = (
    re.compile(r"\b(?:%s)\b" % "|".join(C_SUITE)),
    re.compile(
        rf"\b(?:{TITLE_SENIORITY_EN}\s+)?(?:[A-Z][A-Za-z&/+.-]*\s+){{0,3}}(?:{'|'.join(TITLE_HEADS_EN)})\b"
    ),
    re.compile(
        rf"\b(?:{'|'.join(TITLE_HEADS_FR)})"
        r"(?:[ \t]+(?:(?:de la|de|du|des|d'|en)[ \t]*)?(?!chez\b|at\b)[A-Za-zÀ-ÿ][\wÀ-ÿ-]*){0,2}"
    ),
)
TITLE_LENGTH_RANGE = (2, 60)
TITLE_LINE_MAX = 80

COMPANY_PATTERNS = (
    # "CEO at Acme Corp", "Directeur commercial chez Acme"
    re.compile(
        rf"\b(?:{'|'.join(C_SUITE + TITLE_HEADS_EN + TITLE_HEADS_FR)})\b[^\n]{{0,40}}?\s(?:at|chez|@)\s+"
        rf"([A-ZÀ-Ý]{COMPANY_WORD}(?:[ \t]+{COMPANY_WORD}){{0,5}})"
    ),
    # "Acme Widgets Ltd", "Exemple, SAS"
    re.compile(
        r"([A-ZÀ-Ý][\w&.' -]{0,98}?(?:,\s*)?\b(?:%s)\.?)(?!\w)" % "|".join(re.escape(s) for s in LEGAL_SUFFIXES)
    ),
)
COMPANY_LENGTH_RANGE = (2, 100)


def _within(value: str, bounds: Tuple[int, int]) -> bool:
    return bounds[0] <= len(value) <= bounds[1]


def _looks_like_contact_line(line: str) -> bool:
    if "@" in line or re.search(r"https?://|\bwww\.", line, re.IGNORECASE):
        return True
    return sum(c.isdigit() for c in line) >= MIN_PHONE_DIGITS


class ContactParser:
    # ---------- emails ----------
    def extract_emails(self, text: Optional[str]) -> List[str]:
        if not text:
            return []
        found = []
        for match in EMAIL_PATTERN.findall(text):
            email = match.strip().lower()
            local = email.split("@", 1)[0]
            if local.endswith(IMAGE_EXTENSIONS):
                continue
            if any(marker in local for marker in NO_REPLY_MARKERS):
                continue
            found.append(email)
        return list(dict.fromkeys(found))

    # ---------- phones ----------
    def extract_phones(self, text: Optional[str]) -> List[str]:
        if not text:
            return []
        numbers: List[str] = []
        for regex in PHONE_REGEXES:
            for match in regex.findall(text):
                candidate = match.strip()
                digits = PHONE_SEPARATORS.sub("", candidate)
                if len(digits) >= MIN_PHONE_DIGITS and digits.isdigit():
                    numbers.append(candidate)
        return list(dict.fromkeys(numbers))

    # ---------- urls ----------
    def normalize_linkedin_url(self, url: str) -> str:
        return "https://" + re.sub(r"^https?://", "", url.strip(), flags=re.IGNORECASE)

    def extract_linkedin_urls(self, text: Optional[str]) -> List[str]:
        if not text:
            return []
        return list(dict.fromkeys(self.normalize_linkedin_url(u) for u in LINKEDIN_PATTERN.findall(text)))

    # ---------- names ----------
    def parse_display_name(self, display_name: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
        """'John Van Der Berg' -> ('John', 'Van Der Berg')"""
        parts = (display_name or "").split()
        if not parts:
            return None, None
        if len(parts) == 1:
            return parts[0], None
        return parts[0], " ".join(parts[1:])

    def extract_name_from_signature(self, signature_text: Optional[str]) -> Optional[str]:
        if not signature_text:
            return None
        for pattern in NAME_PATTERNS:
            for match in pattern.finditer(signature_text):
                name = match.group(1).strip()
                words = name.split()
                if CLOSING_RE.match(name):
                    continue
                if NAME_WORDS_RANGE[0] <= len(words) <= NAME_WORDS_RANGE[1] and len(name) <= NAME_MAX_LENGTH:
                    return name
        return None

    # ---------- company / title ----------
    def extract_company_name(self, text: Optional[str]) -> Optional[str]:
        if not text:
            return None
        for pattern in COMPANY_PATTERNS:
            for line in text.splitlines():
                if "@" in line and not re.search(r"\s@\s", line):
                    continue
                match = pattern.search(line)
                if not match:
                    continue
                company = re.sub(r"\s{2,}", " ", match.group(1)).strip(" ,;-")
                if _within(company, COMPANY_LENGTH_RANGE):
                    return company
        return None

    def extract_job_title(self, text: Optional[str]) -> Optional[str]:
        if not text:
            return None
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        for pattern in TITLE_PATTERNS:
            for line in lines:
                if len(line) > TITLE_LINE_MAX or _looks_like_contact_line(line):
                    continue
                match = pattern.search(line)
                if not match:
                    continue
                title = re.sub(r"\s{2,}", " ", match.group(0)).strip(" ,;:-|")
                if _within(title, TITLE_LENGTH_RANGE):
                    return title
        return None

    # ---------- bundles ----------
    def extract_contacts_from_body(self, text: Optional[str]) -> Dict[str, Any]:
        if not text:
            return {}
        return {
            "emails": self.extract_emails(text),
            "phone_numbers": self.extract_phones(text),
            "linkedin_urls": self.extract_linkedin_urls(text),
            "company_name": self.extract_company_name(text),
            "job_title": self.extract_job_title(text),
        }

    def contact_from_address(self, email_address: Optional[EmailAddress]) -> Optional[Dict[str, Any]]:
        """Raw metadata contact for a From/To/Cc address."""
        if email_address is None or not email_address.address:
            return None
        display_name = (email_address.name or "").strip() or None
        first_name, last_name = self.parse_display_name(display_name)
        return {
            "email": email_address.address.strip().lower(),
            "display_name": display_name,
            "first_name": first_name,
            "last_name": last_name,
            "source": ContactSource.METADATA.value,
        }
