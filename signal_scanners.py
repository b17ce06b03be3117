# signal_scanners.py
"""
Newsletter signal scanners (English & French).

Each scanner looks at one facet of a message, appends the tags of the
signals it finds to `signals` and returns the summed weight. Scanners only
ever add: a missing facet scores 0 and tags nothing.
"""
from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Pattern, Sequence, Tuple, Union

from bs4 import BeautifulSoup

from models.entities import EmailAddress, MessageHeader


SIGNAL_WEIGHTS: Dict[str, int] = {
    # headers (high confidence)
    "list-unsubscribe-header": 25,
    "bulk-precedence": 20,
    "list-id-header": 20,
    "esp-mailer": 25,
    # sender local-part
    "noreply-sender": 20,
    "marketing-sender": 10,
    "automated-sender": 12,
    "generic-sender": 8,
    # body content
    "unsubscribe-link": 30,
    "view-in-browser": 15,
    "update-preferences": 12,
    "manage-subscription": 10,
    "french-newsletter-phrase": 12,
    "english-newsletter-phrase": 12,
    "tracking-pixels": 8,
    "social-footer": 8,
    "privacy-footer": 5,
    "privacy-footer-en": 5,
    # recipients
    "bcc-recipient": 15,
    "generic-recipient": 10,
    # structure
    "table-layout": 5,
    "high-image-ratio": 10,
    # subject
    "newsletter-subject": 15,
}

TABLE_COUNT_LIMIT = 5
IMAGE_RATIO_LIMIT = 0.7
MIN_TRACKING_PIXELS = 2

ESP_HEADERS = ("x-mailer", "x-sender", "x-campaign")

# category -> (wrapper, {language: alternatives}); "%s" in the wrapper receives the alternation
_PATTERN_SOURCES: Dict[str, Tuple[str, Dict[str, Tuple[str, ...]]]] = {
    "esp-mailer": ("%s", {
        "any": ("mailchimp", "sendgrid", "constant contact", "campaign monitor", "mailgun",
                "postmark", "amazonses", "sendinblue", "brevo", "mailjet"),
    }),
    "noreply-sender": ("^%s@", {
        "en": (r"no-?reply", r"do-?not-?reply", r"noreply"),
        "fr": (r"ne-?pas-?repondre", r"nepasrepondre"),
    }),
    "marketing-sender": ("^%s@", {
        "en": ("info", "newsletter", "marketing", "news", "updates", "notifications"),
        "fr": ("lettre", r"actualit[ée]s?", "communication", "diffusion", "bulletin"),
    }),
    "automated-sender": ("^%s@", {
        "en": (r"automated?", "auto", "notification", r"alerts?", "system"),
        "fr": ("automatique", "alerte"),
    }),
    "generic-sender": ("^%s@", {
        "en": ("contact", "service", "support"),
        "fr": ("accueil", "[ée]quipe"),
    }),
    "unsubscribe-link": ("%s", {
        "en": ("unsubscribe",),
        "fr": (r"se d[ée]sabonner", r"d[ée]sabonnement", r"d[ée]sinscription", "ne plus recevoir"),
    }),
    "view-in-browser": ("%s", {
        "en": (r"(?:view|read).{0,50}(?:this|email|message|it).{0,50}(?:in|on).{0,20}(?:your )?browser",
               r"view (?:it )?in (?:your )?browser", r"view (?:it )?online"),
        "fr": (r"(?:voir|lire|afficher|consulter).{0,50}(?:ce|cet|cette|message|e-?mail|courriel)"
               r".{0,50}(?:dans|sur).{0,20}(?:le |votre |ton |ta )?navigateur",
               "afficher dans le navigateur", "voir en ligne"),
    }),
    "update-preferences": ("%s", {
        "en": (r"(?:update|manage|change).{0,50}(?:your )?(?:e-?mail )?preferences",),
        "fr": (r"(?:modifier|g[ée]rer|mettre [àa] jour).{0,50}(?:vos |mes |tes )?"
               r"(?:(?:e-?mail|courriel) )?pr[ée]f[ée]rences",),
    }),
    "manage-subscription": ("%s", {
        "en": (r"(?:manage|modify).{0,30}(?:your )?subscription",),
        "fr": (r"(?:g[ée]rer|modifier).{0,30}(?:votre |mon |ton )?(?:abonnement|inscription)",),
    }),
    "french-newsletter-phrase": ("%s", {
        "fr": (r"(?:cet?|ce) (?:e-?mail|courriel|message) (?:vous |t')?(?:a [ée]t[ée]|est) envoy[ée]",
               r"vous recevez ce (?:message|mail|courriel)", r"lettre d'information", "infolettre",
               r"bulletin d'information"),
    }),
    "english-newsletter-phrase": ("%s", {
        "en": (r"(?:this|the) (?:email|message|newsletter) (?:was|has been) sent",
               r"you (?:are receiving|received) this (?:email|message)", "email newsletter", "mailing list"),
    }),
    "social-footer": ("%s", {
        "en": (r"(?:follow us|connect with us|find us on).{0,100}(?:facebook|twitter|linkedin|instagram|social)",),
        "fr": (r"(?:suivez[ -]nous|retrouvez[ -]nous|rejoignez[ -]nous|suivre).{0,100}"
               r"(?:facebook|twitter|linkedin|instagram|r[ée]seaux sociaux)",),
    }),
    "privacy-footer": ("%s", {
        "fr": (r"politique de confidentialit[ée]", r"protection des donn[ée]es", r"mentions l[ée]gales",
               r"conform[ée]ment [àa] la loi", r"\bcnil\b", r"\brgpd\b"),
    }),
    "privacy-footer-en": ("%s", {
        "en": ("privacy policy", "data protection", "legal notice", r"terms (?:of service|and conditions)",
               r"\bgdpr\b", "unsubscribe policy"),
    }),
    "generic-recipient": ("%s", {
        "en": ("valued customer", "dear subscriber", "dear user", "dear member", "newsletter subscriber"),
        "fr": (r"cher client", r"ch[eè]re cliente", r"cher abonn[ée]", "cher membre", r"ch[eè]re? utilisateur",
               r"bonjour [àa] tous", r"madame,? monsieur", "cher lecteur", r"amie? lecteur"),
    }),
    "newsletter-subject": ("%s", {
        "en": ("newsletter", "digest", "roundup", "weekly", "monthly", "update"),
        "fr": ("bulletin", r"actualit[ée]s?", r"lettre d'information", "hebdomadaire", "mensuel",
               r"r[ée]capitulatif"),
    }),
}


def _compile(wrapper: str, variants: Mapping[str, Iterable[str]]) -> Pattern[str]:
    alternation = "|".join(alt for language in variants.values() for alt in language)
    return re.compile(wrapper % f"(?:{alternation})", re.IGNORECASE)


PATTERNS: Dict[str, Pattern[str]] = {
    category: _compile(wrapper, variants)
    for category, (wrapper, variants) in _PATTERN_SOURCES.items()
}


def pattern_for(category: str) -> Pattern[str]:
    return PATTERNS[category]


def _signal(tag: str, signals: List[str]) -> int:
    signals.append(tag)
    return SIGNAL_WEIGHTS[tag]


def _header_pair(header: Union[MessageHeader, Mapping[str, Any], Any]) -> Tuple[Optional[str], Optional[str]]:
    if isinstance(header, Mapping):
        return header.get("name"), header.get("value")
    return getattr(header, "name", None), getattr(header, "value", None)


def _address_of(sender: Union[EmailAddress, str, None]) -> str:
    if isinstance(sender, EmailAddress):
        sender = sender.address
    return (sender or "").strip().lower()


# ---------- scanners ----------
def check_headers(headers: Optional[Sequence[Any]], signals: List[str]) -> int:
    score = 0
    if not headers:
        return score

    header_map: Dict[str, str] = {}
    for header in headers:
        name, value = _header_pair(header)
        if name and value:
            header_map[str(name).lower()] = str(value).lower()

    if header_map.get("list-unsubscribe"):
        score += _signal("list-unsubscribe-header", signals)

    precedence = header_map.get("precedence", "")
    if "bulk" in precedence or "list" in precedence:
        score += _signal("bulk-precedence", signals)

    if header_map.get("list-id"):
        score += _signal("list-id-header", signals)

    mailer = next((header_map[h] for h in ESP_HEADERS if header_map.get(h)), "")
    if mailer and PATTERNS["esp-mailer"].search(mailer):
        score += _signal("esp-mailer", signals)

    return score


def check_sender_patterns(sender: Union[EmailAddress, str, None], signals: List[str]) -> int:
    score = 0
    address = _address_of(sender)
    if not address:
        return score

    for tag in ("noreply-sender", "marketing-sender", "automated-sender", "generic-sender"):
        if PATTERNS[tag].search(address):
            score += _signal(tag, signals)
    return score


def _count_tracking_pixels(soup: BeautifulSoup) -> int:
    def _is_one(value: Any) -> bool:
        return str(value).strip().lower().rstrip("px").strip() == "1"

    return sum(
        1 for img in soup.find_all("img")
        if _is_one(img.get("width", "")) and _is_one(img.get("height", ""))
    )


def check_body_content(content: Optional[str], signals: List[str]) -> int:
    score = 0
    if not content:
        return score

    for tag in ("unsubscribe-link", "view-in-browser", "update-preferences", "manage-subscription",
                "french-newsletter-phrase", "english-newsletter-phrase"):
        if PATTERNS[tag].search(content):
            score += _signal(tag, signals)

    soup = BeautifulSoup(content, "html.parser")
    if _count_tracking_pixels(soup) >= MIN_TRACKING_PIXELS:
        score += _signal("tracking-pixels", signals)

    for tag in ("social-footer", "privacy-footer", "privacy-footer-en"):
        if PATTERNS[tag].search(content):
            score += _signal(tag, signals)

    return score


def check_recipient_patterns(
    to_recipients: Optional[Sequence[EmailAddress]],
    cc_recipients: Optional[Sequence[EmailAddress]],
    bcc_recipients: Optional[Sequence[EmailAddress]],
    signals: List[str],
) -> int:
    score = 0

    # we only see ourselves in Bcc when the mail went out in bulk
    if bcc_recipients:
        score += _signal("bcc-recipient", signals)

    names = [(r.name or "") for r in (to_recipients or ()) if r is not None]
    if any(PATTERNS["generic-recipient"].search(name) for name in names):
        score += _signal("generic-recipient", signals)

    return score


def check_email_structure(content: Optional[str], signals: List[str]) -> int:
    score = 0
    if not content:
        return score

    soup = BeautifulSoup(content, "html.parser")

    if len(soup.find_all("table")) > TABLE_COUNT_LIMIT:
        score += _signal("table-layout", signals)

    image_count = len(soup.find_all("img"))
    text_length = len(soup.get_text().strip())
    if text_length > 0 and image_count > 0:
        image_ratio = image_count / max(text_length / 100, 1)
        if image_ratio > IMAGE_RATIO_LIMIT:
            score += _signal("high-image-ratio", signals)

    return score


def check_subject(subject: Optional[str], signals: List[str]) -> int:
    if not subject:
        return 0
    if PATTERNS["newsletter-subject"].search(subject):
        return _signal("newsletter-subject", signals)
    return 0
