# signature_extractor.py
from __future__ import annotations

import re
from typing import Optional, Tuple

import html2text
from bs4 import BeautifulSoup


# order matters on ties: the first marker found at a position wins
SIGNATURE_MARKERS = (
    # English
    "Best regards", "Regards", "Sincerely", "Thanks", "Cheers", "Best", "Thank you",
    # French
    "Cordialement", "Bien cordialement", "Salutations", "Salutations distinguées",
    "Respectueusement", "Amitiés", "Amicalement", "Bonne journée", "Bonne soirée",
    # delimiters / client footers
    "--", "___", "Sent from", "Envoyé depuis",
)

SIGNATURE_HINTS = (
    r"best regards?", r"sincerely", r"thanks?", r"cheers", r"sent from",
    r"cordialement", r"salutations", r"respectueusement", r"amitiés", r"amicalement",
    r"bonne journée", r"bonne soirée", r"envoyé depuis",
)

MAX_SIGNATURE_LENGTH = 500
FALLBACK_MIN_LINES = 3
FALLBACK_TAIL_LINES = 4

BLOCK_TAGS = ("p", "div", "tr", "li", "h1", "h2", "h3", "h4", "h5", "h6", "table")
NOISE_TAGS = ("script", "style", "meta", "link", "head", "title")


class SignatureExtractor:
    def __init__(self):
        self.hint_patterns = [re.compile(p, re.IGNORECASE) for p in SIGNATURE_HINTS]
        self.hint_patterns += [re.compile(r"\n--\s*\n"), re.compile(r"\n___+\n")]

    # ---------- HTML + text cleaning ----------
    def html_to_text(self, raw_html_or_text: Optional[str]) -> str:
        """
        Plain text with block boundaries kept as newlines.
        Entities are decoded by the parser; html2text is only a fallback
        when BeautifulSoup yields nothing.
        """
        if not raw_html_or_text:
            return ""

        soup = BeautifulSoup(raw_html_or_text, "html.parser")
        for tag in soup(list(NOISE_TAGS)):
            tag.decompose()
        for br in soup.find_all("br"):
            br.replace_with("\n")
        for block in soup.find_all(list(BLOCK_TAGS)):
            block.append("\n")

        text = soup.get_text()
        if not text.strip():
            h = html2text.HTML2Text()
            h.ignore_links = True
            h.ignore_images = True
            h.ignore_emphasis = True
            text = h.handle(raw_html_or_text)

        text = text.replace("\xa0", " ").replace("\r\n", "\n")
        text = re.sub(r"[ \t]+", " ", text)
        text = re.sub(r" *\n *", "\n", text)
        text = re.sub(r"\n\s*\n\s*\n+", "\n\n", text)
        return text.strip()

    # ---------- detection ----------
    def find_signature_start(self, body_text: str) -> int:
        """Index of the last closing marker in the text, -1 when there is none."""
        start = -1
        for marker in SIGNATURE_MARKERS:
            index = body_text.rfind(marker)
            if index > start:
                start = index
        return start

    def extract_signature(self, body_text: Optional[str]) -> Optional[str]:
        if not body_text:
            return None

        start = self.find_signature_start(body_text)
        if start == -1:
            lines = body_text.split("\n")
            if len(lines) > FALLBACK_MIN_LINES:
                return "\n".join(lines[-FALLBACK_TAIL_LINES:])
            return None

        return body_text[start:start + MAX_SIGNATURE_LENGTH]

    def has_signature(self, body_text: Optional[str]) -> bool:
        if not body_text:
            return False
        return any(p.search(body_text) for p in self.hint_patterns)

    def process_html_body(self, html_body: Optional[str]) -> Tuple[str, Optional[str]]:
        """Returns (plain_text, signature)."""
        if not html_body:
            return "", None
        plain_text = self.html_to_text(html_body)
        return plain_text, self.extract_signature(plain_text)
