# config.py
"""
Runtime settings for the contact harvester.
Reads from the environment (and a local .env when present).
"""

import os

from dotenv import load_dotenv

load_dotenv()

NEWSLETTER_THRESHOLD = int(os.getenv("NEWSLETTER_THRESHOLD", "60"))
NEWSLETTER_CACHE_SIZE = int(os.getenv("NEWSLETTER_CACHE_SIZE", "1000"))
NEWSLETTER_CACHE_POLICY = os.getenv("NEWSLETTER_CACHE_POLICY", "fifo").lower()   # fifo | lru
NEWSLETTER_RULES_PATH = os.getenv("NEWSLETTER_RULES_PATH", os.path.join("config", "newsletter-rules.json"))

MAX_EMAILS = int(os.getenv("MAX_EMAILS", "1000"))
PAGE_SIZE = int(os.getenv("PAGE_SIZE", "100"))

# unset = no known-contacts table and no persistence
DATABASE_URL = os.getenv("DATABASE_URL") or None

CSV_OUTPUT_PATH = os.getenv(
    "CSV_OUTPUT_PATH",
    os.path.join(os.path.expanduser("~"), "extracted_contacts.csv"),
)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
