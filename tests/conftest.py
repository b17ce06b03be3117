"""
Pytest configuration and fixtures for all tests.
"""

import os
import sys

import pytest

# Project root on the path before any imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Test environment; load_dotenv() never overrides these
os.environ.setdefault("NEWSLETTER_RULES_PATH", "")
os.environ.setdefault("DATABASE_URL", "")
os.environ.setdefault("LOG_LEVEL", "INFO")

from models.entities import EmailAddress, MessageHeader, RawMessage  # noqa: E402


def make_message(
    id="msg-1",
    sender="alice@corp.com",
    sender_name=None,
    subject="Lunch",
    body="<p>Hi Bob, lunch tomorrow?</p>",
    headers=(),
    to=(),
    cc=(),
    bcc=(),
    received_at="2024-01-15T10:00:00+00:00",
):
    return RawMessage(
        id=id,
        received_at=received_at,
        sender=EmailAddress(sender, sender_name) if sender else None,
        to_recipients=tuple(to),
        cc_recipients=tuple(cc),
        bcc_recipients=tuple(bcc),
        subject=subject,
        body=body,
        headers=tuple(MessageHeader(n, v) for n, v in headers),
    )


@pytest.fixture
def message_factory():
    return make_message


@pytest.fixture
def newsletter_message():
    """noreply sender + unsubscribe phrase + newsletter subject."""
    return make_message(
        id="nl-1",
        sender="noreply@example.com",
        subject="Our monthly newsletter",
        body="<p>Big news this month.</p><p>Click here to unsubscribe.</p>",
    )
