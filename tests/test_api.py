"""
Tests for the HTTP surface (IMAP replaced by a fake source).
"""

import pytest
from fastapi.testclient import TestClient

import api
from contact_extractor import MessagePage
from imap_scraper import IMAPAuthenticationError
from models.entities import EmailAddress

REQUEST = {
    "email": "me@mine.com",
    "password": "app-password",
    "imap_host": "imap.test",
    "maxEmails": 10,
    "writeCsv": False,
    "saveNewsletterReport": True,
}


def fake_source_class(messages=(), connect_error=None, fetch_error=None):
    class FakeIMAPSource:
        def __init__(self, *args, **kwargs):
            self.closed = False

        def connect(self):
            if connect_error:
                raise connect_error

        def fetch_messages(self, criteria, cursor=None):
            if fetch_error:
                raise fetch_error
            return MessagePage(list(messages), None)

        def close(self):
            self.closed = True

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            self.close()

    return FakeIMAPSource


@pytest.fixture
def client():
    return TestClient(api.app)


class TestPing:
    def test_ping(self, client):
        response = client.get("/ping")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestExtractContacts:
    def test_returns_summary_and_contacts(self, client, monkeypatch, message_factory, newsletter_message):
        personal = message_factory(id="p1", sender="john@acme.com", sender_name="John Smith",
                                   to=[EmailAddress("me@mine.com", "Me")], subject="Meeting")
        monkeypatch.setattr(api, "IMAPMessageSource", fake_source_class([personal, newsletter_message]))

        response = client.post("/extract-contacts", json=REQUEST)

        assert response.status_code == 200
        data = response.json()
        assert data["summary"]["total_fetched"] == 2
        assert data["summary"]["newsletters_filtered"] == 1
        assert {c["email"] for c in data["contacts"]} == {"john@acme.com", "me@mine.com"}
        assert data["newsletter_report"]["total_filtered"] == 1
        assert data["csv_path"] is None
        assert "Unique contacts found: 2" in data["message"]

    def test_authentication_failure_is_401(self, client, monkeypatch):
        monkeypatch.setattr(api, "IMAPMessageSource", fake_source_class(
            connect_error=IMAPAuthenticationError("Authentication failed for me@mine.com")
        ))

        response = client.post("/extract-contacts", json=REQUEST)

        assert response.status_code == 401
        assert "Authentication failed" in response.json()["detail"]

    def test_connection_failure_is_502(self, client, monkeypatch):
        monkeypatch.setattr(api, "IMAPMessageSource", fake_source_class(connect_error=OSError("unreachable")))

        assert client.post("/extract-contacts", json=REQUEST).status_code == 502

    def test_fetch_failure_without_messages_is_502(self, client, monkeypatch):
        monkeypatch.setattr(api, "IMAPMessageSource", fake_source_class(fetch_error=RuntimeError("Failed to search emails")))

        response = client.post("/extract-contacts", json=REQUEST)

        assert response.status_code == 502
        assert "Failed to search emails" in response.json()["detail"]

    def test_missing_host_is_rejected(self, client):
        payload = {k: v for k, v in REQUEST.items() if k != "imap_host"}

        assert client.post("/extract-contacts", json=payload).status_code == 422
