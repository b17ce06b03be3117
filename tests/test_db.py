"""
Tests for the SQL layer (in-memory SQLite).
"""

import pytest
from sqlalchemy import func, select

import db
from models.entities import Contact
from models.models import ExtractedContact, KnownContact


@pytest.fixture
def database():
    engine = db.init_db("sqlite://")
    yield engine
    engine.dispose()


def stored(email):
    with db.session_scope() as s:
        row = s.execute(select(ExtractedContact).where(ExtractedContact.email == email)).scalar_one()
        return {
            "display_name": row.display_name,
            "phone_numbers": row.phone_numbers,
            "source": row.source,
            "is_in_outlook": row.is_in_outlook,
            "extraction_confidence": row.extraction_confidence,
        }


class TestSessionScope:
    def test_commits(self, database):
        with db.session_scope() as s:
            s.add(KnownContact(email="a@x.com"))

        with db.session_scope() as s:
            assert s.execute(select(func.count(KnownContact.id))).scalar_one() == 1

    def test_rolls_back_on_error(self, database):
        with pytest.raises(ValueError):
            with db.session_scope() as s:
                s.add(KnownContact(email="a@x.com"))
                s.flush()
                raise ValueError("abort")

        with db.session_scope() as s:
            assert s.execute(select(func.count(KnownContact.id))).scalar_one() == 0


class TestSQLKnownContactsSource:
    def test_addresses_are_normalized(self, database):
        with db.session_scope() as s:
            s.add_all([KnownContact(email=" Jane@X.com "), KnownContact(email="bob@y.com")])

        assert db.SQLKnownContactsSource().fetch_known_contact_addresses() == {"jane@x.com", "bob@y.com"}


class TestSaveContacts:
    def test_inserts_rows(self, database):
        written = db.save_contacts([
            Contact(email="a@x.com", phone_numbers=["1", "2"], source="body"),
            Contact(email="b@x.com", is_in_outlook=True),
        ])

        assert written == 2
        assert stored("a@x.com")["phone_numbers"] == "1;2"
        assert stored("b@x.com")["is_in_outlook"] is True

    def test_upsert_merges_with_stored_row(self, database):
        db.save_contacts([Contact(email="a@x.com", phone_numbers=["1"], source="body")])
        db.save_contacts([
            Contact(email="a@x.com", display_name="Ann", phone_numbers=["2"], source="metadata",
                    extraction_confidence="high"),
        ])

        row = stored("a@x.com")
        assert row["display_name"] == "Ann"
        assert row["phone_numbers"] == "1;2"
        assert row["source"] == "metadata"
        assert row["extraction_confidence"] == "high"

        with db.session_scope() as s:
            assert s.execute(select(func.count(ExtractedContact.id))).scalar_one() == 1
