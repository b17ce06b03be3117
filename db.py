# db.py
"""
Creates the SQLAlchemy engine and a session factory on first use.
Reads DATABASE_URL from config (.env); nothing connects at import.

Also provides the SQL-backed known-contacts source and persistence of
extracted contacts.
"""

import logging
from contextlib import contextmanager
from typing import Iterable, Optional, Set

from sqlalchemy import create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

import config
from deduplicator import merge_contacts
from models.entities import Contact
from models.models import Base, ExtractedContact, KnownContact

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
SessionLocal: Optional[sessionmaker] = None


def init_db(database_url: Optional[str] = None, create_tables: bool = True) -> Engine:
    """(Re)bind the module engine and session factory."""
    global _engine, SessionLocal
    database_url = database_url or config.DATABASE_URL
    if not database_url:
        raise RuntimeError("DATABASE_URL is not set in .env")

    # echo=True for SQL debug
    _engine = create_engine(database_url, pool_pre_ping=True, echo=False)
    SessionLocal = sessionmaker(bind=_engine, autoflush=False, autocommit=False)
    if create_tables:
        Base.metadata.create_all(_engine)
    return _engine


@contextmanager
def session_scope():
    """
    Provide a transactional scope for a series of operations.
    Commits on success; rolls back on exception.
    """
    if SessionLocal is None:
        init_db()
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
        logger.debug("DB session committed")
    except Exception:
        session.rollback()
        logger.warning("DB session rolled back")
        raise
    finally:
        session.close()


class SQLKnownContactsSource:
    """Known-contacts source backed by the known_contacts table."""

    def fetch_known_contact_addresses(self) -> Set[str]:
        with session_scope() as s:
            emails = s.execute(select(KnownContact.email)).scalars().all()
        return {e.strip().lower() for e in emails if e}


def _split(value: Optional[str]) -> list:
    return [v for v in (value or "").split(";") if v]


def _to_contact(row: ExtractedContact) -> Contact:
    return Contact(
        email=row.email,
        display_name=row.display_name,
        first_name=row.first_name,
        last_name=row.last_name,
        phone_numbers=_split(row.phone_numbers),
        linkedin_urls=_split(row.linkedin_urls),
        company_name=row.company_name,
        job_title=row.job_title,
        source=row.source,
        is_in_outlook=row.is_in_outlook,
        first_seen_date=row.first_seen_date,
        extraction_confidence=row.extraction_confidence,
    )


def _apply(row: ExtractedContact, contact: Contact) -> None:
    row.display_name = contact.display_name
    row.first_name = contact.first_name
    row.last_name = contact.last_name
    row.phone_numbers = ";".join(contact.phone_numbers) or None
    row.linkedin_urls = ";".join(contact.linkedin_urls) or None
    row.company_name = contact.company_name
    row.job_title = contact.job_title
    row.source = contact.source
    row.is_in_outlook = contact.is_in_outlook
    row.first_seen_date = contact.first_seen_date
    row.extraction_confidence = contact.extraction_confidence


def save_contacts(contacts: Iterable[Contact]) -> int:
    """
    Upsert contacts by email. A stored row is merged with the new sighting
    using the same rules as in-run deduplication. Returns rows written.
    """
    written = 0
    with session_scope() as s:
        for contact in contacts:
            row = s.execute(
                select(ExtractedContact).where(ExtractedContact.email == contact.email)
            ).scalar_one_or_none()
            if row is None:
                row = ExtractedContact(email=contact.email)
                s.add(row)
                s.flush()
                merged = contact
            else:
                merged = merge_contacts(_to_contact(row), contact)
                merged.is_in_outlook = contact.is_in_outlook
            _apply(row, merged)
            written += 1
    logger.info("Saved %d contacts", written)
    return written
