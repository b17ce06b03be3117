# models.py
"""
SQLAlchemy ORM models for KnownContact and ExtractedContact.

KnownContact is the address book the pipeline cross-references
(Contact.is_in_outlook). ExtractedContact holds merged pipeline output,
one row per email address.
"""

from datetime import datetime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import Boolean, String, Text, DateTime, Integer

class Base(DeclarativeBase):
    pass

class KnownContact(Base):
    __tablename__ = "known_contacts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

class ExtractedContact(Base):
    __tablename__ = "extracted_contacts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)

    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    first_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    phone_numbers: Mapped[str | None] = mapped_column(Text, nullable=True)   # ';'-joined
    linkedin_urls: Mapped[str | None] = mapped_column(Text, nullable=True)   # ';'-joined
    company_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    job_title: Mapped[str | None] = mapped_column(String(255), nullable=True)

    source: Mapped[str] = mapped_column(String(16), default="unknown")
    is_in_outlook: Mapped[bool] = mapped_column(Boolean, default=False)
    first_seen_date: Mapped[str | None] = mapped_column(String(64), nullable=True)
    extraction_confidence: Mapped[str] = mapped_column(String(8), default="low", index=True)

    created_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
