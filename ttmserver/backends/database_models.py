"""
Database TTM Models
SQLAlchemy tables for the database translation memory backend.
"""
import re
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, declarative_base

Base = declarative_base()


def normalize_text(text: str) -> str:
    """Normalize text for fuzzy matching."""
    text = text.lower().strip()
    text = re.sub(r'\s+', ' ', text)
    return text


class TTMUnit(Base):
    """
    One stored message text: a definition or a translation.

    A location has one row per language; the row whose language equals
    the source language is the definition.
    """

    __tablename__ = "ttm_units"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Identity
    wiki: Mapped[str] = mapped_column(String(64), nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    language: Mapped[str] = mapped_column(String(35), nullable=False)

    # Content
    text: Mapped[str] = mapped_column(Text, nullable=False)
    text_normalized: Mapped[str] = mapped_column(Text, nullable=False)
    text_length: Mapped[int] = mapped_column(Integer, default=0)  # characters
    is_definition: Mapped[bool] = mapped_column(default=False)

    revision_id: Mapped[int] = mapped_column(Integer, default=0)
    uri: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        Index("idx_ttm_unit_key", "wiki", "location", "language", unique=True),
        Index("idx_ttm_unit_lookup", "language", "is_definition"),
    )

    def __repr__(self):
        return f"<TTMUnit {self.wiki}:{self.location}/{self.language}>"
