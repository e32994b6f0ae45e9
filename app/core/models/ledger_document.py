"""Ledger document: one JSON document per (collection, id)."""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Integer, String

from app.db.session import Base


class LedgerDocument(Base):
    """Row backing the fees, payments and attendance collections."""

    __tablename__ = "ledger_documents"

    collection = Column(String(64), primary_key=True)
    id = Column(String(128), primary_key=True)
    data = Column(JSON, nullable=False)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Optimistic concurrency: concurrent writers to one document raise StaleDataError.
    __mapper_args__ = {"version_id_col": version}
