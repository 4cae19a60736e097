from __future__ import annotations

from sqlalchemy import Column, Integer, Text

from ..db.session import Base


class StoredValue(Base):
    """One entry of the key-value store.

    ``value`` holds the serialized payload exactly as written. ``revision``
    starts at 1 and is bumped on every write so writers can detect that
    someone else replaced the value since they read it.
    """

    __tablename__ = "kv_store"

    key = Column(Text, primary_key=True)
    value = Column(Text, nullable=False)
    revision = Column(Integer, nullable=False, default=1)
    updated_at = Column(Text, nullable=False)
