"""SQLAlchemy models; importing this package registers every table."""

from .storage import StoredValue

__all__ = ["StoredValue"]
