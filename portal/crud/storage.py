"""Key-value persistence for the portal's JSON collections.

Each key maps to one serialized string plus a revision number. Writers may
pass the revision they read; the write then only succeeds if nobody replaced
the value in between. ``set_many`` writes several keys in one transaction.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Mapping, NamedTuple, TypeVar

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..core.clock import Clock, to_iso, utcnow
from ..core.errors import StaleWriteError, VersionConflictError
from ..models.storage import StoredValue

logger = logging.getLogger("portal.storage")

T = TypeVar("T")


class Entry(NamedTuple):
    value: str | None
    revision: int


class Write(NamedTuple):
    value: str
    expected_revision: int | None = None


class KeyValueStore:
    def __init__(self, session_factory: sessionmaker, *, clock: Clock = utcnow) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def get(self, key: str) -> str | None:
        return self.get_entry(key).value

    def get_entry(self, key: str) -> Entry:
        """Return the value and revision; a missing key reports revision 0."""

        with self._session_factory() as db:
            row = db.get(StoredValue, key)
            if row is None:
                return Entry(None, 0)
            return Entry(row.value, row.revision)

    def revision(self, key: str) -> int:
        return self.get_entry(key).revision

    def keys(self) -> list[str]:
        with self._session_factory() as db:
            return list(db.execute(select(StoredValue.key).order_by(StoredValue.key)).scalars())

    def set(self, key: str, value: str, expected_revision: int | None = None) -> int:
        return self.set_many({key: Write(value, expected_revision)})[key]

    def set_many(self, writes: Mapping[str, Write]) -> dict[str, int]:
        """Write every key or none of them; return the new revisions."""

        stamp = to_iso(self._clock())
        revisions: dict[str, int] = {}
        with self._session_factory() as db:
            try:
                for key, write in writes.items():
                    revisions[key] = self._write(db, key, write, stamp)
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise StaleWriteError("Storage key was created by another writer", keys=sorted(writes)) from exc
            except StaleWriteError:
                db.rollback()
                raise
        return revisions

    def delete(self, key: str) -> None:
        with self._session_factory() as db:
            db.execute(delete(StoredValue).where(StoredValue.key == key))
            db.commit()

    def _write(self, db: Session, key: str, write: Write, stamp: str) -> int:
        expected = write.expected_revision
        if expected is None:
            row = db.get(StoredValue, key)
            if row is None:
                db.add(StoredValue(key=key, value=write.value, revision=1, updated_at=stamp))
                db.flush()
                return 1
            row.value = write.value
            row.revision += 1
            row.updated_at = stamp
            db.flush()
            return row.revision

        if expected == 0:
            # The writer saw no value; inserting fails if one appeared since.
            db.add(StoredValue(key=key, value=write.value, revision=1, updated_at=stamp))
            db.flush()
            return 1

        result = db.execute(
            update(StoredValue)
            .where(StoredValue.key == key, StoredValue.revision == expected)
            .values(value=write.value, revision=expected + 1, updated_at=stamp)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StaleWriteError(
                f"Storage key {key!r} changed since revision {expected}",
                key=key,
                expected_revision=expected,
            )
        return expected + 1


async def retry_on_stale(op: Callable[[], Awaitable[T]], *, attempts: int = 3) -> T:
    """Run ``op`` again when a conditional write loses, up to ``attempts`` times."""

    attempt = 1
    while True:
        try:
            return await op()
        except VersionConflictError:
            raise
        except StaleWriteError as exc:
            if attempt >= attempts:
                raise
            logger.warning(
                "storage.conflict",
                extra={"extra_data": {"attempt": attempt, "reason": exc.message}},
            )
            attempt += 1
