"""
Result Store
Short-lived in-memory results for anonymous callers, SQL-backed results
for signed-in callers, behind one read/delete contract
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from before_send.clock import Clock, utcnow
from before_send.exceptions import AuthRequired, StorageError
from before_send.models import MessageCheck
from before_send.schemas import CheckRecord

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(hours=1)
DEFAULT_HISTORY_LIMIT = 50


@dataclass
class _Entry:
    record: CheckRecord
    expires_at: datetime


class EphemeralResultStore:
    """
    In-memory results with a fixed time-to-live.

    Expiry is lazy: every put evicts all expired entries and a get on an
    expired entry removes it. There is no background sweep.
    """

    def __init__(self, ttl: timedelta = DEFAULT_TTL, clock: Clock = utcnow):
        self.ttl = ttl
        self.clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def put(self, check_id: str, record: CheckRecord) -> None:
        with self._lock:
            now = self.clock()
            self._entries[check_id] = _Entry(record=record, expires_at=now + self.ttl)

            expired = [key for key, entry in self._entries.items() if entry.expires_at < now]
            for key in expired:
                del self._entries[key]

            if expired:
                logger.debug(f"Evicted {len(expired)} expired results")

    def get(self, check_id: str) -> Optional[CheckRecord]:
        with self._lock:
            entry = self._entries.get(check_id)
            if entry is None:
                return None

            if entry.expires_at < self.clock():
                del self._entries[check_id]
                return None

            return entry.record

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class DurableResultStore:
    """Owner-scoped results in the SQL database"""

    def __init__(self, session_factory: sessionmaker, engine: Optional[Engine] = None):
        self.session_factory = session_factory
        self.engine = engine

    def insert(self, record: CheckRecord, owner_id: str) -> None:
        try:
            with self.session_factory() as db:
                db.add(MessageCheck.from_record(record, owner_id))
                db.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to insert check {record.id}") from e

    def get_by_id(self, check_id: str, owner_id: str) -> Optional[CheckRecord]:
        try:
            with self.session_factory() as db:
                row = db.query(MessageCheck)\
                    .filter(MessageCheck.id == check_id, MessageCheck.user_id == owner_id)\
                    .first()
                return row.to_record() if row else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load check {check_id}") from e

    def list_recent(self, owner_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[CheckRecord]:
        try:
            with self.session_factory() as db:
                rows = db.query(MessageCheck)\
                    .filter(MessageCheck.user_id == owner_id)\
                    .order_by(MessageCheck.created_at.desc())\
                    .limit(limit)\
                    .all()
                return [row.to_record() for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list checks for {owner_id}") from e

    def delete(self, check_id: str, owner_id: str) -> bool:
        try:
            with self.session_factory() as db:
                deleted = db.query(MessageCheck)\
                    .filter(MessageCheck.id == check_id, MessageCheck.user_id == owner_id)\
                    .delete()
                db.commit()
                return deleted > 0
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete check {check_id}") from e

    def close(self) -> None:
        """Dispose of the connection pool when this store owns the engine"""
        if self.engine is not None:
            self.engine.dispose()


class ResultStore:
    """
    Write and read policy across both tiers.

    Signed-in callers write to the durable tier, everyone else to the
    ephemeral tier, never both. Reads try the ephemeral tier first.
    """

    def __init__(
        self,
        ephemeral: EphemeralResultStore,
        durable: DurableResultStore,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ):
        self.ephemeral = ephemeral
        self.durable = durable
        self.history_limit = history_limit

    def save(self, record: CheckRecord, owner_id: Optional[str]) -> None:
        if owner_id:
            self.durable.insert(record, owner_id)
        else:
            self.ephemeral.put(record.id, record)

    def fetch(self, check_id: str, owner_id: Optional[str]) -> Optional[CheckRecord]:
        """
        Ephemeral hit for anyone holding the id; otherwise the durable tier,
        which needs a session (AuthRequired) and only sees the owner's rows.
        """
        record = self.ephemeral.get(check_id)
        if record is not None:
            return record

        if not owner_id:
            raise AuthRequired()

        return self.durable.get_by_id(check_id, owner_id)

    def delete(self, check_id: str, owner_id: Optional[str]) -> bool:
        if not owner_id:
            raise AuthRequired()
        return self.durable.delete(check_id, owner_id)

    def history(self, owner_id: Optional[str]) -> List[CheckRecord]:
        if not owner_id:
            raise AuthRequired()
        return self.durable.list_recent(owner_id, limit=self.history_limit)

    def close(self) -> None:
        self.durable.close()
