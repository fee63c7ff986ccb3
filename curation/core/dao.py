"""
Durable store boundary for curation records.
The registry only talks to the CurationStore protocol; CurationRecord.to_dict() is exactly what round-trips.
"""

import json
import sqlite3
import threading
from typing import Dict, List, Optional, Protocol

from .config import get_db_path, get_store_backend
from .db import get_db, init_db
from .errors import CurationStorageError
from .schema import CurationRecord
from ..util.logging import logger


class CurationStore(Protocol):
    def load(self, curation_id: str) -> Optional[CurationRecord]:
        ...

    def save(self, record: CurationRecord) -> None:
        ...

    def list_all(self) -> List[CurationRecord]:
        ...


class InMemoryCurationStore:
    """Store that keeps serialized documents in a dict (tests and embedded hosts)."""

    def __init__(self):
        self._documents: Dict[str, str] = {}
        self._lock = threading.Lock()

    def load(self, curation_id: str) -> Optional[CurationRecord]:
        with self._lock:
            document = self._documents.get(curation_id)
        return CurationRecord.from_dict(json.loads(document)) if document else None

    def save(self, record: CurationRecord) -> None:
        document = json.dumps(record.to_dict())
        with self._lock:
            self._documents[record.id] = document

    def list_all(self) -> List[CurationRecord]:
        with self._lock:
            documents = list(self._documents.values())
        return [CurationRecord.from_dict(json.loads(d)) for d in documents]


class SQLiteCurationStore:
    """SQLite-backed store; see db.init_db for the table layout."""

    def __init__(self, db_path: str = None):
        self.db_path = db_path or get_db_path()
        init_db(self.db_path)

    def load(self, curation_id: str) -> Optional[CurationRecord]:
        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT document FROM curation_records WHERE id = ?", (curation_id,))
                row = cursor.fetchone()
        except sqlite3.Error as e:
            logger.error(f"Failed to load curation '{curation_id}': {e}")
            raise CurationStorageError(f"failed to load curation {curation_id}: {e}", curation_id=curation_id)

        return CurationRecord.from_dict(json.loads(row[0])) if row else None

    def save(self, record: CurationRecord) -> None:
        data = record.to_dict()
        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute('''
                    INSERT INTO curation_records (id, subject_id, submitter_id, status, sensitivity_level,
                        cultural_context, submitted_at, published_at, updated_at, version, document)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        status = excluded.status,
                        sensitivity_level = excluded.sensitivity_level,
                        published_at = excluded.published_at,
                        updated_at = excluded.updated_at,
                        version = excluded.version,
                        document = excluded.document
                ''', (
                    data['id'], data['subject_id'], data['submitter_id'], data['status'],
                    data['sensitivity_level'], data['cultural_context'], data['submitted_at'],
                    data['published_at'], data['updated_at'], data['version'], json.dumps(data)
                ))
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Database error during save of curation '{record.id}': {e}")
            raise CurationStorageError(f"failed to save curation {record.id}: {e}", curation_id=record.id)

    def list_all(self) -> List[CurationRecord]:
        try:
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT document FROM curation_records ORDER BY submitted_at")
                rows = cursor.fetchall()
        except sqlite3.Error as e:
            logger.error(f"Failed to list curations: {e}")
            raise CurationStorageError(f"failed to list curations: {e}")

        return [CurationRecord.from_dict(json.loads(row[0])) for row in rows]


def get_curation_store():
    """Get configured store implementation."""
    if get_store_backend() == "memory":
        return InMemoryCurationStore()
    return SQLiteCurationStore()
