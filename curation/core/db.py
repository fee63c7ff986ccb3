"""
SQLite foundation for curation records.
One row per record: indexed lookup columns plus the full JSON document.
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator

from .config import get_db_path, ensure_db_directory


@contextmanager
def get_db(db_path: str = None) -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection."""
    conn = sqlite3.connect(db_path or get_db_path())
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: str = None):
    """Initialize the database with required tables."""
    ensure_db_directory(db_path)
    with get_db(db_path) as conn:
        cursor = conn.cursor()

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS curation_records (
                id TEXT PRIMARY KEY,
                subject_id TEXT NOT NULL,
                submitter_id TEXT NOT NULL,
                status TEXT NOT NULL,
                sensitivity_level TEXT NOT NULL,
                cultural_context TEXT,
                submitted_at TIMESTAMP NOT NULL,
                published_at TIMESTAMP,
                updated_at TIMESTAMP,
                version INTEGER NOT NULL DEFAULT 0,
                document TEXT NOT NULL  -- CurationRecord.to_dict() as JSON
            )
        ''')

        # Create indexes for performance
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_curation_status ON curation_records(status)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_curation_submitter ON curation_records(submitter_id)')

        conn.commit()


def health_check(db_path: str = None):
    """Check database health."""
    try:
        with get_db(db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            table_names = [table[0] for table in cursor.fetchall()]
            return 'curation_records' in table_names
    except sqlite3.Error:
        return False
