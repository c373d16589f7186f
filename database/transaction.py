"""
Database transaction management

Provides context managers for explicit transaction control.
Repositories never commit; callers group writes with `transaction()`.
"""

import time
from contextlib import contextmanager
from typing import Optional
import sqlite3

from config import get_logger

logger = get_logger(__name__).bind(component="transaction")


@contextmanager
def transaction(conn: sqlite3.Connection, rollback_on_exception: bool = True):
    """Context manager for database transactions

    Args:
        conn: SQLite connection object
        rollback_on_exception: If True, rollback on any exception (default: True)

    Yields:
        The connection object (for convenience)

    Example:
        with transaction(db.conn):
            db.meetings.store_meeting(meeting)
            db.items.replace_agenda_items(meeting.id, items)
            # Automatic commit on success, rollback on exception
    """
    try:
        yield conn
        conn.commit()
        logger.debug("transaction committed")
    except Exception as e:
        if rollback_on_exception:
            conn.rollback()
            logger.warning("transaction rolled back", error=str(e), error_type=type(e).__name__)
        raise


@contextmanager
def savepoint(conn: sqlite3.Connection, name: Optional[str] = None):
    """Context manager for nested transactions using savepoints

    Lets one ordinance or resolution fail inside a larger batch transaction
    without discarding the rest of the batch.

    Args:
        conn: SQLite connection object
        name: Optional savepoint name (auto-generated if not provided)

    Yields:
        The savepoint name

    Example:
        with transaction(db.conn):
            for number, mentions in grouped.items():
                try:
                    with savepoint(db.conn):
                        db.resolutions.upsert_resolution(...)
                except DatabaseError:
                    failures += 1
    """
    savepoint_name = name or f"sp_{time.time_ns()}"

    try:
        conn.execute(f"SAVEPOINT {savepoint_name}")
        logger.debug("savepoint created", name=savepoint_name)
        yield savepoint_name
        conn.execute(f"RELEASE SAVEPOINT {savepoint_name}")
        logger.debug("savepoint released", name=savepoint_name)
    except Exception as e:
        conn.execute(f"ROLLBACK TO SAVEPOINT {savepoint_name}")
        conn.execute(f"RELEASE SAVEPOINT {savepoint_name}")
        logger.warning("savepoint rolled back", name=savepoint_name, error=str(e))
        raise
