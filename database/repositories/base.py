"""
Base Repository for database operations

Provides shared connection and common utilities for all repositories.
"""

import sqlite3
from typing import Optional

from exceptions import DatabaseConnectionError, DatabaseError, DataIntegrityError


class BaseRepository:
    """Base class for all repositories with shared connection"""

    def __init__(self, conn: Optional[sqlite3.Connection] = None):
        """
        Initialize repository with database connection

        Args:
            conn: SQLite connection (shared across all repositories)
        """
        self.conn = conn

    def _execute(self, query: str, params: tuple = ()) -> sqlite3.Cursor:
        """
        Execute SQL query with parameters

        Raises:
            DatabaseConnectionError: If connection not established
            DataIntegrityError: If a constraint is violated
            DatabaseError: If query execution fails
        """
        if self.conn is None:
            raise DatabaseConnectionError("Database connection not established")

        try:
            cursor = self.conn.cursor()
            cursor.execute(query, params)
            return cursor
        except sqlite3.IntegrityError as e:
            raise DataIntegrityError(f"Constraint violated: {e}", constraint=str(e))
        except sqlite3.Error as e:
            raise DatabaseError(f"Query execution failed: {e}", context={'query': query[:100]})

    def _fetch_one(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        """Execute query and fetch one result"""
        cursor = self._execute(query, params)
        return cursor.fetchone()

    def _fetch_all(self, query: str, params: tuple = ()) -> list[sqlite3.Row]:
        """Execute query and fetch all results"""
        cursor = self._execute(query, params)
        return cursor.fetchall()

    def _count(self, table: str) -> int:
        row = self._fetch_one(f"SELECT COUNT(*) AS n FROM {table}")
        return row["n"] if row else 0

    def _commit(self):
        """Commit current transaction

        Raises:
            DatabaseConnectionError: If connection not established
            DatabaseError: If commit fails
        """
        if self.conn is None:
            raise DatabaseConnectionError("Database connection not established")

        try:
            self.conn.commit()
        except sqlite3.Error as e:
            raise DatabaseError(f"Transaction commit failed: {e}")
