"""
Database schema management and migrations.

This module creates the filter keyword table for SQLite and MySQL, and
upgrades keyword tables written by earlier releases, which stored only the
pattern column, to the current schema.
"""

import sqlite3
import mysql.connector
from typing import Dict, Any, List, Set
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


KEYWORD_TABLE = "filter_keywords"

# Rules that predate creation tracking sort before every newer rule
LEGACY_CREATED_AT = "1970-01-01 00:00:00"

SQLITE_SCHEMA = f"""
    CREATE TABLE IF NOT EXISTS {KEYWORD_TABLE} (
        keyword TEXT PRIMARY KEY,
        created_at TIMESTAMP
    )
"""

MYSQL_SCHEMA = f"""
    CREATE TABLE IF NOT EXISTS {KEYWORD_TABLE} (
        keyword VARCHAR(512) PRIMARY KEY,
        created_at TIMESTAMP(6) NULL
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_bin
"""


class DatabaseMigrations:
    """Brings the keyword table to the current schema."""

    def __init__(self, db_type: str, connection_params: Dict[str, Any]):
        """
        Initialize database migrations.

        Args:
            db_type: Either 'sqlite' or 'mysql'
            connection_params: Database connection parameters
        """
        self.db_type = db_type.lower()
        self.connection_params = connection_params

    async def initialize_database(self) -> bool:
        """
        Create or upgrade the keyword table.

        Returns:
            bool: True if successful, False otherwise
        """
        try:
            if self.db_type == 'sqlite':
                return await self._migrate_sqlite()
            elif self.db_type == 'mysql':
                return await self._migrate_mysql()
            else:
                logger.error(f"Unsupported database type: {self.db_type}")
                return False
        except Exception as e:
            logger.error(f"Database initialization failed: {e}")
            return False

    async def _migrate_sqlite(self) -> bool:
        database_path = self.connection_params.get('database_url', './filter.db')
        Path(database_path).parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(database_path)
        try:
            cursor = conn.cursor()
            cursor.execute(f"PRAGMA table_info({KEYWORD_TABLE})")
            columns = {row[1] for row in cursor.fetchall()}

            self._apply(cursor, columns, SQLITE_SCHEMA,
                        f"ALTER TABLE {KEYWORD_TABLE} ADD COLUMN created_at TIMESTAMP")
            conn.commit()
            logger.info(f"SQLite keyword store ready at {database_path}")
            return True

        except Exception as e:
            logger.error(f"SQLite migration failed: {e}")
            conn.rollback()
            return False
        finally:
            conn.close()

    async def _migrate_mysql(self) -> bool:
        conn = None
        try:
            conn = mysql.connector.connect(
                host=self.connection_params['host'],
                port=self.connection_params.get('port', 3306),
                user=self.connection_params['user'],
                password=self.connection_params['password']
            )
            cursor = conn.cursor()

            database_name = self.connection_params['database']
            cursor.execute(f"CREATE DATABASE IF NOT EXISTS `{database_name}`")
            cursor.execute(f"USE `{database_name}`")

            cursor.execute(
                "SELECT COLUMN_NAME FROM information_schema.COLUMNS "
                "WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s",
                (database_name, KEYWORD_TABLE)
            )
            columns = {row[0] for row in cursor.fetchall()}

            self._apply(cursor, columns, MYSQL_SCHEMA,
                        f"ALTER TABLE {KEYWORD_TABLE} ADD COLUMN created_at TIMESTAMP(6) NULL")
            conn.commit()
            logger.info(f"MySQL keyword store ready: {database_name}")
            return True

        except Exception as e:
            logger.error(f"MySQL migration failed: {e}")
            if conn is not None:
                conn.rollback()
            return False
        finally:
            if conn is not None:
                conn.close()

    def _apply(self, cursor, columns: Set[str], create_sql: str, add_column_sql: str) -> None:
        for statement in self.pending_statements(columns, create_sql, add_column_sql):
            cursor.execute(statement)

    @staticmethod
    def pending_statements(columns: Set[str], create_sql: str, add_column_sql: str) -> List[str]:
        """
        Statements needed to bring a keyword table with ``columns`` up to date.

        Args:
            columns: Existing column names (empty if the table is missing)
            create_sql: Statement creating the current table
            add_column_sql: Statement adding the creation timestamp column

        Returns:
            List of SQL statements, empty if the table is current
        """
        if not columns:
            return [create_sql]

        if 'created_at' in columns:
            return []

        logger.info("Upgrading keyword table: adding creation timestamps")
        return [
            add_column_sql,
            f"UPDATE {KEYWORD_TABLE} SET created_at = '{LEGACY_CREATED_AT}' WHERE created_at IS NULL",
        ]
