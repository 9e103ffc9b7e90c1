"""
Database CRUD operations.

This module implements keyword storage for the filter with support for
both SQLite and MySQL.
"""

import sqlite3
import mysql.connector
from mysql.connector import pooling
import logging
from typing import Any, Dict, List
from datetime import datetime
from contextlib import asynccontextmanager

from .models import KeywordRule
from .migrations import DatabaseMigrations

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Manages database connections with factory pattern for SQLite/MySQL."""

    def __init__(self, db_type: str = "sqlite", **connection_params):
        """
        Initialize DatabaseManager.

        Args:
            db_type: Either 'sqlite' or 'mysql'
            **connection_params: Database connection parameters
        """
        self.db_type = db_type.lower()
        self.connection_params = connection_params
        self.connection_pool = None

        self.migrations = DatabaseMigrations(db_type, connection_params)

    @property
    def placeholder(self) -> str:
        """Parameter placeholder for the active driver."""
        return '?' if self.db_type == 'sqlite' else '%s'

    async def initialize(self) -> bool:
        """
        Initialize database connection and schema.

        Returns:
            bool: True if successful, False otherwise
        """
        try:
            if not await self.migrations.initialize_database():
                logger.error("Failed to initialize database schema")
                return False

            if self.db_type == 'mysql':
                await self._setup_mysql_pool()

            logger.info(f"Database manager initialized ({self.db_type})")
            return True

        except Exception as e:
            logger.error(f"Database initialization failed: {e}")
            return False

    async def _setup_mysql_pool(self):
        """Set up MySQL connection pool."""
        try:
            pool_config = {
                'pool_name': 'translatebot_pool',
                'pool_size': 5,
                'pool_reset_session': True,
                'host': self.connection_params['host'],
                'port': self.connection_params.get('port', 3306),
                'user': self.connection_params['user'],
                'password': self.connection_params['password'],
                'database': self.connection_params['database'],
                'autocommit': True
            }

            self.connection_pool = pooling.MySQLConnectionPool(**pool_config)
            logger.info("MySQL connection pool created")

        except Exception as e:
            logger.error(f"Failed to create MySQL connection pool: {e}")
            raise

    @asynccontextmanager
    async def get_connection(self):
        """
        Get a database connection, closing it when the block exits.

        Yields:
            Database connection object
        """
        connection = None
        try:
            if self.db_type == 'sqlite':
                database_path = self.connection_params.get('database_url', './filter.db')
                connection = sqlite3.connect(database_path)
            elif self.db_type == 'mysql':
                if self.connection_pool:
                    connection = self.connection_pool.get_connection()
                else:
                    connection = mysql.connector.connect(
                        host=self.connection_params['host'],
                        port=self.connection_params.get('port', 3306),
                        user=self.connection_params['user'],
                        password=self.connection_params['password'],
                        database=self.connection_params['database']
                    )
            else:
                raise ValueError(f"Unsupported database type: {self.db_type}")

            yield connection

        except Exception as e:
            logger.error(f"Database connection error: {e}")
            raise
        finally:
            if connection is not None:
                try:
                    connection.close()
                except Exception as close_error:
                    logger.debug(f"Error closing database connection: {close_error}")

    async def execute(self, query: str, params: tuple = ()) -> int:
        """
        Execute a single write query with parameters.

        Args:
            query: SQL query string
            params: Query parameters

        Returns:
            Number of affected rows
        """
        async with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            conn.commit()
            return cursor.rowcount

    async def fetch_all(self, query: str, params: tuple = ()) -> List[tuple]:
        """
        Fetch all rows from a query.

        Args:
            query: SQL query string
            params: Query parameters

        Returns:
            List of row tuples
        """
        async with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return list(cursor.fetchall())

    async def close(self) -> None:
        """Release pooled connections. SQLite connections are per-operation."""
        self.connection_pool = None


def create_database_manager(config: Dict[str, Any]) -> DatabaseManager:
    """
    Create appropriate database manager based on configuration.

    Args:
        config: Configuration dictionary with database settings

    Returns:
        DatabaseManager instance
    """
    db_type = config.get('DATABASE_TYPE', 'sqlite').lower()

    if db_type == 'mysql':
        return DatabaseManager(
            db_type='mysql',
            host=config['MYSQL_HOST'],
            port=int(config.get('MYSQL_PORT', 3306)),
            user=config['MYSQL_USER'],
            password=config['MYSQL_PASSWORD'],
            database=config['MYSQL_DATABASE']
        )
    else:  # Default to SQLite
        return DatabaseManager(
            db_type='sqlite',
            database_url=config.get('DATABASE_URL', './filter.db')
        )


class KeywordStore:
    """Persists the admin-managed filter keywords."""

    def __init__(self, db_manager: DatabaseManager):
        """
        Initialize KeywordStore.

        Args:
            db_manager: DatabaseManager instance
        """
        self.db_manager = db_manager

    async def list_rules(self) -> List[KeywordRule]:
        """
        Load every stored rule, oldest first.

        Raises:
            Exception: The driver error if the store cannot be read. Callers
                must not treat a failed read as an empty rule set.
        """
        rows = await self.db_manager.fetch_all(
            "SELECT keyword, created_at FROM filter_keywords ORDER BY created_at, keyword"
        )
        return [KeywordRule.from_db_row(tuple(row)) for row in rows]

    async def list_keywords(self) -> List[str]:
        """Load the stored patterns in rule order."""
        return [rule.keyword for rule in await self.list_rules()]

    async def upsert_keyword(self, keyword: str) -> bool:
        """
        Add a pattern. Adding an existing pattern is a no-op.

        Returns:
            bool: True if successful, False otherwise
        """
        p = self.db_manager.placeholder
        if self.db_manager.db_type == 'sqlite':
            query = (
                f"INSERT INTO filter_keywords (keyword, created_at) VALUES ({p}, {p}) "
                "ON CONFLICT(keyword) DO NOTHING"
            )
        else:
            query = f"INSERT IGNORE INTO filter_keywords (keyword, created_at) VALUES ({p}, {p})"

        try:
            await self.db_manager.execute(query, (keyword, datetime.now().isoformat(sep=' ')))
            logger.info("Filter keyword stored", extra={"keyword": keyword})
            return True
        except Exception as e:
            logger.error(f"Failed to add filter keyword: {e}", extra={"keyword": keyword})
            return False

    async def delete_keyword(self, keyword: str) -> bool:
        """
        Remove a pattern. Removing a missing pattern is a no-op.

        Returns:
            bool: True if successful, False otherwise
        """
        p = self.db_manager.placeholder
        try:
            await self.db_manager.execute(
                f"DELETE FROM filter_keywords WHERE keyword = {p}", (keyword,)
            )
            logger.info("Filter keyword removed", extra={"keyword": keyword})
            return True
        except Exception as e:
            logger.error(f"Failed to remove filter keyword: {e}", extra={"keyword": keyword})
            return False

