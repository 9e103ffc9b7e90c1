"""Database module for persistent keyword storage."""

from .operations import DatabaseManager, KeywordStore, create_database_manager
from .models import KeywordRule, MessageEvent
from .migrations import DatabaseMigrations

__all__ = [
    'DatabaseManager',
    'KeywordStore',
    'create_database_manager',
    'KeywordRule',
    'MessageEvent',
    'DatabaseMigrations'
]
