"""Database package for MongoDB operations using Beanie ODM.

Modules:
    manager: DatabaseManager singleton for connection handling
    models: Beanie Document models for all collections
"""

from db.manager import DatabaseManager, db_manager, init_database
from db.models import ALL_DOCUMENT_MODELS, Trip, UserStats

__all__ = [
    "ALL_DOCUMENT_MODELS",
    "DatabaseManager",
    "Trip",
    "UserStats",
    "db_manager",
    "init_database",
]
