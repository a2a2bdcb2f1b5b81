"""Database index management for MongoDB collections."""

import logging

from pymongo.database import Database
from pymongo.errors import OperationFailure

logger = logging.getLogger(__name__)


def ensure_indexes(db: Database, collection_name: str = "repository_local_mappings") -> None:
    """
    Ensure all required indexes exist.

    Called on application startup when the MongoDB store is selected.
    """
    _ensure_mapping_indexes(db, collection_name)
    logger.info("Database indexes ensured successfully")


def _create_index(collection, keys, name: str, **kwargs) -> None:
    try:
        collection.create_index(keys, background=True, name=name, **kwargs)
        logger.debug(f"Created index: {name}")
    except OperationFailure as e:
        # Index may already exist with different options
        if "already exists" not in str(e):
            logger.warning(f"Failed to create {name} index: {e}")


def _ensure_mapping_indexes(db: Database, collection_name: str) -> None:
    """Create indexes for the repository mapping collection."""
    collection = db[collection_name]

    # Project snapshot loads filter by project and optionally user
    _create_index(collection, [("project_id", 1), ("user_id", 1)], "project_user_idx")

    # Staleness pass: oldest (or never scanned) valid repositories first
    _create_index(
        collection,
        [("git_cache.is_valid_repository", 1), ("git_cache.last_updated_at", 1)],
        "valid_last_updated_idx",
    )
