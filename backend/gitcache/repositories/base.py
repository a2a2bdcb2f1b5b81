"""Base repository pattern for MongoDB operations"""

from __future__ import annotations

import functools
import logging
from abc import ABC
from contextlib import contextmanager
from typing import Any, Callable, Dict, Generic, Iterator, List, Optional, Type, TypeVar

from pydantic import BaseModel
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import AutoReconnect, PyMongoError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from gitcache.services.exceptions import StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)
F = TypeVar("F", bound=Callable[..., Any])

mongo_retry = retry(
    retry=retry_if_exception_type(AutoReconnect),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.1, max=2),
    reraise=True,
)


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Translate driver failures into StoreError."""
    try:
        yield
    except PyMongoError as e:
        logger.error(f"MongoDB {operation} failed: {e}")
        raise StoreError(f"{operation} failed: {e}") from e


def mongo_operation(operation: str) -> Callable[[F], F]:
    """Retry transient reconnects, then surface any driver error as StoreError."""

    def decorator(fn: F) -> F:
        retrying = mongo_retry(fn)

        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with store_errors(operation):
                return retrying(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator


class BaseRepository(ABC, Generic[T]):
    """Base repository providing common CRUD operations for MongoDB collections"""

    def __init__(self, db: Database, collection_name: str, model_class: Type[T]):
        self.db = db
        self.collection: Collection = db[collection_name]
        self.model_class = model_class

    @mongo_operation("find_one")
    def find_one_raw(
        self, query: Dict[str, Any], projection: Optional[Dict[str, Any]] = None
    ) -> Optional[Dict[str, Any]]:
        return self.collection.find_one(query, projection)

    @mongo_operation("find_many")
    def find_many(
        self,
        query: Dict[str, Any],
        sort: Optional[List[tuple]] = None,
        projection: Optional[Dict[str, Any]] = None,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        """Find raw documents matching the query"""
        cursor = self.collection.find(query, projection)
        if sort:
            cursor = cursor.sort(sort)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    @mongo_operation("count")
    def count(self, query: Optional[Dict[str, Any]] = None) -> int:
        """Count documents matching the query"""
        return self.collection.count_documents(query or {})

    @mongo_operation("update_one")
    def update_one_raw(
        self,
        query: Dict[str, Any],
        update: Dict[str, Any],
        upsert: bool = False,
    ) -> bool:
        """
        Update a document with raw update operators (without auto-wrapping in $set).

        Returns:
            True if a document matched or was upserted
        """
        result = self.collection.update_one(query, update, upsert=upsert)
        return result.matched_count > 0 or result.upserted_id is not None

    @mongo_operation("delete_one")
    def delete_one(self, entity_id: str) -> bool:
        """Delete a document by ID"""
        result = self.collection.delete_one({"_id": entity_id})
        return result.deleted_count > 0
