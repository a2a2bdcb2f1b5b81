"""
MongoDB connection helpers.
"""

from __future__ import annotations

from typing import Optional

from pymongo import MongoClient
from pymongo.database import Database

from gitcache.config import Settings, settings as default_settings

_client: MongoClient | None = None


def get_client(settings: Optional[Settings] = None) -> MongoClient:
    global _client
    if _client is None:
        settings = settings or default_settings
        # tz_aware so cache timestamps come back comparable with datetime.now(timezone.utc)
        _client = MongoClient(settings.MONGODB_URI, tz_aware=True)
    return _client


def get_database(settings: Optional[Settings] = None) -> Database:
    settings = settings or default_settings
    client = get_client(settings)
    return client[settings.MONGODB_DB_NAME]

