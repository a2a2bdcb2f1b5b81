"""
Base Celery task holding a lazily built service container.

Each worker process builds its own store, scanner and coordinator on the
first task it runs and reuses them for later tasks.
"""

import logging
from typing import Optional

from celery import Task

from gitcache.config import settings
from gitcache.container import ServiceContainer, build_container

logger = logging.getLogger(__name__)


class CacheTask(Task):
    abstract = True

    def __init__(self) -> None:
        self._container: Optional[ServiceContainer] = None

    @property
    def container(self) -> ServiceContainer:
        if self._container is None:
            logger.info(f"Building service container for task {self.name}")
            self._container = build_container(settings)
        return self._container
