import logging
from typing import Optional

from core.config import Settings
from core.database.connection import ConnectionPool


class BaseService:
    def __init__(self, pool: ConnectionPool, settings: Optional[Settings] = None):
        self.pool = pool
        self.settings = settings or Settings()
        self.logger = logging.getLogger(self.__class__.__module__)
