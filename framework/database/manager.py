from .sql_driver import SQLDriver
from .redis_driver import RedisDriver


class DatabaseManager:
    """Process-wide holder of the SQL engine and the Redis client."""

    _instance = None

    def __init__(self, settings):
        self.sql = SQLDriver(settings.DATABASE_URL, echo=settings.DB_ECHO)
        self.redis = RedisDriver(settings.REDIS_URL, connect_timeout=settings.REDIS_CONNECT_TIMEOUT)

    @classmethod
    def get_instance(cls, settings=None):
        if cls._instance is None:
            if settings is None:
                from framework.config import settings as app_settings
                settings = app_settings
            cls._instance = cls(settings)
        return cls._instance
