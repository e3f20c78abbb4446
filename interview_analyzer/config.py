"""Server configuration for the interview analyzer API."""

import os


class ServerConfig:
    """Server configuration read from the environment at import time."""

    # Server settings
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "3001"))
    WORKERS: int = int(os.getenv("WORKERS", "4"))
    WORKER_CLASS: str = os.getenv("WORKER_CLASS", "uvicorn.workers.UvicornWorker")
    APP_ENV: str = os.getenv("APP_ENV", "development")
    # Connection settings
    MAX_CONNECTIONS: int = int(os.getenv("MAX_CONNECTIONS", "100"))
    KEEP_ALIVE_TIMEOUT: int = int(os.getenv("KEEP_ALIVE_TIMEOUT", "65"))
    TIMEOUT_GRACEFUL_SHUTDOWN: int = int(os.getenv("TIMEOUT_GRACEFUL_SHUTDOWN", "30"))
    # Database settings
    DB_POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "10"))
    DB_MAX_OVERFLOW: int = int(os.getenv("DB_MAX_OVERFLOW", "20"))
    DB_POOL_TIMEOUT: int = int(os.getenv("DB_POOL_TIMEOUT", "30"))
    DB_POOL_RECYCLE: int = int(os.getenv("DB_POOL_RECYCLE", "1800"))
    # Tenant used when a request does not name one
    DEFAULT_USER_ID: str = os.getenv("DEFAULT_USER_ID", "default")
    # CORS settings
    CORS_ORIGINS: list = [o.strip() for o in os.getenv("CORS_ORIGIN", "*").split(",") if o.strip()]

    @classmethod
    def is_production(cls) -> bool:
        return cls.APP_ENV.strip().lower() == "production"

    @classmethod
    def resolve_user_id(cls, user_id: str | None) -> str:
        """Return the explicit tenant id, falling back to the configured default."""
        if user_id is None or not str(user_id).strip():
            return cls.DEFAULT_USER_ID
        return str(user_id).strip()

    @classmethod
    def get_uvicorn_config(cls) -> dict:
        """Get uvicorn configuration for production deployment."""
        return {
            "host": cls.HOST,
            "port": cls.PORT,
            "workers": cls.WORKERS,
            "timeout_keep_alive": cls.KEEP_ALIVE_TIMEOUT,
            "timeout_graceful_shutdown": cls.TIMEOUT_GRACEFUL_SHUTDOWN,
            "limit_concurrency": cls.MAX_CONNECTIONS,
            "access_log": True,
            "log_level": "info",
        }

    @classmethod
    def get_development_config(cls) -> dict:
        """Get uvicorn configuration for development."""
        return {
            "host": cls.HOST,
            "port": cls.PORT,
            "reload": True,
            "reload_dirs": ["interview_analyzer"],
            "log_level": "debug",
            "access_log": True,
        }
