"""
Runtime settings for the check-in hub, read from environment variables.
A local .env file is honoured through python-dotenv.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv
from sqlalchemy.engine.url import URL

load_dotenv()


# PUBLIC_INTERFACE
def get_postgres_url():
    """
    PostgreSQL URL assembled from POSTGRES_* variables. Only used when
    DATABASE_URL is not set (see get_database_url).
    Reads:
        - POSTGRES_USER
        - POSTGRES_PASSWORD
        - POSTGRES_DB
        - POSTGRES_HOST
        - POSTGRES_PORT
    """
    return URL.create(
        drivername="postgresql+psycopg2",
        username=os.getenv("POSTGRES_USER"),
        password=os.getenv("POSTGRES_PASSWORD"),
        host=os.getenv("POSTGRES_HOST", "localhost"),
        port=int(os.getenv("POSTGRES_PORT", 5432)),
        database=os.getenv("POSTGRES_DB"),
    ).render_as_string(hide_password=False)


# PUBLIC_INTERFACE
def get_database_url():
    """DATABASE_URL wins; otherwise the PostgreSQL URL is assembled from its parts."""
    return os.getenv("DATABASE_URL") or get_postgres_url()


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class Settings:
    database_url: str
    frontend_url: str = "http://localhost:3000"
    db_timeout: float = 5.0
    command_timeout: float = 10.0
    send_timeout: float = 5.0
    log_level: str = "INFO"
    seed_demo_data: bool = False
    create_tables: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=get_database_url(),
            frontend_url=os.getenv("FRONTEND_URL", "http://localhost:3000"),
            db_timeout=float(os.getenv("DB_TIMEOUT_SECONDS", 5)),
            command_timeout=float(os.getenv("HUB_COMMAND_TIMEOUT", 10)),
            send_timeout=float(os.getenv("HUB_SEND_TIMEOUT", 5)),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            seed_demo_data=_env_bool("SEED_DEMO_DATA"),
            create_tables=_env_bool("CREATE_TABLES", True),
        )
