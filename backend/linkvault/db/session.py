from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import sessionmaker

from linkvault.core.config import get_settings


def is_sqlite_url(db_url: str) -> bool:
    try:
        return make_url(db_url).get_backend_name() == "sqlite"
    except Exception:
        # Fallback: handle values like "sqlite+pysqlite:///:memory:"
        return db_url.startswith("sqlite")


def build_engine(db_url: str) -> Engine:
    """Create an engine tuned for SQLite (dev/tests) or a pooled server database."""
    if is_sqlite_url(db_url):
        # SQLite: limited concurrency; avoid unsupported pool args.
        # The sweeper thread and request threads share the engine.
        return create_engine(
            db_url,
            connect_args={"check_same_thread": False, "timeout": 15},
            pool_pre_ping=True,
            echo=False,
        )
    return create_engine(
        db_url,
        pool_pre_ping=True,
        pool_size=20,
        max_overflow=10,
        pool_recycle=3600,
        echo=False,
    )


settings = get_settings()

engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

