from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from .config import settings


def _normalized_database_url(raw_url: str) -> str:
    """
    postgres:// and driverless postgresql:// URLs are rewritten to the psycopg3
    dialect; anything else (SQLite) is returned as is.
    """
    if not raw_url:
        return "sqlite:///./vouchers.db"
    raw_url = raw_url.strip()
    if raw_url.startswith("postgres://"):
        return "postgresql+psycopg://" + raw_url[len("postgres://") :]
    if raw_url.startswith("postgresql://") and "+psycopg" not in raw_url.split("://", 1)[0]:
        return "postgresql+psycopg://" + raw_url[len("postgresql://") :]
    return raw_url


DATABASE_URL = _normalized_database_url(settings.database_url)


def build_engine(url: str):
    """Engine factory shared by the app and by tests that need a file-backed database."""
    is_sqlite = url.startswith("sqlite")
    connect_args = {"check_same_thread": False, "timeout": 30} if is_sqlite else {}
    # In-memory SQLite: one shared connection so tables created in init_db stay visible
    use_static_pool = is_sqlite and ":memory:" in url
    return create_engine(
        url,
        connect_args=connect_args,
        poolclass=StaticPool if use_static_pool else None,
    )


engine = build_engine(DATABASE_URL)


def get_db():
    with Session(engine) as session:
        yield session


def init_db():
    # Import registers every table on SQLModel.metadata
    from voucher_store import models  # noqa: F401

    SQLModel.metadata.create_all(engine)
