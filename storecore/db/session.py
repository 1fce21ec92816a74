from contextlib import contextmanager
import os
from pathlib import Path
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ..models import Base


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///data/app.db")

SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False, future=True)
engine = None


def _ensure_sqlite_dir(url: str) -> None:
    # Ensure sqlite file parent directory exists to avoid 'unable to open database file'
    if url.startswith("sqlite:///") and ":memory:" not in url:
        db_path = url.split("sqlite:///")[-1]
        try:
            Path(db_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            # best-effort; real error will surface on connect if still invalid
            pass


def configure_engine(url: str = DATABASE_URL):
    """Bind the session factory to ``url`` and create missing tables."""
    global engine
    _ensure_sqlite_dir(url)
    kwargs = {"future": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url:
            kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)
    SessionLocal.configure(bind=engine)
    Base.metadata.create_all(engine)
    return engine


@contextmanager
def get_session():
    if engine is None:
        configure_engine()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
