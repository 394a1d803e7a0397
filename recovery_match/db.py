from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from recovery_match.settings import settings

_connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(settings.DATABASE_URL, connect_args=_connect_args, future=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db():
    """FastAPI dependency: one session per request."""
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()
