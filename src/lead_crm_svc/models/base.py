import logging
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from lead_crm_svc.config import DATABASE_URL, DB_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

Base = declarative_base()


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # busy timeout bounds how long a writer waits on a locked database
        return {"connect_args": {"check_same_thread": False, "timeout": DB_TIMEOUT_SECONDS}}
    return {"pool_timeout": DB_TIMEOUT_SECONDS, "pool_pre_ping": True}


engine = create_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db() -> Iterator[Session]:
    """FastAPI dependency yielding one session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        try:
            db.close()
        except Exception as e:
            logger.error(e, exc_info=True)


def init_db() -> None:
    Base.metadata.create_all(bind=engine)
