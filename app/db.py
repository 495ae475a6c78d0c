import logging

from fastapi import HTTPException
from sqlmodel import Session, SQLModel, create_engine

from app.config import get_settings
from app.error import ServiceError

logger = logging.getLogger(__name__)


def _build_engine(url: str):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)


engine = _build_engine(get_settings().database_url)


def create_db_and_tables() -> None:
    SQLModel.metadata.create_all(engine)


def get_session():
    session = Session(engine)
    try:
        yield session
    except (HTTPException, ServiceError):
        # business/auth errors: nothing was written, just propagate
        raise
    except Exception as e:
        # anything else looks like a program or database error
        session.rollback()
        logger.warning("rollback: %s: %s", type(e).__name__, e)
        raise
    finally:
        session.close()
