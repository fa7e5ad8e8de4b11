"""Database base configuration."""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from contextlib import contextmanager

from ..config import config

Base = declarative_base()

engine = create_engine(config.DATABASE_URL, echo=config.DEBUG)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

@contextmanager
def get_session(factory: sessionmaker = None) -> Session:
    """Get a database session, from ``factory`` if given."""
    session = (factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

def init_db(bind=None):
    """Initialize the database."""
    if bind is None:
        config.ensure_directories()
        bind = engine
    Base.metadata.create_all(bind=bind)
