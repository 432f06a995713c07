"""Database session management with connection pooling"""

from contextlib import contextmanager
from typing import Iterator
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.orm.exc import StaleDataError
from homebase_finance.config import settings
from homebase_finance.domain.exceptions import ConcurrentUpdateError, DomainException, LedgerIntegrityError

# Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,  # Verify connections before using
    pool_size=10,
    max_overflow=10,
    pool_recycle=3600,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Session:
    """Dependency injection for database sessions"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    One atomic unit of ledger work.

    Commits on success. Domain errors roll back and propagate unchanged.
    Stale optimistic versions become ConcurrentUpdateError (retryable).
    Any other database failure is a LedgerIntegrityError: nothing from the
    unit is kept.
    """
    try:
        yield db
        db.commit()
    except DomainException:
        db.rollback()
        raise
    except StaleDataError as e:
        db.rollback()
        raise ConcurrentUpdateError(f"Concurrent update detected: {e}") from e
    except IntegrityError as e:
        db.rollback()
        raise LedgerIntegrityError(f"Ledger constraint violated: {e.orig}") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise LedgerIntegrityError(f"Ledger write failed: {e}") from e
    except BaseException:
        db.rollback()
        raise
