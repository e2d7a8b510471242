"""
Transaction discipline shared by the services: commit on success, roll back
on any failure. Store-level failures surface as TransactionFailure;
IntegrityError is re-raised untouched so callers can map a unique-constraint
violation to a conflict or a retry.
"""
import logging
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from clinic_app.errors import TransactionFailure

logger = logging.getLogger(__name__)


@contextmanager
def transaction(session):
    try:
        yield session
        session.commit()
    except IntegrityError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Transaction rolled back: %s", e, exc_info=True)
        raise TransactionFailure('Database transaction failed') from e
    except Exception:
        session.rollback()
        raise
