import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from lead_crm_svc.errors import Unavailable

logger = logging.getLogger(__name__)

# driver-level timeouts surface as OperationalError, pool exhaustion as TimeoutError
STORE_UNAVAILABLE = (OperationalError, PoolTimeoutError)


def rollback_quietly(db: Session) -> None:
    try:
        db.rollback()
    except Exception as e:
        logger.error(e, exc_info=True)


@contextmanager
def transaction(db: Session, operation: str) -> Iterator[Session]:
    """Commit the block's writes as one unit, or roll all of them back.

    Store timeouts become ``Unavailable`` so callers can retry; other
    exceptions propagate unchanged after the rollback.
    """
    try:
        yield db
        db.commit()
    except STORE_UNAVAILABLE as e:
        logger.error("%s: data store unavailable: %s", operation, e, exc_info=True)
        rollback_quietly(db)
        raise Unavailable() from e
    except Exception:
        rollback_quietly(db)
        raise
