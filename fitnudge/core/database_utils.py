"""
Session helpers for the reminder engine.

Every unit of work (loading a tick's inputs, handling one policy/user pair,
recording a completion event) runs inside one `session_scope` so a failure in
one pair never leaves another pair's session half-committed.
"""

import logging
from contextlib import contextmanager
from typing import Callable, Generator, Optional
from sqlalchemy.orm import Session

from fitnudge.db.session import SessionLocal

logger = logging.getLogger(__name__)


@contextmanager
def session_scope(session_factory: Optional[Callable[[], Session]] = None) -> Generator[Session, None, None]:
    """
    Open a session, commit when the block exits cleanly, roll back and
    re-raise otherwise. The session is closed in both cases.

        with session_scope() as db:
            repository.list_active_policies(db)

    `session_factory` defaults to the application's SessionLocal; tests pass
    a factory bound to their own engine.
    """
    db = (session_factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"[DB] Rolled back unit of work: {e}")
        raise
    finally:
        db.close()
