"""
PostgreSQL access for the document store.

One short-lived connection per unit of work: the cursor's block is a single
transaction, committed when it exits cleanly and rolled back otherwise.
"""

import logging
from contextlib import closing, contextmanager

import psycopg2
from psycopg2.extras import RealDictCursor

from scriptcrm.config import config
from scriptcrm.engine.errors import StorageError

logger = logging.getLogger(__name__)


def connect():
    """Open a new connection to DATABASE_URL. StorageError when it is not configured."""
    if not config.DATABASE_URL:
        raise StorageError("DATABASE_URL is not set. Copy .env.example to .env and configure it.")
    return psycopg2.connect(config.DATABASE_URL)


@contextmanager
def get_db_cursor(dict_cursor=True):
    """
    Cursor inside its own transaction. Rows come back as dicts by default.

        with get_db_cursor() as cur:
            cur.execute("SELECT data FROM documents WHERE collection = %s AND id = %s", ('scripts', 'abc'))
            row = cur.fetchone()
    """
    with closing(connect()) as conn:
        try:
            # psycopg2's connection block commits on success and rolls back on error
            with conn:
                with conn.cursor(cursor_factory=RealDictCursor if dict_cursor else None) as cur:
                    yield cur
        except Exception as e:
            logger.error(f"Transaction rolled back: {type(e).__name__}: {e}")
            raise
