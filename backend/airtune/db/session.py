from contextlib import contextmanager
from typing import Iterator

import psycopg2
from psycopg2.extensions import connection, cursor

from airtune.core.config import get_settings


@contextmanager
def get_connection() -> Iterator[connection]:
    dsn = get_settings().postgres_dsn
    if not dsn:
        raise RuntimeError("POSTGRES_DSN is not set")
    conn = psycopg2.connect(dsn)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


@contextmanager
def transaction() -> Iterator[cursor]:
    """One cursor inside one committed-or-rolled-back connection."""
    with get_connection() as conn:
        with conn.cursor() as cur:
            yield cur
