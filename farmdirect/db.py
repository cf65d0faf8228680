from contextlib import contextmanager
import psycopg
from psycopg.rows import dict_row
from .settings import DATABASE_URL

@contextmanager
def get_conn(url: str = DATABASE_URL):
    conn = psycopg.connect(url, row_factory=dict_row)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def ping(url: str = DATABASE_URL) -> bool:
    try:
        with get_conn(url) as conn:
            conn.execute("SELECT 1").fetchone()
        return True
    except psycopg.Error:
        return False
