"""Block until the Postgres behind DATABASE_URL accepts connections.

Imported for its side effect by start_api.py; sqlite URLs return at once.
"""
import logging
import os
import time
from urllib.parse import urlparse

import psycopg2

logger = logging.getLogger("wait_for_db")

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise SystemExit("DATABASE_URL is not set")


def wait(url: str, timeout_s: int) -> None:
    url = url.replace("postgresql+psycopg2://", "postgresql://").replace("postgres://", "postgresql://")
    p = urlparse(url)
    host = p.hostname or "db"
    port = p.port or 5432
    user = p.username or "luggage"
    password = p.password or "luggage"
    dbname = (p.path or "/luggage").lstrip("/") or "luggage"

    logger.info("Waiting for Postgres at %s:%s db=%s user=%s (timeout=%ss)", host, port, dbname, user, timeout_s)
    start = time.time()
    while True:
        try:
            psycopg2.connect(host=host, port=port, user=user, password=password, dbname=dbname).close()
            logger.info("Postgres is ready.")
            return
        except psycopg2.OperationalError as e:
            if time.time() - start > timeout_s:
                logger.error("Timed out waiting for DB. Last error: %s", e)
                raise
            time.sleep(1)


if not DATABASE_URL.startswith("sqlite"):
    wait(DATABASE_URL, int(os.getenv("DB_WAIT_TIMEOUT", "60")))
