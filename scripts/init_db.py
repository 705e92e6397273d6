"""Create the homefix SQLite schema.

Usage: python scripts/init_db.py [db_path]
"""
import sys

from homefix.config import get_settings
from homefix.log import get_logger, setup_logging
from homefix.store.db import init_db

if __name__ == "__main__":
    setup_logging()
    logger = get_logger("init_db")
    settings = get_settings()
    if len(sys.argv) > 1:
        settings.DB_PATH = sys.argv[1]

    logger.info(f"Creating schema in {settings.DB_PATH}")
    init_db()
    logger.info("Tables ready: tickets, assets, analyses, contact_submissions")
